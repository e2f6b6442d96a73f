"""Seed the super-admin user from env vars."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from authcore.core.config import settings
from authcore.models.role import Role
from authcore.models.user import User
from authcore.services.credential_service import CredentialService, credential_service
from authcore.services.role_assignment import RoleAssignmentWorkflow, role_assignment

logger = logging.getLogger(__name__)


def seed_super_admin(
    db: Session,
    credentials: CredentialService = credential_service,
    workflow: RoleAssignmentWorkflow = role_assignment,
) -> Optional[User]:
    """Create the super-admin user if not already present."""
    super_admin_role = db.query(Role).filter(Role.name == "super_admin").first()
    if not super_admin_role:
        logger.warning("super_admin role not found. Run seed_roles first.")
        return None

    existing = db.query(User).filter(User.email == settings.SUPER_ADMIN_EMAIL).first()
    if existing:
        logger.info("Super admin '%s' already exists, skipping.", settings.SUPER_ADMIN_EMAIL)
        return existing

    admin = User(
        email=settings.SUPER_ADMIN_EMAIL,
        hashed_password=credentials.hash(settings.SUPER_ADMIN_PASSWORD),
        full_name="Super Admin",
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)

    workflow.assign(db, admin, super_admin_role, reason="bootstrap")
    logger.info("Created super admin: %s", settings.SUPER_ADMIN_EMAIL)
    return admin
