"""Seed the built-in roles as system roles."""

import logging

from sqlalchemy.orm import Session

from authcore.core.default_roles import DEFAULT_ROLES
from authcore.core.permissions import dump_permission_list
from authcore.models.role import Role

logger = logging.getLogger(__name__)


def seed_roles(db: Session) -> int:
    """Insert built-in roles that don't already exist. Returns the number added."""
    added = 0
    for name, role_data in DEFAULT_ROLES.items():
        existing = db.query(Role).filter(Role.name == name).first()
        if existing:
            continue
        db.add(Role(
            name=name,
            display_name=role_data["display_name"],
            description=role_data["description"],
            permissions_json=dump_permission_list(role_data["permissions"]),
            priority=role_data["priority"],
            is_system_role=True,
            is_active=True,
        ))
        added += 1

    db.commit()
    logger.info("Seeded %d of %d built-in roles", added, len(DEFAULT_ROLES))
    return added
