"""Role model for RBAC."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func
from authcore.db.base import Base


class Role(Base):
    """Named, ordered bundle of permissions assignable to users.

    Users reference roles by ``name``; the user count shown to admins is
    derived from the users table and is not stored here.
    """
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    display_name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False)
    permissions_json = Column(Text, nullable=False, default="[]")  # JSON list of permission strings
    priority = Column(Integer, nullable=False, default=10)  # display ordering only
    is_system_role = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_assigned_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
