"""User model (permission-relevant slice) and role history."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship
from authcore.db.base import Base


class User(Base):
    """Platform user.

    ``permissions_json`` is a snapshot copied from the role at assignment
    time and is the set checked at evaluation time.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    role = Column(String(50), nullable=False, default="customer", index=True)
    permissions_json = Column(Text, nullable=False, default="[]")
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    role_history = relationship(
        "RoleHistoryEntry",
        back_populates="user",
        lazy="selectin",
        order_by="RoleHistoryEntry.id",
        cascade="all, delete-orphan",
    )


class RoleHistoryEntry(Base):
    """Append-only record of a role assignment."""
    __tablename__ = "user_role_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(50), nullable=False)
    assigned_by = Column(Integer, nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=False)
    reason = Column(String(500), nullable=True)

    user = relationship("User", back_populates="role_history")
