"""Audit log model: append-create-only."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from authcore.db.base import Base


class AuditLog(Base):
    """Immutable audit trail for administrative actions.

    Rows are never updated except for the review fields, and are deleted
    only by the retention sweep or an explicit purge.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(Integer, nullable=True, index=True)
    actor_email = Column(String(255), nullable=True)
    actor_role = Column(String(50), nullable=True)
    action = Column(String(64), nullable=False, index=True)  # AuditAction value
    resource_type = Column(String(50), nullable=True, index=True)  # role, user, product, ...
    resource_id = Column(String(100), nullable=True)

    endpoint = Column(String(500), nullable=True)
    method = Column(String(10), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)

    status_code = Column(Integer, nullable=True)
    success = Column(Boolean, default=True, nullable=False)
    response_time_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)

    changes_json = Column(Text, nullable=True)  # {"before": ..., "after": ...}
    details_json = Column(Text, nullable=True)

    risk_level = Column(String(10), nullable=False, index=True)
    retention_date = Column(DateTime(timezone=True), nullable=False, index=True)
    policy_version = Column(String(20), nullable=False)

    reviewed = Column(Boolean, default=False, nullable=False, index=True)
    reviewed_by = Column(Integer, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
