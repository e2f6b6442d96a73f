"""Celery app and audit retention tasks."""

import logging

from celery import Celery
from celery.schedules import crontab

from authcore.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "authcore",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_soft_time_limit=600,  # 10 min soft limit
    task_time_limit=900,  # 15 min hard limit
    beat_schedule={
        "audit-retention-sweep": {
            "task": "sweep_expired_audit_logs",
            "schedule": crontab(hour=settings.AUDIT_SWEEP_HOUR, minute=0),
        },
    },
)


@celery_app.task(name="sweep_expired_audit_logs")
def sweep_expired_audit_logs() -> dict:
    """Delete audit entries whose retention date has passed."""
    from authcore.db.session import SessionLocal
    from authcore.services.audit_service import audit_trail

    db = SessionLocal()
    try:
        deleted = audit_trail.sweep_expired(db)
        return {"deleted": deleted}
    finally:
        db.close()


@celery_app.task(name="purge_audit_logs")
def purge_audit_logs(days: int, requested_by: int = None) -> dict:
    """Delete audit entries older than ``days`` and record the purge."""
    from authcore.core.audit_policy import AuditAction
    from authcore.db.session import SessionLocal
    from authcore.services.audit_service import audit_trail

    db = SessionLocal()
    try:
        deleted = audit_trail.purge_older_than(db, days)
        audit_trail.record(
            db,
            AuditAction.AUDIT_PURGE,
            actor_id=requested_by,
            resource_type="audit_log",
            details={"days": days, "deleted": deleted, "source": "celery"},
        )
        logger.info("Purge task removed %d audit entries (days=%d)", deleted, days)
        return {"deleted": deleted}
    finally:
        db.close()
