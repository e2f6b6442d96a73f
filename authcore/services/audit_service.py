"""Audit trail: append-create-only log of administrative actions.

Each entry is classified once, at write time, using the injected
``AuditPolicy``: the risk level and retention date stored on the row are
never recomputed, even if the policy later changes.
"""

import csv
import io
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from authcore.core.audit_policy import (
    AuditAction,
    AuditPolicy,
    classify_risk,
    retention_days_for,
)
from authcore.core.exceptions import (
    AuditPersistenceError,
    ResourceNotFoundError,
    ValidationError,
)
from authcore.models.audit_log import AuditLog
from authcore.models.user import User
from authcore.schemas.schemas import AuditLogFilter

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "id", "created_at", "actor_id", "actor_email", "actor_role", "action",
    "resource_type", "resource_id", "method", "endpoint", "ip_address",
    "user_agent", "status_code", "success", "response_time_ms", "risk_level",
    "retention_date", "reviewed", "reviewed_by", "error_message",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dump(value: Any) -> Optional[str]:
    return json.dumps(value, default=str) if value else None


class AuditTrail:
    """Records, queries, aggregates and expires audit log entries."""

    def __init__(
        self,
        policy: Optional[AuditPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.policy = policy or AuditPolicy.from_settings()
        self._clock = clock

    # ---- writing ----

    def write(
        self,
        db: Session,
        action: Any,
        actor_id: Optional[int] = None,
        actor_email: Optional[str] = None,
        actor_role: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        status_code: Optional[int] = None,
        success: bool = True,
        response_time_ms: Optional[int] = None,
        error_message: Optional[str] = None,
        changes: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """Classify and persist a single audit entry.

        Raises:
            ValidationError: If ``action`` is not an ``AuditAction``.
            AuditPersistenceError: If the entry cannot be stored.
        """
        try:
            action = AuditAction(action)
        except ValueError:
            raise ValidationError(f"Unknown audit action: {action}")

        created_at = self._clock()
        risk = classify_risk(self.policy, action)
        retention_date = created_at + timedelta(days=retention_days_for(self.policy, risk))

        try:
            if actor_id is not None and (actor_email is None or actor_role is None):
                actor = db.get(User, actor_id)
                if actor is not None:
                    actor_email = actor_email or actor.email
                    actor_role = actor_role or actor.role

            entry = AuditLog(
                actor_id=actor_id,
                actor_email=actor_email,
                actor_role=actor_role,
                action=action.value,
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id is not None else None,
                endpoint=endpoint,
                method=method,
                ip_address=ip_address,
                user_agent=user_agent[:500] if user_agent else user_agent,
                status_code=status_code,
                success=success,
                response_time_ms=response_time_ms,
                error_message=error_message,
                changes_json=_dump(changes),
                details_json=_dump(details),
                risk_level=risk.value,
                retention_date=retention_date,
                policy_version=self.policy.version,
                created_at=created_at,
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to persist audit entry %s: %s", action.value, exc)
            raise AuditPersistenceError(f"Could not store audit entry {action.value}") from exc

        if risk.value in ("HIGH", "CRITICAL"):
            logger.warning(
                "Audit %s [%s] actor=%s resource=%s/%s",
                action.value, risk.value, actor_id, resource_type, resource_id,
            )
        return entry

    def record(self, db: Session, action: Any, **fields: Any) -> Optional[AuditLog]:
        """Best-effort write: failures are logged, never raised.

        This is the entry point for callers documenting another action; an
        audit failure must not abort the action itself.
        """
        try:
            return self.write(db, action, **fields)
        except (AuditPersistenceError, ValidationError):
            logger.exception("Audit entry dropped (action=%s)", action)
            return None

    def record_from_request(
        self, db: Session, request, action: Any, **fields: Any
    ) -> Optional[AuditLog]:
        """Best-effort write, extracting endpoint, method, IP and user-agent from the request."""
        fields.update(request_context(request))
        return self.record(db, action, **fields)

    # ---- queries ----

    def _filtered(self, db: Session, filters: Optional[AuditLogFilter]) -> Query:
        query = db.query(AuditLog)
        if filters is None:
            return query

        if filters.actor_id is not None:
            query = query.filter(AuditLog.actor_id == filters.actor_id)
        if filters.resource_type:
            query = query.filter(AuditLog.resource_type == filters.resource_type)
        if filters.resource_id is not None:
            query = query.filter(AuditLog.resource_id == str(filters.resource_id))
        if filters.action:
            query = query.filter(AuditLog.action == filters.action)
        if filters.risk_level:
            query = query.filter(AuditLog.risk_level == filters.risk_level)
        if filters.reviewed is not None:
            query = query.filter(AuditLog.reviewed == filters.reviewed)
        if filters.success is not None:
            query = query.filter(AuditLog.success == filters.success)
        if filters.start_date is not None:
            query = query.filter(AuditLog.created_at >= filters.start_date)
        if filters.end_date is not None:
            query = query.filter(AuditLog.created_at <= filters.end_date)
        return query

    def query_logs(
        self,
        db: Session,
        filters: Optional[AuditLogFilter] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Dict[str, Any]:
        """Query audit logs with filters and pagination, newest first."""
        query = self._filtered(db, filters)
        total = query.count()
        logs = (
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"logs": logs, "total": total, "page": page, "page_size": page_size}

    def get_log(self, db: Session, log_id: int) -> AuditLog:
        entry = db.get(AuditLog, log_id)
        if entry is None:
            raise ResourceNotFoundError(f"Audit entry {log_id} not found")
        return entry

    def get_user_logs(self, db: Session, user_id: int, limit: int = 50) -> List[AuditLog]:
        """Entries performed by, or targeting, a user."""
        return (
            db.query(AuditLog)
            .filter(
                or_(
                    AuditLog.actor_id == user_id,
                    (AuditLog.resource_type == "user") & (AuditLog.resource_id == str(user_id)),
                )
            )
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
            .all()
        )

    def get_resource_logs(
        self, db: Session, resource_type: str, resource_id: Any, limit: int = 50
    ) -> List[AuditLog]:
        filters = AuditLogFilter(resource_type=resource_type, resource_id=str(resource_id))
        return self.query_logs(db, filters, page=1, page_size=limit)["logs"]

    def get_recent_logs(self, db: Session, limit: int = 50) -> List[AuditLog]:
        return self.query_logs(db, None, page=1, page_size=limit)["logs"]

    # ---- aggregates ----

    def stats_by_action(
        self,
        db: Session,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Per-action counts, success/failure split and average latency."""
        filters = AuditLogFilter(start_date=start_date, end_date=end_date)
        count = func.count(AuditLog.id)
        rows = (
            self._filtered(db, filters)
            .with_entities(
                AuditLog.action,
                count,
                func.sum(case((AuditLog.success.is_(True), 1), else_=0)),
                func.avg(AuditLog.response_time_ms),
            )
            .group_by(AuditLog.action)
            .order_by(count.desc(), AuditLog.action)
            .all()
        )
        return [
            {
                "action": action,
                "count": total,
                "success_count": int(successes or 0),
                "failure_count": total - int(successes or 0),
                "avg_response_time_ms": round(float(avg), 2) if avg is not None else None,
            }
            for action, total, successes, avg in rows
        ]

    def summary(
        self,
        db: Session,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        filters = AuditLogFilter(start_date=start_date, end_date=end_date)
        base = self._filtered(db, filters)
        by_risk = dict(
            base.with_entities(AuditLog.risk_level, func.count(AuditLog.id))
            .group_by(AuditLog.risk_level)
            .all()
        )
        by_action = {row["action"]: row["count"] for row in self.stats_by_action(db, start_date, end_date)}
        return {
            "total": base.count(),
            "unauthorized_attempts": by_action.get(AuditAction.UNAUTHORIZED_ACCESS.value, 0),
            "by_action": by_action,
            "by_risk": by_risk,
        }

    def most_active_actors(
        self,
        db: Session,
        limit: int = 10,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Per-actor activity summaries, most active first."""
        filters = AuditLogFilter(start_date=start_date, end_date=end_date)
        count = func.count(AuditLog.id)
        rows = (
            self._filtered(db, filters)
            .filter(AuditLog.actor_id.isnot(None))
            .with_entities(
                AuditLog.actor_id,
                func.max(AuditLog.actor_email),
                func.max(AuditLog.actor_role),
                count,
                func.sum(case((AuditLog.success.is_(False), 1), else_=0)),
                func.max(AuditLog.created_at),
            )
            .group_by(AuditLog.actor_id)
            .order_by(count.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "actor_id": actor_id,
                "actor_email": email,
                "actor_role": role,
                "action_count": total,
                "failure_count": int(failures or 0),
                "last_activity_at": last_at,
            }
            for actor_id, email, role, total, failures, last_at in rows
        ]

    # ---- export ----

    def export_csv(
        self, db: Session, filters: Optional[AuditLogFilter] = None, max_rows: int = 10000
    ) -> str:
        """Flatten a filtered result set into CSV text (header row first)."""
        logs = (
            self._filtered(db, filters)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(max_rows)
            .all()
        )
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(EXPORT_COLUMNS)
        for entry in logs:
            writer.writerow([_csv_value(getattr(entry, column)) for column in EXPORT_COLUMNS])
        logger.info("Exported %d audit entries to CSV", len(logs))
        return buffer.getvalue()

    # ---- review ----

    def mark_reviewed(self, db: Session, log_id: int, reviewer_id: int) -> AuditLog:
        entry = self.get_log(db, log_id)
        entry.reviewed = True
        entry.reviewed_by = reviewer_id
        entry.reviewed_at = self._clock()
        db.commit()
        db.refresh(entry)
        return entry

    # ---- retention ----

    def sweep_expired(self, db: Session) -> int:
        """Delete entries whose retention date has passed."""
        now = self._clock()
        deleted = (
            db.query(AuditLog)
            .filter(AuditLog.retention_date < now)
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info("Audit retention sweep removed %d entries", deleted)
        return deleted

    def purge_older_than(self, db: Session, days: int) -> int:
        """Delete entries created more than ``days`` days ago, regardless of retention."""
        if days < 1:
            raise ValidationError("Purge cutoff must be at least 1 day")
        cutoff = self._clock() - timedelta(days=days)
        deleted = (
            db.query(AuditLog)
            .filter(AuditLog.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info("Purged %d audit entries older than %d days", deleted, days)
        return deleted


def request_context(request) -> Dict[str, Any]:
    """Pull audit request metadata off a Starlette request."""
    return {
        "endpoint": request.url.path,
        "method": request.method,
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent", "")[:500],
    }


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return value


audit_trail = AuditTrail()
