"""Audit trail API router."""

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from authcore.api.deps import get_audit_trail
from authcore.core.audit_policy import AuditAction
from authcore.core.security import RequirePermission
from authcore.db.session import get_db
from authcore.schemas.schemas import (
    ActionStatsOut,
    ActorSummaryOut,
    AuditLogFilter,
    AuditLogListResponse,
    AuditLogOut,
    MessageResponse,
    PurgeRequest,
)
from authcore.services.audit_service import AuditTrail

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=AuditLogListResponse)
def list_audit_logs(
    filters: AuditLogFilter = Depends(),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit_trail),
    user_id: int = Depends(RequirePermission("audit.read")),
):
    """Query audit entries, newest first."""
    return audit.query_logs(db, filters, page, page_size)


@router.get("/export")
def export_audit_logs(
    request: Request,
    filters: AuditLogFilter = Depends(),
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit_trail),
    user_id: int = Depends(RequirePermission("audit.export")),
):
    """Download the filtered entries as CSV."""
    content = audit.export_csv(db, filters)
    audit.record_from_request(
        db, request, AuditAction.AUDIT_EXPORT,
        actor_id=user_id,
        resource_type="audit_log",
        status_code=200,
        details={"filters": filters.model_dump(exclude_none=True, mode="json")},
    )
    filename = f"audit-logs-{datetime.now(timezone.utc):%Y%m%d-%H%M%S}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/stats")
def audit_stats(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit_trail),
    user_id: int = Depends(RequirePermission("audit.read")),
):
    """Per-action statistics plus an overall summary."""
    return {
        "actions": [
            ActionStatsOut(**row) for row in audit.stats_by_action(db, start_date, end_date)
        ],
        "summary": audit.summary(db, start_date, end_date),
    }


@router.get("/actors", response_model=List[ActorSummaryOut])
def most_active_actors(
    limit: int = Query(10, ge=1, le=100),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit_trail),
    user_id: int = Depends(RequirePermission("audit.read")),
):
    return audit.most_active_actors(db, limit, start_date, end_date)


@router.post("/purge", response_model=MessageResponse)
def purge_audit_logs(
    body: PurgeRequest,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit_trail),
    user_id: int = Depends(RequirePermission("audit.purge")),
):
    """Delete entries older than ``days`` regardless of their retention date."""
    deleted = audit.purge_older_than(db, body.days)
    audit.record_from_request(
        db, request, AuditAction.AUDIT_PURGE,
        actor_id=user_id,
        resource_type="audit_log",
        status_code=200,
        details={"days": body.days, "deleted": deleted},
    )
    return MessageResponse(message=f"Purged {deleted} audit entries", detail={"deleted": deleted})


@router.get("/{log_id}", response_model=AuditLogOut)
def get_audit_log(
    log_id: int,
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit_trail),
    user_id: int = Depends(RequirePermission("audit.read")),
):
    return audit.get_log(db, log_id)


@router.post("/{log_id}/review", response_model=AuditLogOut)
def review_audit_log(
    log_id: int,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit_trail),
    user_id: int = Depends(RequirePermission("audit.review")),
):
    """Mark an entry as reviewed by the caller."""
    entry = audit.mark_reviewed(db, log_id, user_id)
    audit.record_from_request(
        db, request, AuditAction.AUDIT_REVIEWED,
        actor_id=user_id,
        resource_type="audit_log",
        resource_id=log_id,
        status_code=200,
    )
    return entry
