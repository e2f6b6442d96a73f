"""Admin API router: user inspection and service health."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authcore.api.deps import get_audit_trail, get_permission_evaluator
from authcore.core.config import settings
from authcore.core.exceptions import ResourceNotFoundError
from authcore.core.permissions import load_permission_list
from authcore.core.security import RequirePermission
from authcore.db.session import get_db
from authcore.models.user import User
from authcore.schemas.schemas import AuditLogOut, RoleHistoryOut, UserListResponse, UserOut
from authcore.services.audit_service import AuditTrail
from authcore.services.permission_service import PermissionEvaluator

router = APIRouter(prefix="/admin", tags=["admin"])
health_router = APIRouter(tags=["health"])


def user_to_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        permissions=load_permission_list(user.permissions_json),
        is_active=user.is_active,
        role_history=[RoleHistoryOut.model_validate(h) for h in user.role_history],
        created_at=user.created_at,
    )


@router.get("/users", response_model=UserListResponse)
def admin_list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    role: str = Query(None),
    db: Session = Depends(get_db),
    user_id: int = Depends(RequirePermission("users.read")),
):
    """List users, optionally filtered by role name."""
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    total = query.count()
    users = query.order_by(User.id).offset((page - 1) * page_size).limit(page_size).all()
    return UserListResponse(
        users=[user_to_out(u) for u in users],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/users/{target_id}", response_model=UserOut)
def admin_get_user(
    target_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(RequirePermission("users.read")),
):
    user = db.get(User, target_id)
    if user is None:
        raise ResourceNotFoundError(f"User {target_id} not found")
    return user_to_out(user)


@router.get("/users/{target_id}/audit", response_model=list[AuditLogOut])
def admin_user_audit(
    target_id: int,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit_trail),
    user_id: int = Depends(RequirePermission("users.read", "audit.read")),
):
    """Audit entries performed by or targeting a user."""
    return audit.get_user_logs(db, target_id, limit)


@router.post("/cache/invalidate")
def admin_invalidate_cache(
    target_id: int = Query(None, description="Only this user's entries"),
    evaluator: PermissionEvaluator = Depends(get_permission_evaluator),
    user_id: int = Depends(RequirePermission("settings.update")),
):
    """Drop cached permission decisions for one user, or everyone."""
    if target_id is not None:
        removed = evaluator.invalidate_user(target_id)
    else:
        removed = evaluator.invalidate_all()
    return {"removed": removed}


@health_router.get("/health")
def health(
    db: Session = Depends(get_db),
    evaluator: PermissionEvaluator = Depends(get_permission_evaluator),
):
    """Service health: database reachability and permission cache stats."""
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as exc:
        database = f"error: {str(exc)[:100]}"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "service": settings.APP_NAME,
        "database": database,
        "permission_cache": evaluator.cache_stats(),
    }
