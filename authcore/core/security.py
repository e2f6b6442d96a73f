"""Request identity and permission-gate helpers.

Authentication happens upstream; by the time a request reaches this service
the caller's user id has been placed on ``request.state.user_id`` (see
``IdentityMiddleware``). This module turns a failed permission check into an
audit entry plus a ``PermissionDeniedError``.
"""

from typing import Any, Dict, Iterable, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from authcore.api.deps import get_permission_evaluator
from authcore.core.exceptions import AuthenticationError, PermissionDeniedError
from authcore.db.session import get_db
from authcore.services.audit_service import request_context
from authcore.services.permission_service import PermissionEvaluator


def get_current_user_id(request: Request) -> int:
    """Return the resolved caller id, or raise 401 if none is attached."""
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        raise AuthenticationError("Not authenticated")
    return int(user_id)


def enforce_permissions(
    db: Session,
    evaluator: PermissionEvaluator,
    user_id: int,
    permissions: Iterable[str],
    mode: str = "all",
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """Raise ``PermissionDeniedError`` unless the user passes the check.

    Every missing permission is recorded as an unauthorized-access audit
    entry before raising.
    """
    permissions = list(permissions)
    if evaluator.check_permissions(db, user_id, permissions, mode):
        return

    missing = evaluator.missing_permissions(db, user_id, permissions) or permissions
    for permission in missing:
        evaluator.log_denied(db, user_id, permission, context)
    raise PermissionDeniedError(
        f"Missing permissions: {', '.join(missing)}", missing=missing
    )


class RequirePermission:
    """Dependency that checks the caller holds the listed permissions.

    Usage:
        @router.delete("/roles/{role_id}")
        def delete_role(user_id: int = Depends(RequirePermission("roles.delete"))):
            ...
    """

    def __init__(self, *permissions: str, mode: str = "all"):
        self.permissions = list(permissions)
        self.mode = mode

    def __call__(
        self,
        request: Request,
        db: Session = Depends(get_db),
        user_id: int = Depends(get_current_user_id),
        evaluator: PermissionEvaluator = Depends(get_permission_evaluator),
    ) -> int:
        enforce_permissions(
            db, evaluator, user_id, self.permissions, self.mode,
            context=request_context(request),
        )
        return user_id
