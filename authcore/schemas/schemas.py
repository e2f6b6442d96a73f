"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


# ---- Role ----
class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    display_name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    permissions: List[str]
    priority: int = Field(..., ge=1, le=100)
    is_active: bool = True

class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    permissions: Optional[List[str]] = None
    priority: Optional[int] = Field(None, ge=1, le=100)
    is_active: Optional[bool] = None
    reason: Optional[str] = None

class RoleOut(BaseModel):
    id: int
    name: str
    display_name: str
    description: str
    permissions: List[str]
    priority: int
    is_system_role: bool
    is_active: bool
    user_count: int = 0
    last_assigned_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class RoleAssignRequest(BaseModel):
    user_id: int
    role_name: str = Field(..., min_length=1)
    reason: str = ""


# ---- User ----
class RoleHistoryOut(BaseModel):
    role: str
    assigned_by: Optional[int] = None
    assigned_at: datetime
    reason: Optional[str] = None

    class Config:
        from_attributes = True

class UserOut(BaseModel):
    id: int
    email: str
    full_name: str
    role: str
    permissions: List[str] = []
    is_active: bool = True
    role_history: List[RoleHistoryOut] = []
    created_at: Optional[datetime] = None

class UserListResponse(BaseModel):
    users: List[UserOut]
    total: int
    page: int
    page_size: int


# ---- Permissions ----
class PermissionOut(BaseModel):
    permission: str
    resource: str
    action: str
    risk: str
    description: str

class UserPermissionsOut(BaseModel):
    user_id: int
    permissions: List[str]
    grouped: Dict[str, List[str]]


# ---- Audit ----
class AuditLogFilter(BaseModel):
    actor_id: Optional[int] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    action: Optional[str] = None
    risk_level: Optional[str] = None
    reviewed: Optional[bool] = None
    success: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

class AuditLogOut(BaseModel):
    id: int
    actor_id: Optional[int] = None
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    ip_address: Optional[str] = None
    status_code: Optional[int] = None
    success: bool
    response_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    changes_json: Optional[str] = None
    details_json: Optional[str] = None
    risk_level: str
    retention_date: datetime
    reviewed: bool
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class AuditLogListResponse(BaseModel):
    logs: List[AuditLogOut]
    total: int
    page: int
    page_size: int

class ActionStatsOut(BaseModel):
    action: str
    count: int
    success_count: int
    failure_count: int
    avg_response_time_ms: Optional[float] = None

class ActorSummaryOut(BaseModel):
    actor_id: int
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    action_count: int
    failure_count: int
    last_activity_at: Optional[datetime] = None

class PurgeRequest(BaseModel):
    days: int = Field(..., ge=1)


# ---- Generic ----
class MessageResponse(BaseModel):
    message: str
    detail: Optional[Any] = None
