from pydantic import BaseModel
from civic_access.modules.roles.schemas import RoleAssignmentDetails
from typing import Optional
from datetime import datetime


class RoleRequestCreate(BaseModel):
    requested_role: str
    justification: str
    municipality_id: Optional[str] = None
    organization_id: Optional[str] = None


class RoleRequestResponse(BaseModel):
    id: str
    user_id: Optional[str] = None
    user_email: str
    requested_role: str
    justification: str
    status: str
    municipality_id: Optional[str] = None
    organization_id: Optional[str] = None
    review_notes: Optional[str] = None
    approver_email: Optional[str] = None
    reviewed_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ApproveRequest(RoleAssignmentDetails):
    review_notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class NotificationStatus(BaseModel):
    delivered: bool
    error: Optional[str] = None


class RoleRequestResult(BaseModel):
    """Persisted request plus the outcome of the best-effort notification"""
    request: RoleRequestResponse
    notification: NotificationStatus
