from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class RoleAssignmentDetails(BaseModel):
    """Scope of a role grant made on approval"""
    role: Optional[str] = None  # defaults to the requested role
    municipality_id: Optional[str] = None
    organization_id: Optional[str] = None


class UserRoleResponse(BaseModel):
    id: str
    user_id: str
    user_email: Optional[str] = None
    role: str
    role_id: Optional[str] = None
    municipality_id: Optional[str] = None
    organization_id: Optional[str] = None
    is_active: bool = True
    assigned_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AutoApprovalRequest(BaseModel):
    persona_type: str
    institution_domain: Optional[str] = None


class AutoApprovalResponse(BaseModel):
    auto_approved: bool
    role: Optional[str] = None
    requires_approval: bool = False
    suggested_role: Optional[str] = None


class RoleOption(BaseModel):
    role: str
    display_name: str
