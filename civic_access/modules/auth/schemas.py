from pydantic import BaseModel
from typing import List, Optional


class PrincipalResponse(BaseModel):
    id: str
    email: str
    municipality_id: Optional[str] = None
    organization_id: Optional[str] = None
    institution_id: Optional[str] = None
    areas_of_expertise: List[str] = []
    roles: List[str]
    permissions: List[str]
    functional_roles: List[str]
    is_admin: bool


class PermissionCheckRequest(BaseModel):
    permissions: List[str]
    require_all: bool = False


class PermissionCheckResponse(BaseModel):
    allowed: bool
    results: dict


class LogoutResponse(BaseModel):
    message: str
