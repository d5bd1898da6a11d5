from fastapi import APIRouter, Depends
from civic_access.database.supabase_client import get_service_supabase
from civic_access.config.permissions_config import REQUESTABLE_ROLES, get_role_display_name
from civic_access.modules.roles.schemas import AutoApprovalRequest, AutoApprovalResponse, RoleOption
from civic_access.modules.roles.service import RoleAssignmentService
from civic_access.core.dependencies import require_principal, require_role
from civic_access.core.permissions import principal_cache
from civic_access.core.principal import Principal
from civic_access.core.exceptions import RoleGrantNotFound
from supabase import Client
from typing import List

router = APIRouter(prefix="/roles", tags=["roles"])


def get_role_assignment_service(supabase: Client = Depends(get_service_supabase)) -> RoleAssignmentService:
    return RoleAssignmentService(supabase, principal_cache)


@router.get("/requestable", response_model=List[RoleOption])
async def list_requestable_roles():
    """Roles a user may ask for through a role request"""
    return [RoleOption(role=r, display_name=get_role_display_name(r)) for r in REQUESTABLE_ROLES]


@router.post("/auto-approve", response_model=AutoApprovalResponse)
async def auto_approve(
    check: AutoApprovalRequest,
    principal: Principal = Depends(require_principal),
    service: RoleAssignmentService = Depends(get_role_assignment_service)
):
    """Grant the persona's role immediately when an auto-approval rule matches"""
    return service.check_auto_approval(principal, check.persona_type, check.institution_domain)


@router.delete("/users/{user_id}/{role}", status_code=204)
async def revoke_role(
    user_id: str,
    role: str,
    admin: Principal = Depends(require_role("admin")),
    service: RoleAssignmentService = Depends(get_role_assignment_service)
):
    """Deactivate a user's role grant (admin only)"""
    if not service.revoke_role(user_id, role):
        raise RoleGrantNotFound(user_id, role)
    return None
