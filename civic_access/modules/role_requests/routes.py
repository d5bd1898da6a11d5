from fastapi import APIRouter, Depends
from civic_access.database.supabase_client import get_service_supabase
from civic_access.modules.role_requests.schemas import (
    RoleRequestCreate, RoleRequestResponse, RoleRequestResult, ApproveRequest, RejectRequest
)
from civic_access.modules.role_requests.service import RoleRequestService
from civic_access.modules.notifications.service import NotificationService
from civic_access.modules.roles.service import RoleAssignmentService
from civic_access.core.dependencies import protected_page, require_principal
from civic_access.core.permissions import principal_cache
from civic_access.core.principal import Principal
from supabase import Client
from typing import List

router = APIRouter(prefix="/role-requests", tags=["role-requests"])

require_admin = protected_page(required_roles=["admin"])


def get_role_request_service(supabase: Client = Depends(get_service_supabase)) -> RoleRequestService:
    return RoleRequestService(
        supabase,
        RoleAssignmentService(supabase, principal_cache),
        NotificationService(supabase)
    )


@router.post("", response_model=RoleRequestResult, status_code=201)
async def create_role_request(
    request_data: RoleRequestCreate,
    principal: Principal = Depends(require_principal),
    service: RoleRequestService = Depends(get_role_request_service)
):
    """Request an additional role (at most 3 per rolling 24h)"""
    return service.request_role(
        principal,
        request_data.requested_role,
        request_data.justification,
        municipality_id=request_data.municipality_id,
        organization_id=request_data.organization_id
    )


@router.get("/mine", response_model=List[RoleRequestResponse])
async def list_my_requests(
    principal: Principal = Depends(require_principal),
    service: RoleRequestService = Depends(get_role_request_service)
):
    return service.list_my_requests(principal)


@router.get("/pending", response_model=List[RoleRequestResponse])
async def list_pending_requests(
    admin: Principal = Depends(require_admin),
    service: RoleRequestService = Depends(get_role_request_service)
):
    """Approval queue, newest first (admin only)"""
    return service.list_pending_requests()


@router.get("/{request_id}", response_model=RoleRequestResponse)
async def get_role_request(
    request_id: str,
    admin: Principal = Depends(require_admin),
    service: RoleRequestService = Depends(get_role_request_service)
):
    return service.get_request(request_id)


@router.post("/{request_id}/approve", response_model=RoleRequestResult)
async def approve_role_request(
    request_id: str,
    details: ApproveRequest,
    admin: Principal = Depends(require_admin),
    service: RoleRequestService = Depends(get_role_request_service)
):
    """Approve a pending request and grant the role (admin only)"""
    return service.approve_request(admin, request_id, details)


@router.post("/{request_id}/reject", response_model=RoleRequestResult)
async def reject_role_request(
    request_id: str,
    rejection: RejectRequest,
    admin: Principal = Depends(require_admin),
    service: RoleRequestService = Depends(get_role_request_service)
):
    """Reject a pending request with an optional reason (admin only)"""
    return service.reject_request(admin, request_id, rejection.reason)
