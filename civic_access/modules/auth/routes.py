from fastapi import APIRouter, Depends
from civic_access.modules.auth.schemas import (
    PrincipalResponse, PermissionCheckRequest, PermissionCheckResponse, LogoutResponse
)
from civic_access.modules.auth.service import AuthService
from civic_access.core.dependencies import (
    get_auth_service, get_bearer_token, get_permission_resolver, require_principal
)
from civic_access.core.exceptions import AuthenticationMissing
from civic_access.core.permissions import PermissionResolver
from civic_access.core.principal import Principal
from civic_access.core.protected import ProtectedAction
from typing import Optional

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=PrincipalResponse)
async def get_current_user(principal: Principal = Depends(require_principal)):
    """Current principal with roles and permissions (for frontend UI)."""
    return PrincipalResponse(
        id=principal.id,
        email=principal.email,
        municipality_id=principal.municipality_id,
        organization_id=principal.organization_id,
        institution_id=principal.institution_id,
        areas_of_expertise=principal.areas_of_expertise,
        roles=sorted(principal.roles),
        permissions=sorted(principal.permissions),
        functional_roles=sorted(principal.functional_roles),
        is_admin=principal.is_admin
    )


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permissions(
    check: PermissionCheckRequest,
    resolver: PermissionResolver = Depends(get_permission_resolver)
):
    """Evaluate a permission list the way a protected action would"""
    gate = ProtectedAction(permissions=check.permissions, require_all=check.require_all).gate(resolver)
    return PermissionCheckResponse(
        allowed=gate.allowed,
        results={token: resolver.has_permission(token) for token in check.permissions}
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    token: Optional[str] = Depends(get_bearer_token),
    principal: Principal = Depends(require_principal),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and drop the cached principal"""
    if token is None:
        raise AuthenticationMissing()
    service.logout(token, principal.id)
    return LogoutResponse(message="Logged out successfully")
