"""
Core dependencies for route protection and permission checking
"""

from fastapi import Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from civic_access.database.entity_store import EntityStore
from civic_access.database.supabase_client import get_service_supabase, get_supabase
from civic_access.core.exceptions import AuthenticationMissing, PermissionDenied
from civic_access.core.field_security import FieldLevelEnforcement
from civic_access.core.permissions import PermissionResolver, PrincipalLoader, principal_cache
from civic_access.core.principal import Principal, Session
from civic_access.core.protected import ProtectedPage
from civic_access.core.row_level_security import RowLevelSecurity
from civic_access.modules.auth.service import AuthService
from supabase import Client
from typing import List, Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _get_request_cache(request: Request) -> Dict[str, Any]:
    """Return request-scoped cache for access data (principal)."""
    if not hasattr(request.state, "access_cache"):
        request.state.access_cache = {}
    return request.state.access_cache


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase, principal_cache)


def get_entity_store(supabase: Client = Depends(get_supabase)) -> EntityStore:
    return EntityStore(supabase)


def get_service_entity_store(supabase: Client = Depends(get_service_supabase)) -> EntityStore:
    """Store on the service-role client, for role grants and notifications"""
    return EntityStore(supabase)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> Optional[str]:
    if credentials is None:
        return None
    return credentials.credentials


def get_current_session(
    token: Optional[str] = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service)
) -> Optional[Session]:
    """Session for the bearer token, or None for anonymous callers"""
    if token is None:
        return None
    return auth_service.get_current_session(token)


def get_principal(
    request: Request,
    session: Optional[Session] = Depends(get_current_session),
    store: EntityStore = Depends(get_entity_store)
) -> Optional[Principal]:
    """Resolve the principal once per request; the loader caches it per user across requests."""
    if session is None:
        return None
    cache = _get_request_cache(request)
    if "principal" not in cache:
        cache["principal"] = PrincipalLoader(store, principal_cache).load(session)
    return cache["principal"]


def require_principal(principal: Optional[Principal] = Depends(get_principal)) -> Principal:
    if principal is None:
        raise AuthenticationMissing()
    return principal


def get_permission_resolver(principal: Optional[Principal] = Depends(get_principal)) -> PermissionResolver:
    return PermissionResolver(principal)


def get_row_level_security(principal: Optional[Principal] = Depends(get_principal)) -> RowLevelSecurity:
    return RowLevelSecurity(principal)


def get_field_enforcement(principal: Optional[Principal] = Depends(get_principal)) -> FieldLevelEnforcement:
    return FieldLevelEnforcement(principal)


def protected_page(
    required_permissions: Optional[List[str]] = None,
    required_roles: Optional[List[str]] = None
):
    """Factory for a dependency gating a whole route. Empty requirements admit any authenticated user."""
    page = ProtectedPage(required_permissions, required_roles)

    def check_page(resolver: PermissionResolver = Depends(get_permission_resolver)) -> Principal:
        page.guard(resolver)
        return resolver.principal
    return check_page


def require_permission(required_permission: str):
    """Factory function to create permission check dependency"""
    return protected_page(required_permissions=[required_permission])


def require_any_permission(required_permissions: List[str]):
    return protected_page(required_permissions=required_permissions)


def require_all_permissions(required_permissions: List[str]):
    """Factory for a dependency requiring every listed permission"""
    page = ProtectedPage()

    def check_permissions(resolver: PermissionResolver = Depends(get_permission_resolver)) -> Principal:
        page.guard(resolver)
        if not resolver.has_all_permissions(required_permissions):
            raise PermissionDenied(f"Insufficient permissions. Required: {', '.join(required_permissions)}")
        return resolver.principal
    return check_permissions


def require_role(role: str):
    return protected_page(required_roles=[role])
