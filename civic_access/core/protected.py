"""
Gates for actions and pages.

ProtectedAction decides what a caller gets for a single affordance: the real
thing, a fallback, or a locked placeholder that refuses to run.
ProtectedPage gates a whole page/route on required permissions or roles.
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from civic_access.core.exceptions import AuthenticationMissing, PermissionDenied
from civic_access.core.permissions import PermissionResolver

RENDER = "render"
FALLBACK = "fallback"
LOCKED = "locked"


@dataclass(frozen=True)
class ActionGate:
    mode: str
    fallback: Any = None
    required: tuple = ()

    @property
    def allowed(self) -> bool:
        return self.mode == RENDER

    @property
    def locked(self) -> bool:
        return self.mode == LOCKED

    def render(self, children: Any) -> Any:
        """children when allowed, the fallback otherwise (None for a locked control)"""
        if self.allowed:
            return children
        if self.locked:
            return None
        return self.fallback

    def invoke(self, action: Callable[..., Any], *args, **kwargs) -> Any:
        if not self.allowed:
            raise PermissionDenied(f"Permission denied. Required: {', '.join(self.required) or 'n/a'}")
        return action(*args, **kwargs)


class ProtectedAction:
    """A single ``permission`` and/or a ``permissions`` list, merged; ``require_all`` switches any-of to all-of.
    No tokens at all means no restriction."""

    def __init__(
        self,
        permission: Optional[str] = None,
        permissions: Optional[List[str]] = None,
        require_all: bool = False,
        fallback: Any = None,
        show_lock: bool = False
    ):
        tokens = ([permission] if permission else []) + list(permissions or [])
        self.tokens = list(dict.fromkeys(tokens))
        self.require_all = require_all
        self.fallback = fallback
        self.show_lock = show_lock

    def check(self, resolver: PermissionResolver) -> bool:
        if not self.tokens:
            return True
        if self.require_all:
            return resolver.has_all_permissions(self.tokens)
        return resolver.has_any_permission(self.tokens)

    def gate(self, resolver: PermissionResolver) -> ActionGate:
        if self.check(resolver):
            return ActionGate(mode=RENDER, required=tuple(self.tokens))
        if self.show_lock:
            return ActionGate(mode=LOCKED, required=tuple(self.tokens))
        return ActionGate(mode=FALLBACK, fallback=self.fallback, required=tuple(self.tokens))


class ProtectedPage:
    """Allows when the principal holds any required permission or any required role.
    Empty requirements mean any authenticated user."""

    def __init__(self, required_permissions: Optional[List[str]] = None, required_roles: Optional[List[str]] = None):
        self.required_permissions = list(required_permissions or [])
        self.required_roles = list(required_roles or [])

    def allows(self, resolver: PermissionResolver) -> bool:
        if not self.required_permissions and not self.required_roles:
            return True
        if resolver.is_admin:
            return True
        if resolver.has_any_permission(self.required_permissions):
            return True
        return any(resolver.has_role(role) for role in self.required_roles)

    def guard(self, resolver: PermissionResolver) -> None:
        """Raise unless the page may render"""
        if not resolver.is_authenticated:
            raise AuthenticationMissing()
        if not self.allows(resolver):
            raise PermissionDenied("Access denied")
