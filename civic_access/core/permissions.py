"""
Permission resolution.

PrincipalLoader builds a Principal from four independent lookups (profile,
roles, permission RPC, functional-role RPC) issued concurrently. A failed
lookup degrades to an empty result and is logged; it never fails the request.
PermissionResolver answers permission/role questions over a loaded Principal
and never performs I/O.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from civic_access.config.permissions_config import WILDCARD_PERMISSION, get_permission_prefix
from civic_access.config.settings import settings
from civic_access.core.exceptions import LookupDegraded
from civic_access.core.principal import Principal, Session
from civic_access.core.query_filter import QueryFilter
from civic_access.database.entity_store import EntityStore
import logging

logger = logging.getLogger(__name__)


class PermissionResolver:
    def __init__(self, principal: Optional[Principal]):
        self.principal = principal

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    @property
    def is_admin(self) -> bool:
        return self.principal is not None and self.principal.is_admin

    def has_permission(self, token: str) -> bool:
        if self.principal is None:
            return False
        if self.principal.is_admin:
            return True
        return WILDCARD_PERMISSION in self.principal.permissions or token in self.principal.permissions

    def has_any_permission(self, tokens: Iterable[str]) -> bool:
        return any(self.has_permission(token) for token in tokens)

    def has_all_permissions(self, tokens: Iterable[str]) -> bool:
        return all(self.has_permission(token) for token in tokens)

    def has_role(self, role: str) -> bool:
        return self.principal is not None and role in self.principal.roles

    def has_functional_role(self, role: str) -> bool:
        return self.principal is not None and role in self.principal.functional_roles

    def can_access_entity(self, entity_type: str, action: str) -> bool:
        """Shorthand for has_permission("<entity>_<action>")"""
        return self.has_permission(f"{get_permission_prefix(entity_type)}_{action}")


class PrincipalCache:
    """Session-scoped principals keyed by user id, with TTL and a size bound"""

    def __init__(self, ttl_seconds: int, max_size: int):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._entries: Dict[str, Tuple[Principal, float]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[Principal]:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            principal, expiry = entry
            if now >= expiry:
                del self._entries[user_id]
                return None
            return principal

    def set(self, principal: Principal) -> None:
        with self._lock:
            if principal.id not in self._entries and len(self._entries) >= self.max_size:
                self._evict_expired()
                if len(self._entries) >= self.max_size:
                    return
            self._entries[principal.id] = (principal, time.monotonic() + self.ttl_seconds)

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)
        logger.info(f"Invalidated cached principal for user {user_id}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _evict_expired(self) -> None:
        now = time.monotonic()
        for user_id in [k for k, (_, expiry) in self._entries.items() if now >= expiry]:
            del self._entries[user_id]


principal_cache = PrincipalCache(
    ttl_seconds=settings.principal_cache_ttl_seconds,
    max_size=settings.principal_cache_max_size,
)


class PrincipalLoader:
    def __init__(self, store: EntityStore, cache: Optional[PrincipalCache] = None):
        self.store = store
        self.cache = cache

    def load_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = self.store.list("user_profiles", _user_filter(user_id), order_by=None, limit=1)
        return rows[0] if rows else None

    def load_roles(self, user_id: str) -> List[Dict[str, Any]]:
        rows = self.store.list("user_roles", _user_filter(user_id), order_by=None)
        # Revoked grants keep their row with is_active = false
        return [row for row in rows if row.get("is_active") is not False]

    def load_permissions(self, user_id: str) -> List[str]:
        return self.store.get_user_permissions(user_id)

    def load_functional_roles(self, user_id: str) -> List[str]:
        names = []
        for row in self.store.get_user_functional_roles(user_id):
            name = row.get("role_name") or row.get("name")
            if name:
                names.append(name)
        return names

    def load(self, session: Session) -> Principal:
        """Resolve the principal for a session, using the cache when present"""
        if self.cache is not None:
            cached = self.cache.get(session.user_id)
            if cached is not None:
                return cached

        lookups: Dict[str, Callable[[str], Any]] = {
            "profile": self.load_profile,
            "roles": self.load_roles,
            "permissions": self.load_permissions,
            "functional_roles": self.load_functional_roles,
        }
        with ThreadPoolExecutor(max_workers=settings.principal_lookup_workers) as executor:
            futures = {
                dimension: executor.submit(self._degrade, dimension, lookup, session.user_id)
                for dimension, lookup in lookups.items()
            }
            outcomes = {dimension: future.result() for dimension, future in futures.items()}
        results = {dimension: value for dimension, (value, _) in outcomes.items()}
        degraded = [dimension for dimension, (_, ok) in outcomes.items() if not ok]

        principal = build_principal(
            session,
            profile=results["profile"],
            role_rows=results["roles"] or [],
            permissions=results["permissions"] or [],
            functional_roles=results["functional_roles"] or [],
        )
        if degraded:
            logger.info(f"Not caching principal for user {session.user_id}; degraded lookups: {', '.join(degraded)}")
        elif self.cache is not None:
            self.cache.set(principal)
        return principal

    @staticmethod
    def _degrade(dimension: str, lookup: Callable[[str], Any], user_id: str) -> Tuple[Any, bool]:
        """Run one lookup; a failure yields (None, False) instead of raising."""
        try:
            return lookup(user_id), True
        except Exception as e:
            degraded = LookupDegraded(dimension, e)
            if dimension in ("permissions", "functional_roles"):
                logger.warning(f"{degraded.message} for user {user_id}; using empty set")
            else:
                logger.error(f"{degraded.message} for user {user_id}; using empty result")
            return None, False


def _user_filter(user_id: str) -> QueryFilter:
    return QueryFilter.where(user_id=user_id)


def build_principal(
    session: Session,
    profile: Optional[Dict[str, Any]],
    role_rows: List[Dict[str, Any]],
    permissions: List[str],
    functional_roles: List[str]
) -> Principal:
    """Merge lookup results. Scope ids come from the profile, then from scoped role grants."""
    profile = profile or {}

    def scoped(key: str) -> Optional[str]:
        if profile.get(key):
            return profile[key]
        for row in role_rows:
            if row.get(key):
                return row[key]
        return None

    return Principal(
        id=session.user_id,
        email=session.user_email or profile.get("user_email") or "",
        municipality_id=scoped("municipality_id"),
        organization_id=scoped("organization_id"),
        institution_id=profile.get("institution_id"),
        areas_of_expertise=list(profile.get("expertise_areas") or profile.get("areas_of_expertise") or []),
        roles=frozenset(row["role"] for row in role_rows if row.get("role")),
        permissions=frozenset(permissions),
        functional_roles=frozenset(functional_roles),
    )
