"""
Row-level security.

Each protected entity type registers one rule per principal shape. A rule
turns the principal into scoping clauses; a record is visible when any clause
matches. The same clauses back the in-memory check (can_access_entity,
filter_entities) and the PostgREST push-down (apply_rls, get_entity_query).

Resolution for an entity type:
  1. no rules registered      -> open to everyone (including anonymous callers)
  2. no principal             -> nothing
  3. admin                    -> everything
  4. "<prefix>_view_all"      -> everything
  5. first shape, in SHAPE_PRECEDENCE order, that the principal matches and the
     entity has a rule for   -> that rule
  6. otherwise                -> records the principal created

Entity types missing from RLS_RULES are open by default. Register a rule
before exposing anything that must be scoped.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from civic_access.config.permissions_config import get_permission_prefix, resolve_entity_type
from civic_access.core.permissions import PermissionResolver
from civic_access.core.principal import Principal
from civic_access.core.query_filter import CONTAINS, EQ, Clause, QueryFilter
import logging

logger = logging.getLogger(__name__)

MUNICIPALITY = "municipality"
ORGANIZATION = "organization"
PROVIDER = "provider"
ACADEMIC = "academic"
CREATOR = "creator"

RuleFn = Callable[[Principal], List[Clause]]

# Organization and provider users share organization_id; organization is tried first.
SHAPE_PRECEDENCE: List[Tuple[str, Callable[[Principal], bool]]] = [
    (MUNICIPALITY, lambda p: bool(p.municipality_id)),
    (ORGANIZATION, lambda p: bool(p.organization_id)),
    (PROVIDER, lambda p: bool(p.organization_id)),
    (ACADEMIC, lambda p: bool(p.institution_id) or bool(p.areas_of_expertise)),
]


def created_by_me(p: Principal) -> Clause:
    return Clause("created_by", EQ, p.email)


def member_of(field: str, p: Principal) -> Clause:
    """Principal's email appears in a JSON array of {email: ...} objects"""
    return Clause(field, CONTAINS, p.email, key="email")


def same_municipality(p: Principal) -> List[Clause]:
    # city_id is an alternate scoping key on older records
    return [
        Clause("municipality_id", EQ, p.municipality_id),
        Clause("city_id", EQ, p.municipality_id),
    ]


def challenge_for_organization(p: Principal) -> List[Clause]:
    return [created_by_me(p), member_of("stakeholders", p)]


def pilot_for_provider(p: Principal) -> List[Clause]:
    return [member_of("team", p), created_by_me(p)]


def solution_for_provider(p: Principal) -> List[Clause]:
    return [Clause("provider_id", EQ, p.organization_id), created_by_me(p)]


def rd_project_for_academic(p: Principal) -> List[Clause]:
    return [
        Clause("principal_investigator.email", EQ, p.email),
        member_of("team_members", p),
        created_by_me(p),
    ]


def own_organization(p: Principal) -> List[Clause]:
    return [Clause("id", EQ, p.organization_id)]


def creator_only(p: Principal) -> List[Clause]:
    return [created_by_me(p)]


RLS_RULES: Dict[str, Dict[str, RuleFn]] = {
    "Challenge": {
        MUNICIPALITY: same_municipality,
        ORGANIZATION: challenge_for_organization,
    },
    "Pilot": {
        MUNICIPALITY: same_municipality,
        PROVIDER: pilot_for_provider,
    },
    "Solution": {
        PROVIDER: solution_for_provider,
    },
    "RDProject": {
        ACADEMIC: rd_project_for_academic,
    },
    "Organization": {
        ORGANIZATION: own_organization,
    },
}


class RowLevelSecurity:
    def __init__(self, principal: Optional[Principal], rules: Optional[Dict[str, Dict[str, RuleFn]]] = None):
        self.principal = principal
        self.permissions = PermissionResolver(principal)
        self.rules = RLS_RULES if rules is None else rules

    def _rules_for(self, entity_type: str) -> Dict[str, RuleFn]:
        canonical = resolve_entity_type(entity_type) or entity_type
        return self.rules.get(canonical) or {}

    def bypasses(self, entity_type: str) -> bool:
        """Admins and holders of "<prefix>_view_all" skip row rules"""
        if self.permissions.is_admin:
            return True
        return self.permissions.has_permission(f"{get_permission_prefix(entity_type)}_view_all")

    def select_rule(self, entity_type: str) -> Tuple[str, RuleFn]:
        """Shape name and rule applied to the current principal"""
        rules = self._rules_for(entity_type)
        if self.principal is not None:
            for shape, predicate in SHAPE_PRECEDENCE:
                if shape in rules and predicate(self.principal):
                    return shape, rules[shape]
        return CREATOR, creator_only

    def get_entity_query(self, entity_type: str) -> QueryFilter:
        """Filter derived purely from the current principal"""
        rules = self._rules_for(entity_type)
        if not rules:
            return QueryFilter.allow_all()
        if self.principal is None:
            return QueryFilter.deny_all()
        if self.bypasses(entity_type):
            return QueryFilter.allow_all()
        shape, rule = self.select_rule(entity_type)
        clauses = tuple(c for c in rule(self.principal) if c.value not in (None, ""))
        logger.debug(f"RLS {entity_type}: user {self.principal.id} scoped by '{shape}' rule")
        return QueryFilter(any_of=clauses)

    def apply_rls(self, entity_type: str, base_query: Optional[QueryFilter] = None) -> QueryFilter:
        """base_query AND the principal's scope, for push-down to the store"""
        scope = self.get_entity_query(entity_type)
        if base_query is None:
            return scope
        return base_query.combine(scope)

    def can_access_entity(self, entity_type: str, record: Optional[Dict[str, Any]]) -> bool:
        if record is None:
            return False
        try:
            return self.get_entity_query(entity_type).matches(record)
        except Exception as e:
            logger.error(f"RLS check failed for {entity_type}: {e}")
            return False

    def filter_entities(self, entity_type: str, records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        query_filter = self.get_entity_query(entity_type)
        if query_filter.is_unrestricted:
            return list(records)
        return [record for record in records if query_filter.matches(record)]
