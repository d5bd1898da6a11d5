"""
Structured row filters.

A QueryFilter is a conjunction of base clauses AND a disjunction of scoping
clauses. The same object is evaluated in memory (``matches``) and translated
into a PostgREST query (``apply_to_query``), so client-side and server-side
filtering give the same answer for a given record.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

EQ = "eq"
CONTAINS = "contains"
GTE = "gte"
LTE = "lte"
IN = "in"

_MISSING = object()


def resolve_path(record: Dict[str, Any], path: str) -> Any:
    """Walk a dotted path ("principal_investigator.email") through nested dicts"""
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, dict):
            return _MISSING
        value = value.get(part, _MISSING)
        if value is _MISSING:
            return _MISSING
    return value


def _load_json_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return []
        return parsed if isinstance(parsed, list) else []
    return []


def _quote(value: Any) -> str:
    text = value if isinstance(value, str) else json.dumps(value)
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass(frozen=True)
class Clause:
    """One predicate over a record field.

    ``contains`` tests membership in a JSON array. With ``key`` set the array
    holds objects and the clause matches when any element has ``element[key] == value``
    (``team[].email``); without it the array holds scalars.
    """

    field: str
    op: str
    value: Any
    key: Optional[str] = None

    def matches(self, record: Dict[str, Any]) -> bool:
        actual = resolve_path(record, self.field)
        if actual is _MISSING or actual is None:
            return False
        if self.op == EQ:
            return actual == self.value
        if self.op == CONTAINS:
            for element in _load_json_list(actual):
                if self.key is None:
                    if element == self.value:
                        return True
                elif isinstance(element, dict) and element.get(self.key) == self.value:
                    return True
            return False
        if self.op == GTE:
            return actual >= self.value
        if self.op == LTE:
            return actual <= self.value
        if self.op == IN:
            return actual in self.value
        return False

    @property
    def column(self) -> str:
        """PostgREST column expression; nested paths use the ->> text operator"""
        parts = self.field.split(".")
        if len(parts) == 1:
            return parts[0]
        return "->".join(parts[:-1]) + "->>" + parts[-1]

    def contains_payload(self) -> List[Any]:
        if self.key is None:
            return [self.value]
        return [{self.key: self.value}]

    def to_postgrest(self) -> str:
        """Render as a PostgREST logic-tree term, e.g. ``municipality_id.eq."m1"``"""
        if self.op == EQ:
            return f"{self.column}.eq.{_quote(self.value)}"
        if self.op == CONTAINS:
            return f"{self.column}.cs.{_quote(json.dumps(self.contains_payload(), separators=(',', ':')))}"
        if self.op == GTE:
            return f"{self.column}.gte.{_quote(self.value)}"
        if self.op == LTE:
            return f"{self.column}.lte.{_quote(self.value)}"
        if self.op == IN:
            return f"{self.column}.in.({','.join(_quote(v) for v in self.value)})"
        raise ValueError(f"Unsupported operator: {self.op}")


@dataclass(frozen=True)
class QueryFilter:
    """``all_of`` AND (any of ``any_of``).

    ``any_of=None`` means no row scoping; an empty tuple never matches.
    ``deny=True`` short-circuits to no rows without touching the store.
    """

    all_of: Tuple[Clause, ...] = ()
    any_of: Optional[Tuple[Clause, ...]] = None
    deny: bool = False

    @classmethod
    def allow_all(cls) -> "QueryFilter":
        return cls()

    @classmethod
    def deny_all(cls) -> "QueryFilter":
        return cls(deny=True)

    @classmethod
    def where(cls, **equals: Any) -> "QueryFilter":
        return cls(all_of=tuple(Clause(name, EQ, value) for name, value in equals.items()))

    @property
    def is_unrestricted(self) -> bool:
        return not self.deny and not self.all_of and self.any_of is None

    @property
    def is_empty(self) -> bool:
        """True when no record can match (deny, or an empty scope)"""
        return self.deny or self.any_of == ()

    def matches(self, record: Dict[str, Any]) -> bool:
        if self.deny:
            return False
        if not all(clause.matches(record) for clause in self.all_of):
            return False
        if self.any_of is None:
            return True
        return any(clause.matches(record) for clause in self.any_of)

    def combine(self, other: "QueryFilter") -> "QueryFilter":
        """Conjunction of two filters. Two scopes are intersected only when one is a single clause."""
        if self.deny or other.deny:
            return QueryFilter.deny_all()
        all_of = self.all_of + other.all_of
        if self.any_of is None:
            return QueryFilter(all_of=all_of, any_of=other.any_of)
        if other.any_of is None:
            return QueryFilter(all_of=all_of, any_of=self.any_of)
        if len(self.any_of) == 1:
            return QueryFilter(all_of=all_of + self.any_of, any_of=other.any_of)
        if len(other.any_of) == 1:
            return QueryFilter(all_of=all_of + other.any_of, any_of=self.any_of)
        raise ValueError("Cannot combine two multi-clause scopes")

    def or_expression(self) -> Optional[str]:
        if not self.any_of:
            return None
        return ",".join(clause.to_postgrest() for clause in self.any_of)


def apply_to_query(query, query_filter: QueryFilter):
    """Push a QueryFilter onto a supabase-py select builder.

    Callers must check ``query_filter.is_empty`` first; a filter that matches
    nothing has no PostgREST rendering.
    """
    if query_filter.is_empty:
        raise ValueError("Filters that match nothing must be short-circuited before querying")
    for clause in query_filter.all_of:
        if clause.op == EQ:
            query = query.eq(clause.column, clause.value)
        elif clause.op == CONTAINS:
            query = query.contains(clause.column, clause.contains_payload())
        elif clause.op == GTE:
            query = query.gte(clause.column, clause.value)
        elif clause.op == LTE:
            query = query.lte(clause.column, clause.value)
        elif clause.op == IN:
            query = query.in_(clause.column, list(clause.value))
        else:
            raise ValueError(f"Unsupported operator: {clause.op}")
    if query_filter.any_of:
        query = query.or_(query_filter.or_expression())
    return query
