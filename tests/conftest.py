"""Shared fixtures: an in-memory stand-in for the supabase-py query builder."""

from __future__ import annotations

import json
import re
import threading
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest

from civic_access.config.settings import Settings
from civic_access.core.permissions import principal_cache
from civic_access.core.principal import Principal
from civic_access.modules.auth.service import clear_session_cache

_OR_TERM = re.compile(r'([\w\->]+)\.(eq|cs)\."((?:[^"\\]|\\.)*)"')


def _lookup(row: Dict[str, Any], column: str) -> Any:
    """Column value, following PostgREST -> / ->> JSON paths."""
    parts = re.split(r"->>?", column)
    value: Any = row
    for part in parts:
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


def _sort_key(value: Any):
    if value is None:
        return (1, 0)
    return (0, _comparable(value))


def _contains(actual: Any, payload: Any) -> bool:
    if isinstance(actual, str):
        try:
            actual = json.loads(actual)
        except ValueError:
            return False
    if not isinstance(actual, list):
        return False
    for wanted in payload:
        if isinstance(wanted, dict):
            found = any(
                isinstance(item, dict) and all(item.get(k) == v for k, v in wanted.items())
                for item in actual
            )
        else:
            found = wanted in actual
        if not found:
            return False
    return True


def _parse_or(expression: str) -> Callable[[Dict[str, Any]], bool]:
    terms = []
    for column, op, raw in _OR_TERM.findall(expression):
        value = raw.replace('\\"', '"').replace("\\\\", "\\")
        terms.append((column, op, value))

    def predicate(row: Dict[str, Any]) -> bool:
        for column, op, value in terms:
            actual = _lookup(row, column)
            if op == "eq" and actual is not None and str(actual) == value:
                return True
            if op == "cs" and _contains(actual, json.loads(value)):
                return True
        return False

    return predicate


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.action = "select"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.count_mode: Optional[str] = None
        self.order_by: List[tuple] = []
        self._limit: Optional[int] = None
        self._offset = 0

    # Builders

    def select(self, columns: str = "*", count: Optional[str] = None):
        self.count_mode = count
        return self

    def insert(self, payload):
        self.action, self.payload = "insert", payload
        return self

    def update(self, patch):
        self.action, self.payload = "update", patch
        return self

    def upsert(self, payload, on_conflict: Optional[str] = None):
        self.action, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def delete(self):
        self.action = "delete"
        return self

    # Filters

    def eq(self, column, value):
        self.filters.append(lambda r: _lookup(r, column) == value)
        return self

    def gte(self, column, value):
        self.filters.append(
            lambda r: _lookup(r, column) is not None and _comparable(_lookup(r, column)) >= _comparable(value)
        )
        return self

    def lte(self, column, value):
        self.filters.append(
            lambda r: _lookup(r, column) is not None and _comparable(_lookup(r, column)) <= _comparable(value)
        )
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda r: _lookup(r, column) in values)
        return self

    def ilike(self, column, pattern):
        regex = re.compile("^" + ".*".join(re.escape(p) for p in pattern.split("%")) + "$", re.IGNORECASE)
        self.filters.append(lambda r: isinstance(_lookup(r, column), str) and bool(regex.match(_lookup(r, column))))
        return self

    def contains(self, column, payload):
        self.filters.append(lambda r: _contains(_lookup(r, column), payload))
        return self

    def or_(self, expression):
        self.db.or_expressions.append(expression)
        self.filters.append(_parse_or(expression))
        return self

    def order(self, column, desc: bool = False):
        self.order_by.append((column, desc))
        return self

    def limit(self, n):
        self._limit = n
        return self

    def range(self, start, end):
        self._offset = start
        self._limit = end - start + 1
        return self

    # Execution

    def _matching(self, rows):
        return [r for r in rows if all(f(r) for f in self.filters)]

    def execute(self):
        self.db.calls.append((self.table_name, self.action))
        if self.table_name in self.db.failing_tables:
            raise Exception(f"relation '{self.table_name}' unavailable")
        with self.db.lock:
            rows = self.db.tables.setdefault(self.table_name, [])
            return getattr(self, f"_execute_{self.action}")(rows)

    def _execute_select(self, rows):
        result = self._matching(rows)
        for column, desc in reversed(self.order_by):
            result.sort(key=lambda r: _sort_key(_lookup(r, column)), reverse=desc)
        count = len(result) if self.count_mode else None
        end = None if self._limit is None else self._offset + self._limit
        result = result[self._offset:end]
        return SimpleNamespace(data=[dict(r) for r in result], count=count)

    def _new_row(self, payload):
        row = dict(payload)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        return row

    def _execute_insert(self, rows):
        payloads = self.payload if isinstance(self.payload, list) else [self.payload]
        created = [self._new_row(p) for p in payloads]
        rows.extend(created)
        return SimpleNamespace(data=[dict(r) for r in created], count=None)

    def _execute_update(self, rows):
        updated = []
        for row in self._matching(rows):
            row.update(self.payload)
            updated.append(dict(row))
        return SimpleNamespace(data=updated, count=None)

    def _execute_upsert(self, rows):
        keys = [k.strip() for k in (self.on_conflict or "id").split(",")]
        for row in rows:
            if all(row.get(k) == self.payload.get(k) for k in keys):
                row.update(self.payload)
                return SimpleNamespace(data=[dict(row)], count=None)
        created = self._new_row(self.payload)
        rows.append(created)
        return SimpleNamespace(data=[dict(created)], count=None)

    def _execute_delete(self, rows):
        removed = self._matching(rows)
        for row in removed:
            rows.remove(row)
        return SimpleNamespace(data=[dict(r) for r in removed], count=None)


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: Dict[str, Any]):
        self.db = db
        self.name = name
        self.params = params

    def execute(self):
        self.db.calls.append((self.name, "rpc"))
        handler = self.db.rpc_handlers.get(self.name)
        if handler is None:
            return SimpleNamespace(data=[], count=None)
        return SimpleNamespace(data=handler(self.params), count=None)


class FakeAuth:
    def __init__(self):
        self.tokens: Dict[str, SimpleNamespace] = {}
        self.sign_outs = 0

    def get_user(self, jwt: Optional[str] = None):
        user = self.tokens.get(jwt)
        if user is None:
            raise Exception("invalid JWT: signature mismatch")
        return SimpleNamespace(user=user)

    def sign_out(self):
        self.sign_outs += 1


class FakeSupabase:
    """Just enough of supabase.Client for the services under test."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.permissions: Dict[str, List[str]] = {}
        self.functional_roles: Dict[str, List[Dict[str, Any]]] = {}
        self.rpc_handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "get_user_permissions": lambda p: self.permissions.get(p["_user_id"], []),
            "get_user_functional_roles": lambda p: self.functional_roles.get(p["_user_id"], []),
        }
        self.failing_tables: set = set()
        self.or_expressions: List[str] = []
        self.calls: List[tuple] = []
        self.lock = threading.Lock()
        self.auth = FakeAuth()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)

    def seed(self, table: str, *rows: Dict[str, Any]) -> List[Dict[str, Any]]:
        created = []
        for row in rows:
            created.append(FakeQuery(self, table)._new_row(row))
        self.tables.setdefault(table, []).extend(created)
        return created

    def writes(self, table: str) -> List[str]:
        return [action for name, action in self.calls if name == table and action != "select"]

    def add_user(self, token: str, user_id: str, email: str, roles=(), permissions=(), functional_roles=(), **profile):
        """Register a bearer token and the rows the principal loader reads."""
        self.auth.tokens[token] = SimpleNamespace(id=user_id, email=email)
        self.seed("user_profiles", {"user_id": user_id, "user_email": email, **profile})
        for role in roles:
            self.seed("user_roles", {"user_id": user_id, "user_email": email, "role": role, "is_active": True})
        self.permissions[user_id] = list(permissions)
        self.functional_roles[user_id] = [{"role_name": r} for r in functional_roles]


def hours_ago(hours: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()


def make_principal(**overrides) -> Principal:
    values = {"id": "user-1", "email": "u@x.com"}
    values.update(overrides)
    for key in ("roles", "permissions", "functional_roles"):
        if key in values:
            values[key] = frozenset(values[key])
    return Principal(**values)


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def test_settings():
    return Settings(_env_file=None, supabase_url="http://localhost", supabase_key="anon")


@pytest.fixture(autouse=True)
def _reset_caches():
    principal_cache.clear()
    clear_session_cache()
    yield
    principal_cache.clear()
    clear_session_cache()
