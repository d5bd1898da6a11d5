"""
Generic entity store over Supabase.
Reads take an optional QueryFilter which is pushed down to PostgREST.
"""

from supabase import Client
from civic_access.config.permissions_config import get_entity_table
from civic_access.core.query_filter import QueryFilter, apply_to_query
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class EntityStore:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _select(self, entity_type: str, columns: str = "*", **kwargs):
        return self.supabase.table(get_entity_table(entity_type)).select(columns, **kwargs)

    def get(self, entity_type: str, entity_id: str, query_filter: Optional[QueryFilter] = None) -> Optional[Dict[str, Any]]:
        """Fetch one record by id, or None when missing or filtered out"""
        if query_filter is not None and query_filter.is_empty:
            return None
        query = self._select(entity_type).eq("id", entity_id)
        if query_filter is not None:
            query = apply_to_query(query, query_filter)
        result = query.limit(1).execute()
        if not result.data:
            return None
        return result.data[0]

    def list(
        self,
        entity_type: str,
        query_filter: Optional[QueryFilter] = None,
        order_by: Optional[str] = "created_at",
        desc: bool = True,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """List records matching the filter"""
        if query_filter is not None and query_filter.is_empty:
            return []
        query = self._select(entity_type)
        if query_filter is not None:
            query = apply_to_query(query, query_filter)
        if order_by:
            query = query.order(order_by, desc=desc)
        if limit is not None:
            query = query.range(offset, offset + limit - 1)
        result = query.execute()
        return result.data or []

    def count(self, entity_type: str, query_filter: Optional[QueryFilter] = None) -> int:
        """Exact row count for the filter"""
        if query_filter is not None and query_filter.is_empty:
            return 0
        query = self._select(entity_type, "id", count="exact")
        if query_filter is not None:
            query = apply_to_query(query, query_filter)
        result = query.execute()
        if result.count is not None:
            return result.count
        return len(result.data or [])

    def create(self, entity_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        result = self.supabase.table(get_entity_table(entity_type)).insert(payload).execute()
        if not result.data:
            raise RuntimeError(f"Failed to create {entity_type}")
        return result.data[0]

    def update(
        self,
        entity_type: str,
        entity_id: str,
        patch: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """Update a record. With ``expected`` the update only applies when those
        columns still hold the given values; returns None when nothing matched."""
        query = self.supabase.table(get_entity_table(entity_type))\
            .update(patch)\
            .eq("id", entity_id)
        for column, value in (expected or {}).items():
            query = query.eq(column, value)
        result = query.execute()
        if not result.data:
            return None
        return result.data[0]

    def upsert(self, entity_type: str, payload: Dict[str, Any], on_conflict: str) -> Dict[str, Any]:
        result = self.supabase.table(get_entity_table(entity_type))\
            .upsert(payload, on_conflict=on_conflict)\
            .execute()
        if not result.data:
            raise RuntimeError(f"Failed to upsert {entity_type}")
        return result.data[0]

    def delete(self, entity_type: str, entity_id: str) -> bool:
        result = self.supabase.table(get_entity_table(entity_type))\
            .delete()\
            .eq("id", entity_id)\
            .execute()
        return len(result.data or []) > 0

    def get_user_permissions(self, user_id: str) -> List[str]:
        """Backend-computed permission tokens for a user"""
        result = self.supabase.rpc("get_user_permissions", {"_user_id": user_id}).execute()
        names = []
        for row in result.data or []:
            if isinstance(row, str):
                names.append(row)
            elif isinstance(row, dict):
                name = row.get("permission_code") or row.get("permission") or row.get("name")
                if name:
                    names.append(name)
        return names

    def get_user_functional_roles(self, user_id: str) -> List[Dict[str, Any]]:
        """Backend-computed functional roles for a user, as {"role_name": ...} rows"""
        result = self.supabase.rpc("get_user_functional_roles", {"_user_id": user_id}).execute()
        return [row for row in (result.data or []) if isinstance(row, dict)]
