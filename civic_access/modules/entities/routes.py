from fastapi import APIRouter, Depends, HTTPException, Query, status
from civic_access.config.permissions_config import resolve_entity_type
from civic_access.core.dependencies import get_entity_store, get_field_enforcement, get_row_level_security
from civic_access.core.field_security import FieldLevelEnforcement
from civic_access.core.query_filter import QueryFilter
from civic_access.core.row_level_security import RowLevelSecurity
from civic_access.database.entity_store import EntityStore
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/entities", tags=["entities"])

# Served by their own module with an admin-only queue
NOT_BROWSABLE = {"RoleRequest"}


def _entity_type_or_404(entity_type: str) -> str:
    canonical = resolve_entity_type(entity_type)
    if canonical is None or canonical in NOT_BROWSABLE:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown entity type '{entity_type}'")
    return canonical


@router.get("/{entity_type}", response_model=List[Dict[str, Any]])
async def list_entities(
    entity_type: str,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = 50,
    offset: int = 0,
    store: EntityStore = Depends(get_entity_store),
    rls: RowLevelSecurity = Depends(get_row_level_security),
    fields: FieldLevelEnforcement = Depends(get_field_enforcement)
):
    """Records the caller may see, with sensitive fields removed"""
    canonical = _entity_type_or_404(entity_type)
    base = QueryFilter.where(status=status_filter) if status_filter else None
    records = store.list(canonical, rls.apply_rls(canonical, base), limit=limit, offset=offset)
    visible = rls.filter_entities(canonical, records)
    if len(visible) != len(records):
        logger.warning(f"RLS push-down for {canonical} returned {len(records) - len(visible)} rows rejected in memory")
    return [fields.filter_sensitive_fields(canonical, record) for record in visible]


@router.get("/{entity_type}/{entity_id}", response_model=Dict[str, Any])
async def get_entity(
    entity_type: str,
    entity_id: str,
    store: EntityStore = Depends(get_entity_store),
    rls: RowLevelSecurity = Depends(get_row_level_security),
    fields: FieldLevelEnforcement = Depends(get_field_enforcement)
):
    """Single record; 404 when missing or outside the caller's row scope"""
    canonical = _entity_type_or_404(entity_type)
    record = store.get(canonical, entity_id, rls.get_entity_query(canonical))
    if record is None or not rls.can_access_entity(canonical, record):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{canonical} not found")
    return fields.filter_sensitive_fields(canonical, record)
