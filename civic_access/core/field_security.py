"""
Field-level enforcement: per-attribute redaction inside an otherwise visible record.
"""

from typing import Any, Dict, List, Optional

from civic_access.config.permissions_config import ADMIN_ROLE, FIELD_PERMISSIONS, resolve_entity_type
from civic_access.config.settings import settings
from civic_access.core.permissions import PermissionResolver
from civic_access.core.principal import Principal


class FieldLevelEnforcement:
    def __init__(self, principal: Optional[Principal], field_rules: Optional[Dict[str, Dict[str, List[str]]]] = None):
        self.permissions = PermissionResolver(principal)
        self.field_rules = FIELD_PERMISSIONS if field_rules is None else field_rules

    def _rules_for(self, entity_type: str) -> Dict[str, List[str]]:
        canonical = resolve_entity_type(entity_type) or entity_type
        return self.field_rules.get(canonical) or {}

    def can_view_field(self, entity_type: str, field_name: str) -> bool:
        tokens = self._rules_for(entity_type).get(field_name)
        if tokens is None:
            return True
        if self.permissions.is_admin:
            return True
        # "admin" marks admin-only fields and is never granted as a permission
        return any(self.permissions.has_permission(t) for t in tokens if t != ADMIN_ROLE)

    def hidden_fields(self, entity_type: str) -> List[str]:
        return [f for f in self._rules_for(entity_type) if not self.can_view_field(entity_type, f)]

    def filter_sensitive_fields(self, entity_type: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow copy of record without the fields the principal may not see"""
        hidden = set(self.hidden_fields(entity_type))
        return {key: value for key, value in record.items() if key not in hidden}

    def mask_field(self, entity_type: str, field_name: str, value: Any) -> Any:
        """Value for display: the real value, or the mask token when hidden"""
        if self.can_view_field(entity_type, field_name):
            return value
        return settings.field_mask_token
