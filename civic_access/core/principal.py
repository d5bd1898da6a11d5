from pydantic import BaseModel, ConfigDict
from typing import FrozenSet, List, Optional

from civic_access.config.permissions_config import ADMIN_ROLE


class Session(BaseModel):
    """Authenticated identity as reported by Supabase Auth"""
    user_id: str
    user_email: str


class Principal(BaseModel):
    """The authenticated actor. Built once per session and passed explicitly to every check."""
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    municipality_id: Optional[str] = None
    organization_id: Optional[str] = None
    institution_id: Optional[str] = None
    areas_of_expertise: List[str] = []
    roles: FrozenSet[str] = frozenset()
    permissions: FrozenSet[str] = frozenset()
    functional_roles: FrozenSet[str] = frozenset()

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles
