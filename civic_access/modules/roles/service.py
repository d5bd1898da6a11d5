from supabase import Client
from civic_access.core.permissions import PrincipalCache
from civic_access.core.principal import Principal
from civic_access.modules.roles.schemas import UserRoleResponse, AutoApprovalResponse
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


def _email_domain(email: str) -> Optional[str]:
    if not email or "@" not in email:
        return None
    return email.split("@", 1)[1].lower()


def _domain_matches(domain: Optional[str], allowed: Optional[str]) -> bool:
    """Exact domain or any subdomain of it"""
    if not domain or not allowed:
        return False
    allowed = allowed.lower()
    return domain == allowed or domain.endswith("." + allowed)


def match_auto_approval_rule(
    rules: List[Dict[str, Any]],
    email: str,
    municipality_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    institution_domain: Optional[str] = None
) -> Optional[str]:
    """Role granted by the first matching rule (rules ordered by priority), or None"""
    domain = _email_domain(email)
    for rule in rules:
        rule_type = rule.get("rule_type")
        if rule_type == "always":
            matches = True
        elif rule_type == "email_domain":
            if rule.get("municipality_id") and rule["municipality_id"] != municipality_id:
                continue
            matches = _domain_matches(domain, rule.get("rule_value"))
        elif rule_type == "organization":
            matches = bool(organization_id) and organization_id == rule.get("organization_id")
        elif rule_type == "institution":
            value = (rule.get("rule_value") or "").lower()
            matches = bool(value) and (domain == value or (institution_domain or "").lower() == value)
        else:
            # "never" and unknown rule types
            matches = False
        if matches:
            return rule.get("role_to_assign")
    return None


class RoleAssignmentService:
    def __init__(self, supabase: Client, principal_cache: Optional[PrincipalCache] = None):
        self.supabase = supabase
        self.principal_cache = principal_cache

    def lookup_role_id(self, role: str) -> Optional[str]:
        """roles.id for an app_role name ("municipality_staff" -> "Municipality Staff")"""
        try:
            result = self.supabase.table("roles")\
                .select("id")\
                .ilike("name", role.replace("_", " "))\
                .limit(1)\
                .execute()
            if result.data:
                return result.data[0]["id"]
        except Exception as e:
            logger.warning(f"Role id lookup failed for '{role}': {e}")
        logger.debug(f"No role_id found for role '{role}', continuing with enum only")
        return None

    def assign_role(
        self,
        user_id: str,
        user_email: str,
        role: str,
        municipality_id: Optional[str] = None,
        organization_id: Optional[str] = None
    ) -> UserRoleResponse:
        """Grant a role (idempotent on user_id + role)"""
        result = self.supabase.table("user_roles").upsert({
            "user_id": user_id,
            "user_email": user_email,
            "role": role,
            "role_id": self.lookup_role_id(role),
            "municipality_id": municipality_id,
            "organization_id": organization_id,
            "is_active": True,
            "assigned_at": datetime.now(timezone.utc).isoformat()
        }, on_conflict="user_id,role").execute()

        if not result.data:
            raise RuntimeError(f"Failed to assign role '{role}' to {user_email}")

        logger.info(f"Role '{role}' assigned to {user_email}")
        if self.principal_cache is not None:
            self.principal_cache.invalidate(user_id)
        return UserRoleResponse(**result.data[0])

    def revoke_role(self, user_id: str, role: str) -> bool:
        result = self.supabase.table("user_roles")\
            .update({
                "is_active": False,
                "revoked_at": datetime.now(timezone.utc).isoformat()
            })\
            .eq("user_id", user_id)\
            .eq("role", role)\
            .execute()
        if self.principal_cache is not None:
            self.principal_cache.invalidate(user_id)
        return len(result.data or []) > 0

    def list_active_admins(self) -> List[Dict[str, Any]]:
        """user_id / user_email of every active admin"""
        admins = self.supabase.table("user_roles")\
            .select("user_id")\
            .eq("role", "admin")\
            .eq("is_active", True)\
            .execute()
        user_ids = list({a["user_id"] for a in admins.data or [] if a.get("user_id")})
        if not user_ids:
            return []
        profiles = self.supabase.table("user_profiles")\
            .select("user_id, user_email")\
            .in_("user_id", user_ids)\
            .execute()
        return [p for p in profiles.data or [] if p.get("user_email")]

    def check_auto_approval(
        self,
        principal: Principal,
        persona_type: str,
        institution_domain: Optional[str] = None
    ) -> AutoApprovalResponse:
        """Grant a role straight away when an auto-approval rule or a municipality's
        approved email domain matches; otherwise report that review is needed"""
        rules = self.supabase.table("auto_approval_rules")\
            .select("*")\
            .eq("persona_type", persona_type)\
            .eq("is_active", True)\
            .order("priority", desc=True)\
            .execute()

        role = match_auto_approval_rule(
            rules.data or [],
            principal.email,
            municipality_id=principal.municipality_id,
            organization_id=principal.organization_id,
            institution_domain=institution_domain
        )

        if role is None and persona_type == "municipality_staff" and principal.municipality_id:
            municipality = self.supabase.table("municipalities")\
                .select("approved_email_domains")\
                .eq("id", principal.municipality_id)\
                .limit(1)\
                .execute()
            approved = (municipality.data[0].get("approved_email_domains") or []) if municipality.data else []
            domain = _email_domain(principal.email)
            if any(_domain_matches(domain, d) for d in approved):
                role = "municipality_staff"

        if role is None:
            logger.info(f"No auto-approval for {principal.email} ({persona_type}); manual review required")
            return AutoApprovalResponse(auto_approved=False, requires_approval=True, suggested_role=persona_type)

        self.assign_role(
            principal.id,
            principal.email,
            role,
            municipality_id=principal.municipality_id,
            organization_id=principal.organization_id
        )
        logger.info(f"Auto-approved {principal.email} with role '{role}'")
        return AutoApprovalResponse(auto_approved=True, role=role)
