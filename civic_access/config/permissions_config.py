"""
Permissions and Roles Configuration
This config defines the entity catalogue, the permission tokens derived from it,
the field visibility table and the roles users can ask for.
Used by the permission resolver, field-level enforcement and the role request flow.
"""

# Entity types known to the platform.
# "table" is the Supabase table, "prefix" is the permission token prefix
# ("<prefix>_<action>"), "actions" are the tokens generated for the entity.
ENTITIES = {
    "Challenge": {
        "table": "challenges",
        "prefix": "challenge",
        "actions": ["view", "view_all", "create", "edit", "delete", "view_budget"],
        "description": "Municipal challenges"
    },
    "Pilot": {
        "table": "pilots",
        "prefix": "pilot",
        "actions": ["view", "view_all", "create", "edit", "delete", "view_budget", "view_risks"],
        "description": "Pilot projects"
    },
    "Solution": {
        "table": "solutions",
        "prefix": "solution",
        "actions": ["view", "view_all", "create", "edit", "delete", "view_pricing"],
        "description": "Provider solutions"
    },
    "RDProject": {
        "table": "rd_projects",
        "prefix": "rd",
        "actions": ["view", "view_all", "create", "edit", "delete", "view_budget", "view_ip"],
        "description": "R&D projects"
    },
    "Organization": {
        "table": "organizations",
        "prefix": "organization",
        "actions": ["view", "view_all", "create", "edit", "delete", "view_financials", "view_contacts"],
        "description": "Organizations and providers"
    },
    "Program": {
        "table": "programs",
        "prefix": "program",
        "actions": ["view", "create", "edit", "delete"],
        "description": "Innovation programs"
    },
    "Sandbox": {
        "table": "sandboxes",
        "prefix": "sandbox",
        "actions": ["view", "create", "edit", "delete"],
        "description": "Regulatory sandboxes"
    },
    "LivingLab": {
        "table": "living_labs",
        "prefix": "living_lab",
        "actions": ["view", "create", "edit", "delete"],
        "description": "Living labs"
    },
    "RoleRequest": {
        "table": "role_requests",
        "prefix": "role_request",
        "actions": ["view", "approve", "reject"],
        "description": "Self-service role requests"
    }
}

WILDCARD_PERMISSION = "*"
ADMIN_ROLE = "admin"

# Field visibility: entity -> field -> tokens, any of which grants visibility.
# "admin" is a marker for admin-only fields; admins pass through is_admin,
# the token itself never matches a permission.
FIELD_PERMISSIONS = {
    "Challenge": {
        "budget_estimate": ["challenge_view_budget", "challenge_edit"],
        "internal_notes": ["admin"]
    },
    "Pilot": {
        "budget": ["pilot_view_budget", "pilot_edit"],
        "budget_spent": ["pilot_view_budget", "pilot_edit"],
        "risk_assessment": ["pilot_view_risks", "pilot_edit"]
    },
    "Solution": {
        "pricing_details": ["solution_view_pricing", "solution_edit"],
        "contract_terms": ["admin"]
    },
    "RDProject": {
        "budget": ["rd_view_budget", "rd_edit"],
        "ip_details": ["rd_view_ip", "admin"]
    },
    "Organization": {
        "financial_info": ["organization_view_financials", "admin"],
        "contact_phone": ["organization_view_contacts", "organization_edit"]
    }
}

# Display names used in notifications
ROLE_DISPLAY_NAMES = {
    "admin": "Administrator",
    "municipality_staff": "Municipality Staff",
    "municipality_admin": "Municipality Admin",
    "municipality_coordinator": "Municipality Coordinator",
    "deputyship_admin": "Deputyship Director",
    "deputyship_staff": "Deputyship Staff",
    "provider": "Solution Provider",
    "researcher": "Researcher",
    "expert": "Expert Evaluator",
    "citizen": "Citizen",
    "viewer": "Explorer"
}

# Roles a user may ask for through a role request. admin is never requestable.
REQUESTABLE_ROLES = [
    "municipality_staff",
    "municipality_admin",
    "municipality_coordinator",
    "deputyship_admin",
    "deputyship_staff",
    "provider",
    "researcher",
    "expert",
    "citizen",
    "viewer"
]


def get_role_display_name(role: str) -> str:
    return ROLE_DISPLAY_NAMES.get(role, role)


def get_entity_table(entity_type: str) -> str:
    """Supabase table for an entity type; unknown types map to their lower-cased name"""
    entity = ENTITIES.get(entity_type)
    if entity:
        return entity["table"]
    return entity_type.lower()


def get_permission_prefix(entity_type: str) -> str:
    """Permission token prefix for an entity type ("Challenge" -> "challenge", "RDProject" -> "rd")"""
    entity = ENTITIES.get(entity_type)
    if entity:
        return entity["prefix"]
    for config in ENTITIES.values():
        if config["table"] == entity_type or config["prefix"] == entity_type:
            return config["prefix"]
    return entity_type.lower()


def resolve_entity_type(name: str):
    """Map an entity type, table name or prefix to the canonical entity type, or None"""
    if name in ENTITIES:
        return name
    for entity_type, config in ENTITIES.items():
        if name in (config["table"], config["prefix"]) or name.lower() == entity_type.lower():
            return entity_type
    return None


# Generate permission matrix
def get_permission_matrix():
    """
    Returns a dictionary with all permission tokens
    Format: {
        "permissions": [
            {"name": "challenge_edit", "entity": "Challenge", "action": "edit", "description": "..."},
            ...
        ]
    }
    """
    permissions = []

    for entity_type, config in ENTITIES.items():
        for action in config["actions"]:
            permissions.append({
                "name": f"{config['prefix']}_{action}",
                "entity": entity_type,
                "action": action,
                "description": f"{action.replace('_', ' ').capitalize()} - {config['description']}"
            })

    return {
        "permissions": permissions
    }


PERMISSION_MATRIX = get_permission_matrix()
