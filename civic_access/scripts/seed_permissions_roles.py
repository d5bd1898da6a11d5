"""
Seed Permissions and Roles Script
This script populates the permissions and roles tables from the config.
Run with: python -m civic_access.scripts.seed_permissions_roles
"""

import sys

from civic_access.config.permissions_config import PERMISSION_MATRIX, REQUESTABLE_ROLES, ROLE_DISPLAY_NAMES
from civic_access.database.supabase_client import get_service_supabase
from supabase import Client
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def role_record(role: str) -> dict:
    """roles row for an app_role; name is the spaced form matched by RoleAssignmentService.lookup_role_id"""
    return {
        "name": role.replace("_", " ").title(),
        "description": ROLE_DISPLAY_NAMES[role],
        "can_be_requested": role in REQUESTABLE_ROLES,
        "approval_required": role != "viewer"
    }


def seed_permissions(supabase: Client) -> int:
    """Seed permission tokens from config"""
    logger.info("Seeding permissions...")

    processed = 0
    for perm in PERMISSION_MATRIX["permissions"]:
        try:
            supabase.table("permissions").upsert({
                "name": perm["name"],
                "entity": perm["entity"],
                "action": perm["action"],
                "description": perm["description"]
            }, on_conflict="name").execute()
            processed += 1
            logger.debug(f"Upserted permission: {perm['name']}")
        except Exception as e:
            logger.error(f"Error processing permission {perm['name']}: {e}")

    logger.info(f"Permissions seeded: {processed} processed")
    return processed


def seed_roles(supabase: Client) -> int:
    """Seed roles from config"""
    logger.info("Seeding roles...")

    processed = 0
    for role in ROLE_DISPLAY_NAMES:
        record = role_record(role)
        try:
            supabase.table("roles").upsert(record, on_conflict="name").execute()
            processed += 1
            logger.debug(f"Upserted role: {record['name']}")
        except Exception as e:
            logger.error(f"Error processing role {role}: {e}")

    logger.info(f"Roles seeded: {processed} processed")
    return processed


def main():
    """Main function to seed permissions and roles"""
    try:
        supabase = get_service_supabase()

        logger.info("Starting permissions and roles seeding...")
        perm_count = seed_permissions(supabase)
        role_count = seed_roles(supabase)

        logger.info("Seeding completed successfully!")
        logger.info(f"Total: {perm_count} permissions, {role_count} roles processed")

    except Exception as e:
        logger.error(f"Error during seeding: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
