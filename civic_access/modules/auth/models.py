# Supabase Auth + user_profiles
# Identity comes from Supabase Auth (auth.users, JWT validation via auth.get_user()).
# The principal is assembled from the tables and functions below.

"""
Expected Supabase structure:

user_profiles:
- id: uuid (primary key)
- user_id: uuid (not null, unique, references auth.users.id)
- user_email: text
- municipality_id: uuid (nullable) - municipality shape for row-level security
- organization_id: uuid (nullable) - organization / provider shape
- institution_id: uuid (nullable) - academic shape
- expertise_areas: text[] (nullable) - non-empty also marks the academic shape

user_roles: see modules/roles/models.py (only is_active rows count)

Functions (called via supabase.rpc):
- get_user_permissions(_user_id uuid) -> setof {permission_code text}
- get_user_functional_roles(_user_id uuid) -> setof {role_name text}
"""
