# Supabase tables: user_roles, roles, auto_approval_rules
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

user_roles:
- id: uuid (primary key)
- user_id: uuid (not null, references auth.users.id)
- user_email: text (nullable)
- role: app_role enum (not null) - e.g., "admin", "municipality_staff", "provider"
- role_id: uuid (nullable, foreign key to roles.id)
- municipality_id: uuid (nullable) - scope of a municipality grant
- organization_id: uuid (nullable) - scope of an organization/provider grant
- is_active: boolean (default: true) - revoked grants are kept with is_active = false
- assigned_at: timestamp (nullable)
- revoked_at: timestamp (nullable)
- created_at: timestamp (default: now())
- unique constraint on (user_id, role)

roles:
- id: uuid (primary key)
- name: text (not null, unique) - display form, e.g., "Municipality Staff"
- can_be_requested: boolean (nullable)
- approval_required: boolean (nullable)

auto_approval_rules:
- id: uuid (primary key)
- persona_type: text (not null) - persona the rule applies to
- rule_type: text (not null) - always | never | email_domain | organization | institution
- rule_value: text (nullable) - domain for email_domain / institution rules
- municipality_id: uuid (nullable) - limits an email_domain rule to one municipality
- organization_id: uuid (nullable) - organization rules match on this
- role_to_assign: text (not null)
- priority: integer (higher first)
- is_active: boolean

municipalities.approved_email_domains: text[] - domains auto-approved for municipality_staff
"""
