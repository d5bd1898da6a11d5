# Supabase tables: role_requests
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

role_requests:
- id: uuid (primary key)
- user_id: uuid (not null, references auth.users.id)
- user_email: text (not null) - rate limit window is counted on this column
- requested_role: app_role enum (not null)
- justification: text (not null)
- status: text (not null, default: 'pending') - pending | approved | rejected
- municipality_id: uuid (nullable) - scope requested for a municipality role
- organization_id: uuid (nullable) - scope requested for an organization/provider role
- review_notes: text (nullable) - rejection reason or approval note
- approver_email: text (nullable)
- reviewed_by: uuid (nullable)
- reviewed_date: timestamp (nullable)
- created_at: timestamp (default: now())

Index on (user_email, created_at) for the sliding-window count.
"""
