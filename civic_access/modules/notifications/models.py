# Supabase tables: citizen_notifications
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

citizen_notifications:
- id: uuid (primary key)
- user_id: uuid (nullable)
- user_email: text (nullable)
- notification_type: text (not null) - e.g., "role_request_submitted", "role_request_approved"
- title: text (not null)
- message: text (nullable)
- entity_type: text (nullable) - "role_request" for role request notifications
- entity_id: uuid (nullable)
- metadata: jsonb (nullable) - {"role": ..., "status": ...}
- is_read: boolean (default: false)
- read_at: timestamp (nullable)
- created_at: timestamp (default: now())
"""
