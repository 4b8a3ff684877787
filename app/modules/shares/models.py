# Supabase tables: share_requests, resource_access
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

share_requests:
- id: uuid (primary key)
- resource_type: text (not null) - values: agent, team, task
- resource_id: uuid (not null)
- requester_user_id: uuid (foreign key to users.id, not null)
- owner_user_id: uuid (foreign key to users.id, not null)
- status: text (not null, default: 'pending') - values: pending, approved, rejected, revoked (approved grant later removed)
- message: text (nullable)
- created_at: timestamp (default: now())
- responded_at: timestamp (nullable)

resource_access:
- id: uuid (primary key)
- resource_type: text (not null) - values: agent, team, task
- resource_id: uuid (not null)
- user_id: uuid (foreign key to users.id, not null) - grantee
- granted_by: uuid (foreign key to users.id, not null)
- created_at: timestamp (default: now())
- unique constraint on (resource_type, resource_id, user_id)
"""
