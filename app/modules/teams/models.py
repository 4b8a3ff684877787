# Supabase tables: teams, team_members
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

teams:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, not null) - owner
- name: text (not null)
- description: text (nullable)
- objective: text (nullable)
- status: text (not null, default: 'ACTIVE') - values: ACTIVE, ARCHIVED
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

team_members:
- id: uuid (primary key)
- team_id: uuid (foreign key to teams.id, not null)
- agent_id: uuid (foreign key to agents.id, not null)
- role: text (not null) - free-form role used in task prompts
- is_primary_agent: boolean (default: false) - at most one per team
- added_at: timestamp (default: now())
- unique constraint on (team_id, agent_id)

Deleting a team only sets status to ARCHIVED; rows are never removed.
"""
