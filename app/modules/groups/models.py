# Supabase tables: groups, group_members, group_messages, group_agents, group_agent_messages
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

groups:
- id: uuid (primary key)
- name: text (not null)
- description: text (nullable)
- user_id: uuid (foreign key to users.id, not null) - owner/creator
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

group_members:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null)
- user_id: uuid (foreign key to users.id, not null)
- role: text (not null, default: 'member') - values: owner, member
- created_at: timestamp (default: now())
- unique constraint on (group_id, user_id)

group_messages:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null)
- user_id: uuid (foreign key to users.id, not null)
- role: text (not null) - 'user' for chat between members, 'agent' for messages addressed to agents
- content: text (not null)
- created_at: timestamp (default: now())

group_agents:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null)
- agent_id: uuid (foreign key to agents.id, not null)
- added_by: uuid (foreign key to users.id, not null)
- created_at: timestamp (default: now())

group_agent_messages:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null)
- agent_id: uuid (foreign key to agents.id, not null)
- user_id: uuid (nullable) - member whose message triggered the reply
- message: text (not null) - agent reply
- created_at: timestamp (default: now())

Realtime delivery: clients subscribe to Postgres changes on group_messages
through Supabase Realtime; the API only inserts rows.
"""
