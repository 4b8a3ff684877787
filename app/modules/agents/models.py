# Supabase table: agents
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

agents:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, not null) - owner
- name: text (not null)
- description: text (nullable)
- type: text (default: 'GENERAL')
- status: text (default: 'ACTIVE') - values: ACTIVE, INACTIVE
- avatar: text (nullable)
- capabilities: jsonb (default: []) - list of capability names
- configuration: jsonb - {"system_prompt": str, "model": str, ...}
- metrics: jsonb - {"totalInteractions", "avgResponseTime", "successRate", "totalTokens"}
- is_deleted: boolean (default: false) - soft delete flag
- last_active: timestamp (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

Live interaction counts and success rates are computed from messages
(through conversations.agent_id) when listing agents.
"""
