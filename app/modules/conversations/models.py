# Supabase tables: conversations, messages
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

conversations:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, not null) - owner
- agent_id: uuid (foreign key to agents.id, not null)
- title: text (nullable) - defaults to the agent name
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable) - bumped on every new message

messages:
- id: uuid (primary key)
- conversation_id: uuid (foreign key to conversations.id, not null)
- role: text (not null) - values: user, assistant, system
- content: text (not null)
- feedback: integer (nullable) - values: -1 (dislike), 0 (cleared), 1 (like)
- created_at: timestamp (default: now())

Attachments live in message_attachments (see uploads module).
"""
