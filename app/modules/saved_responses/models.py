# Supabase table: saved_responses
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

saved_responses:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, not null)
- original_agent_id: uuid (foreign key to agents.id, not null)
- original_conversation_id: uuid (foreign key to conversations.id, nullable)
- original_message_id: uuid (foreign key to messages.id, nullable)
- original_response: text (not null) - the agent answer being forwarded
- question_text: text (nullable) - the question that produced it
- target_agent_id: uuid (foreign key to agents.id, nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""
