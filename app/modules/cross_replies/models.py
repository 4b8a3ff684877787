# Supabase tables: cross_agent_replies, cross_agent_responses
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

cross_agent_replies:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, not null)
- original_message_id: uuid (foreign key to messages.id, not null)
- original_agent_id: uuid (foreign key to agents.id, not null)
- original_conversation_id: uuid (foreign key to conversations.id, not null)
- title: text (nullable)
- question_content: text (not null)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

cross_agent_responses:
- id: uuid (primary key)
- cross_reply_id: uuid (foreign key to cross_agent_replies.id, on delete cascade)
- agent_id: uuid (foreign key to agents.id, not null)
- conversation_id: uuid (foreign key to conversations.id, not null)
- response_message_id: uuid (foreign key to messages.id, not null)
- created_at: timestamp (default: now())
"""
