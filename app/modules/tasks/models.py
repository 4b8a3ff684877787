# Supabase tables: collaborative_tasks, task_assignments, agent_contributions
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py and executor.py

"""
Expected Supabase table structure:

collaborative_tasks:
- id: uuid (primary key)
- team_id: uuid (foreign key to teams.id, not null)
- user_id: uuid (foreign key to users.id, not null) - creator
- title: text (not null)
- description: text (not null)
- status: text (not null, default: 'PENDING') - values: PENDING, IN_PROGRESS, COMPLETED
- priority: text (default: 'MEDIUM') - values: LOW, MEDIUM, HIGH, CRITICAL
- result: text (nullable) - synthesized final result
- feedback: integer (nullable) - values: -1, 0, 1
- version_number: integer (default: 1)
- parent_task_id: uuid (nullable, foreign key to collaborative_tasks.id) - root of the version chain
- created_at: timestamp (default: now())
- completed_at: timestamp (nullable)

task_assignments:
- id: uuid (primary key)
- task_id: uuid (foreign key to collaborative_tasks.id, not null)
- agent_id: uuid (foreign key to agents.id, not null)
- subtask_description: text (not null)
- status: text (default: 'PENDING') - values: PENDING, IN_PROGRESS, COMPLETED
- result: text (nullable)
- confidence: numeric (nullable) - 0..100 from token logprobs
- execution_order: integer (not null) - 1..N, primary agent first
- started_at: timestamp (nullable)
- completed_at: timestamp (nullable)

agent_contributions:
- id: uuid (primary key)
- task_id: uuid (foreign key to collaborative_tasks.id, not null)
- agent_id: uuid (foreign key to agents.id, not null)
- contribution: text (not null)
- confidence: numeric (nullable)
- created_at: timestamp (default: now())

Every task has exactly one assignment per team member at creation time.
Versions form a flat chain: every version points at the root task.
"""
