# Supabase Auth + public users profile table
# Credentials, sessions and JWTs are handled by Supabase Auth (auth.users).
# A mirror row in public.users carries the display name used across the app.

"""
Expected Supabase table structure:

users:
- id: uuid (primary key, same id as auth.users)
- email: text (not null)
- name: text (nullable) - defaults to the email prefix
- password: text - always empty, kept for legacy schema compatibility
- created_at: timestamp (default: now())

Supabase Auth provides:
- auth.sign_up() - Register new users (full_name stored in user_metadata)
- auth.sign_in_with_password() - Authenticate users
- auth.get_user() - Get current user from JWT token
- auth.admin.list_users() - Used by the sync endpoint (service role key)
"""
