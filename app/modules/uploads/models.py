# Supabase tables: message_attachments, task_attachments
# File bytes live in S3 (when configured) or the Supabase Storage bucket; rows keep the path.

"""
Expected Supabase table structure:

message_attachments:
- id: uuid (primary key)
- message_id: uuid (foreign key to messages.id, not null)
- file_name: text (not null) - stored name, uuid + original extension
- original_file_name: text (not null)
- file_path: text (not null) - "s3://bucket/conversations/<file_name>" or "conversations/<file_name>"
- file_type: text (not null) - MIME type
- file_size: integer (not null) - bytes
- uploaded_at: timestamp (default: now())

task_attachments:
- id: uuid (primary key)
- task_id: uuid (foreign key to collaborative_tasks.id, not null)
- file_name, original_file_name, file_path, file_type, file_size: as above ("tasks/" folder)
- uploaded_by: uuid (foreign key to users.id, not null)
- uploaded_at: timestamp (default: now())
"""
