import base64
import boto3
from botocore.exceptions import ClientError
from fastapi import Depends
from supabase import Client
from app.database.supabase_client import get_supabase
from app.config import settings
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

CONVERSATIONS_FOLDER = "conversations"
TASKS_FOLDER = "tasks"


class S3Storage:
    def __init__(self):
        if not settings.s3_configured:
            raise ValueError("AWS S3 credentials and bucket name must be configured")

        self.s3_client = boto3.client(
            's3',
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name=settings.aws_region
        )
        self.bucket_name = settings.s3_bucket_name

    def key_from_path(self, file_path: str) -> str:
        return file_path.replace(f"s3://{self.bucket_name}/", "", 1)

    def upload_file(self, file_content: bytes, key: str, content_type: str) -> str:
        """Upload file to S3 and return the S3 URL"""
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=file_content,
                ContentType=content_type
            )
            return f"s3://{self.bucket_name}/{key}"
        except ClientError as e:
            logger.error(f"Failed to upload file to S3: {str(e)}")
            raise

    def download_file(self, key: str) -> bytes:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            return response["Body"].read()
        except ClientError as e:
            logger.error(f"Failed to download file from S3: {str(e)}")
            raise

    def delete_file(self, key: str) -> bool:
        """Delete file from S3"""
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            logger.error(f"Failed to delete file from S3: {str(e)}")
            return False


class AttachmentStorage:
    """Stores attachment bytes in S3 when configured, otherwise in a Supabase Storage bucket"""

    def __init__(self, supabase: Client, s3_storage: Optional[S3Storage] = None, bucket: Optional[str] = None):
        self.supabase = supabase
        self.s3_storage = s3_storage
        self.bucket = bucket or settings.storage_bucket

    def upload(self, content: bytes, folder: str, file_name: str, content_type: str) -> str:
        key = f"{folder}/{file_name}"
        if self.s3_storage:
            logger.info(f"Uploading to S3: {key}")
            return self.s3_storage.upload_file(content, key, content_type)
        logger.info(f"Uploading to Supabase Storage: {self.bucket}/{key}")
        self.supabase.storage.from_(self.bucket).upload(
            key,
            content,
            file_options={"content-type": content_type}
        )
        return key

    def download(self, file_path: str) -> bytes:
        if file_path.startswith("s3://"):
            if not self.s3_storage:
                raise ValueError("S3 storage is not configured")
            return self.s3_storage.download_file(self.s3_storage.key_from_path(file_path))
        return self.supabase.storage.from_(self.bucket).download(file_path)

    def delete(self, file_path: str) -> bool:
        try:
            if file_path.startswith("s3://"):
                if not self.s3_storage:
                    return False
                return self.s3_storage.delete_file(self.s3_storage.key_from_path(file_path))
            self.supabase.storage.from_(self.bucket).remove([file_path])
            return True
        except Exception as e:
            logger.warning(f"Failed to delete stored file ({file_path}): {e}")
            return False

    def image_data_url(self, attachment: Dict[str, Any]) -> Optional[str]:
        """Base64 data URL for an image attachment, or None if it cannot be read"""
        try:
            content = self.download(attachment["file_path"])
        except Exception as e:
            logger.warning(f"Failed to read image {attachment.get('original_file_name')}: {e}")
            return None
        encoded = base64.b64encode(content).decode("ascii")
        return f"data:{attachment['file_type']};base64,{encoded}"

    def image_parts(self, attachments: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """OpenAI vision content parts for the image attachments in the list"""
        parts = []
        for attachment in attachments:
            if not (attachment.get("file_type") or "").startswith("image/"):
                continue
            url = self.image_data_url(attachment)
            if url:
                parts.append({"type": "image_url", "image_url": {"url": url}})
        return parts


def build_attachment_storage(supabase: Client) -> AttachmentStorage:
    s3_storage = None
    if settings.s3_configured:
        try:
            s3_storage = S3Storage()
            logger.info("S3 storage initialized successfully")
        except Exception as e:
            logger.warning(f"S3 storage initialization failed ({str(e)}), will use Supabase Storage")
    return AttachmentStorage(supabase, s3_storage)


def get_attachment_storage(supabase: Client = Depends(get_supabase)) -> AttachmentStorage:
    return build_attachment_storage(supabase)
