import boto3
from botocore.exceptions import BotoCoreError, ClientError
import os
from datetime import datetime, timezone
from uuid import UUID
from crm.config import settings
from crm.exceptions import ProviderError
import logging

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'pdf': 'application/pdf',
}


class StorageService:
    """Service for business logo storage (S3-compatible bucket, local filesystem fallback)"""

    def __init__(self):
        self.bucket_name = settings.storage_bucket_name

        # Require both access key and secret key to use S3
        if settings.storage_access_key_id and settings.storage_secret_access_key:
            s3_config = {
                'aws_access_key_id': settings.storage_access_key_id,
                'aws_secret_access_key': settings.storage_secret_access_key,
            }
            if settings.storage_endpoint_url:
                s3_config['endpoint_url'] = settings.storage_endpoint_url
            if settings.storage_region:
                s3_config['region_name'] = settings.storage_region

            self.s3_client = boto3.client('s3', **s3_config)
            logger.info("S3 logo storage initialized")
        else:
            logger.info("No S3 credentials found, using local filesystem storage for logos")
            self.s3_client = None

        self.local_storage_dir = os.path.abspath(settings.local_storage_dir)

    def content_type_for(self, filename: str) -> str:
        ext = filename.lower().rsplit('.', 1)[-1] if '.' in filename else ''
        return CONTENT_TYPES.get(ext, 'application/octet-stream')

    def build_logo_key(self, user_id: UUID, filename: str) -> str:
        """logos/{user_id}-{epoch ms}.{ext}"""
        ext = filename.rsplit('.', 1)[-1].lower() if '.' in filename else 'bin'
        timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        return f"logos/{user_id}-{timestamp}.{ext}"

    def upload_file(self, file_content: bytes, storage_key: str, content_type: str) -> str:
        """
        Store bytes under storage_key

        Returns:
            The storage key

        Raises:
            ProviderError if the bucket or filesystem rejects the write
        """
        if self.s3_client:
            try:
                self.s3_client.put_object(
                    Bucket=self.bucket_name,
                    Key=storage_key,
                    Body=file_content,
                    ContentType=content_type
                )
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Failed to upload {storage_key} to S3: {e}")
                raise ProviderError(f"Failed to upload file: {e}")
            return storage_key

        local_path = self._local_path(storage_key)
        try:
            os.makedirs(os.path.dirname(local_path), exist_ok=True)
            with open(local_path, 'wb') as f:
                f.write(file_content)
        except OSError as e:
            logger.error(f"Failed to save file to local storage: {e}")
            raise ProviderError(f"Failed to save file: {e}")
        logger.info(f"File saved to local storage: {local_path}")
        return storage_key

    def get_public_url(self, storage_key: str) -> str:
        if self.s3_client:
            if settings.storage_endpoint_url:
                return f"{settings.storage_endpoint_url.rstrip('/')}/{self.bucket_name}/{storage_key}"
            return f"https://{self.bucket_name}.s3.{settings.storage_region}.amazonaws.com/{storage_key}"
        return f"{settings.public_base_url.rstrip('/')}/storage/{storage_key}"

    def download_file(self, storage_key: str) -> bytes:
        """Read a stored file back; used to serve locally stored logos"""
        if self.s3_client:
            try:
                response = self.s3_client.get_object(Bucket=self.bucket_name, Key=storage_key)
            except ClientError as e:
                raise ProviderError(f"Failed to download file: {e}")
            return response['Body'].read()

        local_path = self._local_path(storage_key)
        if not os.path.exists(local_path):
            raise FileNotFoundError(f"File not found: {storage_key}")
        with open(local_path, 'rb') as f:
            return f.read()

    def _local_path(self, storage_key: str) -> str:
        path = os.path.abspath(os.path.join(self.local_storage_dir, storage_key))
        # Keys come from URLs when serving; never step outside the storage root
        if not path.startswith(self.local_storage_dir + os.sep):
            raise FileNotFoundError(f"File not found: {storage_key}")
        return path


storage_service = StorageService()
