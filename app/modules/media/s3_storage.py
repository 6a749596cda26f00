"""S3 copies of CDN uploads. Objects are keyed by the Cloudinary public_id so a CDN delete can find its backup."""
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from app.config import settings

logger = logging.getLogger(__name__)


def backup_key(public_id: str, extension: Optional[str] = None) -> str:
    return f"{public_id}.{extension}" if extension else public_id


class MediaBackup:
    def __init__(self, s3_client=None, bucket_name: Optional[str] = None):
        self.bucket_name = bucket_name or settings.s3_bucket_name
        if s3_client is None:
            if not settings.s3_configured:
                raise ValueError("AWS S3 credentials and bucket name must be configured")
            s3_client = boto3.client(
                "s3",
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
                region_name=settings.aws_region
            )
        self.s3_client = s3_client

    def store(self, content: bytes, public_id: str, extension: Optional[str], content_type: Optional[str]) -> str:
        """Write the backup object and return its key. ClientError propagates to the caller."""
        key = backup_key(public_id, extension)
        self.s3_client.put_object(
            Bucket=self.bucket_name,
            Key=key,
            Body=content,
            ContentType=content_type or "application/octet-stream",
            Metadata={"public_id": public_id}
        )
        logger.info(f"Backed up {public_id} to s3://{self.bucket_name}/{key}")
        return key

    def remove(self, public_id: str) -> int:
        """Delete the backup objects of a CDN asset; returns how many were removed."""
        try:
            listing = self.s3_client.list_objects_v2(Bucket=self.bucket_name, Prefix=public_id)
            keys = [
                obj["Key"] for obj in listing.get("Contents", [])
                if obj["Key"] == public_id or obj["Key"].startswith(f"{public_id}.")
            ]
            if keys:
                self.s3_client.delete_objects(
                    Bucket=self.bucket_name,
                    Delete={"Objects": [{"Key": key} for key in keys]}
                )
            return len(keys)
        except ClientError as e:
            logger.error(f"Failed to remove media backup of {public_id}: {e}")
            return 0
