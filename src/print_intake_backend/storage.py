"""
S3-compatible object storage for submitted files.

This module provides functionality for:
- Creating a boto3 S3 client from the request's StorageSettings
- Storing file bytes under a given key with their content type
- Deriving the public URL of a stored object without another round-trip

Any S3-compatible service works (AWS S3, Cloudflare R2, MinIO, Supabase
Storage's S3 endpoint) by setting STORAGE_ENDPOINT_URL.
"""

from __future__ import annotations

import logging
from typing import Protocol
from urllib.parse import quote

import boto3
from botocore.config import Config as BotoConfig

from .configuration import StorageSettings

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    def store(self, data: bytes, key: str, content_type: str) -> str:
        """Persist ``data`` under ``key`` and return its public URL."""
        ...


def public_url(settings: StorageSettings, key: str) -> str:
    """
    Derive the public URL of an object from its key.

    Precedence: STORAGE_PUBLIC_BASE_URL, then path-style under the custom
    endpoint, then the AWS virtual-hosted style URL.
    """
    quoted = quote(key, safe="/")
    if settings.public_base_url:
        return f"{settings.public_base_url.rstrip('/')}/{quoted}"
    if settings.endpoint_url:
        return f"{settings.endpoint_url.rstrip('/')}/{settings.bucket}/{quoted}"
    return f"https://{settings.bucket}.s3.{settings.region}.amazonaws.com/{quoted}"


class S3ObjectStore:
    """
    Object store backed by a boto3 S3 client.

    A new client is created per instance; instances are created per request
    from that request's Configuration. boto3 clients are thread-safe, so one
    instance is shared by the upload worker threads.
    """

    def __init__(self, settings: StorageSettings, client=None) -> None:
        self.settings = settings
        self._client = client or boto3.client(
            "s3",
            endpoint_url=settings.endpoint_url,
            region_name=settings.region,
            aws_access_key_id=settings.access_key_id,
            aws_secret_access_key=settings.secret_access_key,
            config=BotoConfig(retries={"mode": "standard"}),
        )

    def store(self, data: bytes, key: str, content_type: str) -> str:
        """
        Upload bytes to the configured bucket.

        Args:
            data: File content
            key: Object key (path within the bucket)
            content_type: MIME type recorded on the object

        Returns:
            Public URL of the stored object

        Raises:
            botocore.exceptions.ClientError: If the service rejects the upload
            botocore.exceptions.BotoCoreError: On transport or credential failures
        """
        logger.info(f"Uploading {len(data)} bytes to s3://{self.settings.bucket}/{key}")
        self._client.put_object(
            Bucket=self.settings.bucket,
            Key=key,
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )
        logger.info(f"Upload successful: s3://{self.settings.bucket}/{key}")
        return public_url(self.settings, key)
