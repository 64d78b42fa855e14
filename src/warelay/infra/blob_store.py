"""Durable blob storage for relocated media.

Two backends selectable via STORAGE_PROVIDER:
- gcs (default): Google Cloud Storage, V4 signed GET URLs
- s3: Amazon S3, presigned get_object URLs

The vendor SDKs are synchronous; calls run in a worker thread so the
event loop keeps serving webhooks while an upload is in progress.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from warelay.config import Settings
from warelay.observability.logging import get_logger
from warelay.observability.redaction import safe_log_context

logger = get_logger(__name__)


class BlobStoreError(Exception):
    """Raised when a put or URL signing fails."""

    pass


class BlobStore(Protocol):
    """Protocol for blob storage backends."""

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        """Store ``data`` under ``key``."""
        ...

    async def signed_get_url(self, key: str, ttl_seconds: int) -> str:
        """Return a time-limited GET URL for ``key``."""
        ...


class GcsBlobStore:
    """Google Cloud Storage backend."""

    def __init__(self, bucket_name: str, client: Any | None = None) -> None:
        self._bucket_name = bucket_name
        self._client = client

    def _bucket(self) -> Any:
        if self._client is None:
            self._client = storage.Client()
        return self._client.bucket(self._bucket_name)

    def _put_sync(self, key: str, data: bytes, content_type: str) -> None:
        blob = self._bucket().blob(key)
        blob.upload_from_string(data, content_type=content_type)

    def _sign_sync(self, key: str, ttl_seconds: int) -> str:
        blob = self._bucket().blob(key)
        return blob.generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=ttl_seconds),
            method="GET",
        )

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(self._put_sync, key, data, content_type)
        except (GoogleAPIError, GoogleAuthError) as e:
            raise BlobStoreError(f"gcs upload failed: {type(e).__name__}") from e
        logger.info(
            "blob stored",
            extra={
                "extra_fields": safe_log_context(
                    provider="gcs", key=key, size=len(data), content_type=content_type
                )
            },
        )

    async def signed_get_url(self, key: str, ttl_seconds: int) -> str:
        try:
            return await asyncio.to_thread(self._sign_sync, key, ttl_seconds)
        except (GoogleAPIError, GoogleAuthError, AttributeError) as e:
            # AttributeError: credentials without a private key cannot sign
            raise BlobStoreError(f"gcs url signing failed: {type(e).__name__}") from e


class S3BlobStore:
    """Amazon S3 backend."""

    def __init__(self, bucket_name: str, region: str, client: Any | None = None) -> None:
        self._bucket_name = bucket_name
        self._region = region
        self._client = client

    def _s3(self) -> Any:
        if self._client is None:
            self._client = boto3.client("s3", region_name=self._region)
        return self._client

    def _put_sync(self, key: str, data: bytes, content_type: str) -> None:
        self._s3().put_object(
            Bucket=self._bucket_name,
            Key=key,
            Body=data,
            ContentType=content_type,
        )

    def _sign_sync(self, key: str, ttl_seconds: int) -> str:
        return self._s3().generate_presigned_url(
            "get_object",
            Params={"Bucket": self._bucket_name, "Key": key},
            ExpiresIn=ttl_seconds,
        )

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(self._put_sync, key, data, content_type)
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"s3 upload failed: {type(e).__name__}") from e
        logger.info(
            "blob stored",
            extra={
                "extra_fields": safe_log_context(
                    provider="s3", key=key, size=len(data), content_type=content_type
                )
            },
        )

    async def signed_get_url(self, key: str, ttl_seconds: int) -> str:
        try:
            return await asyncio.to_thread(self._sign_sync, key, ttl_seconds)
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"s3 url signing failed: {type(e).__name__}") from e


def create_blob_store(settings: Settings) -> BlobStore:
    """Build the backend named by settings.storage_provider."""
    if settings.storage_provider == "s3":
        return S3BlobStore(settings.storage_bucket, settings.aws_region)
    return GcsBlobStore(settings.storage_bucket)
