# imgproxy/infra/s3_storage.py
"""
S3-compatible storage backend for source images.

Supports:
- AWS S3
- Cloudflare R2
- MinIO (for testing)
- Any S3-compatible storage

Configuration:
    S3_ENDPOINT_URL=https://s3.amazonaws.com (or R2 / MinIO endpoint)
    S3_BUCKET_NAME=your-bucket            (default bucket for "s3" backends)
    S3_ACCESS_KEY=...
    S3_SECRET_KEY=...

Each ``{"driver": "s3"}`` backend may override ``bucket`` and add a key
``prefix``.
"""
from __future__ import annotations

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from imgproxy.core.errors import MisconfigurationError, NotFoundError
from imgproxy.infra.logging_config import get_logger

logger = get_logger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class S3BlobStore:
    """Read-only S3 backend."""

    def __init__(self, client, bucket: str, prefix: str | None = None):
        self._client = client
        self._bucket = bucket
        self._prefix = (prefix or "").strip("/")

    @classmethod
    def from_settings(cls, settings, bucket: str | None = None, prefix: str | None = None) -> "S3BlobStore":
        bucket = bucket or settings.s3_bucket_name
        if not bucket:
            raise MisconfigurationError("S3 backend has no bucket configured")

        client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            region_name=settings.s3_region,
            config=Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"},
                s3={"addressing_style": "path" if settings.s3_force_path_style else "virtual"}
            ),
        )

        logger.info(
            f"S3 backend initialized: bucket={bucket}, "
            f"endpoint={settings.s3_endpoint_url}"
        )
        return cls(client, bucket, prefix)

    def _get_key(self, path: str) -> str:
        path = path.lstrip("/")
        return f"{self._prefix}/{path}" if self._prefix else path

    def exists(self, path: str) -> bool:
        key = self._get_key(path)

        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] in _MISSING_CODES:
                return False
            logger.error(f"S3 head failed: key={key}, error={e}", exc_info=True)
            raise

    def read(self, path: str) -> bytes:
        key = self._get_key(path)

        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            return response["Body"].read()

        except ClientError as e:
            if e.response["Error"]["Code"] in _MISSING_CODES:
                raise NotFoundError() from e
            logger.error(f"S3 download failed: key={key}, error={e}", exc_info=True)
            raise
