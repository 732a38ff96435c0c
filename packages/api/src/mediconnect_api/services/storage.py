"""S3-compatible blob store backed by MinIO.

Uses boto3 synchronous client run in a thread-pool executor for async
compatibility. Every call has a fixed connect/read timeout; failures and
timeouts surface as ``StorageError``. The module exposes a singleton
initialised at app startup via ``init_storage_service()``.
"""

import asyncio
import logging
import os
import uuid
from functools import partial

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..core.config import Settings
from .errors import StorageError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/png": ".png",
}


class StorageService:
    """Thin wrapper around a boto3 S3 client."""

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        region: str = "us-east-1",
        public_endpoint: str | None = None,
        timeout: int = 10,
    ):
        self._bucket = bucket
        self._public_base = (public_endpoint or endpoint).rstrip("/")
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            config=BotoConfig(
                signature_version="s3v4",
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 2, "mode": "standard"},
                s3={
                    "addressing_style": "path",
                    "use_accelerate_endpoint": False,
                },
            ),
        )
        self._ensure_bucket()

    @property
    def bucket(self) -> str:
        return self._bucket

    def _ensure_bucket(self) -> None:
        """Create the bucket if it doesn't already exist (dev convenience)."""
        try:
            self._client.head_bucket(Bucket=self._bucket)
        except ClientError:
            logger.info("Creating S3 bucket: %s", self._bucket)
            self._client.create_bucket(Bucket=self._bucket)

    async def upload(
        self,
        owner_id: str,
        path: str,
        data: bytes,
        content_type: str,
    ) -> str:
        """Upload bytes under ``{owner_id}/{path}`` and return the public URL.

        Raises:
            StorageError: the write failed or timed out. Nothing was recorded.
        """
        key = f"{owner_id}/{path.lstrip('/')}"
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                partial(
                    self._client.put_object,
                    Bucket=self._bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                ),
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Blob upload failed for key %s: %s", key, exc)
            raise StorageError(f"Blob store write failed for '{key}'") from exc
        return self.get_public_url(key)

    def get_public_url(self, key: str) -> str:
        """Return the path-style public URL for an object key."""
        return f"{self._public_base}/{self._bucket}/{key.lstrip('/')}"

    async def download(self, key: str) -> bytes:
        """Download object bytes."""
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                partial(self._client.get_object, Bucket=self._bucket, Key=key),
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Blob download failed for key %s: %s", key, exc)
            raise StorageError(f"Blob store read failed for '{key}'") from exc
        return response["Body"].read()

    @staticmethod
    def build_document_path(doc_type: str, filename: str, content_type: str) -> str:
        """Build ``visa-docs/{type}-{uuid}{ext}``.

        The extension comes from the original filename when it has one,
        otherwise from the content type. Path components are discarded.
        """
        _, ext = os.path.splitext(os.path.basename(filename or ""))
        if not ext:
            ext = ALLOWED_CONTENT_TYPES.get(content_type, "")
        return f"visa-docs/{doc_type}-{uuid.uuid4()}{ext.lower()}"

    @staticmethod
    def build_letter_path(application_id: int) -> str:
        return f"visa-letters/application-{application_id}-{uuid.uuid4()}.txt"


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_service: StorageService | None = None


def init_storage_service(cfg: Settings) -> StorageService:
    """Initialise the singleton (called once from app lifespan)."""
    global _service  # noqa: PLW0603
    _service = StorageService(
        endpoint=cfg.S3_ENDPOINT,
        access_key=cfg.S3_ACCESS_KEY,
        secret_key=cfg.S3_SECRET_KEY,
        bucket=cfg.S3_BUCKET,
        region=cfg.S3_REGION,
        public_endpoint=cfg.S3_PUBLIC_ENDPOINT,
        timeout=cfg.STORAGE_TIMEOUT_SECONDS,
    )
    logger.info("StorageService initialised (bucket=%s)", cfg.S3_BUCKET)
    return _service


def get_storage_service() -> StorageService:
    """Return the initialised StorageService singleton."""
    if _service is None:
        raise RuntimeError("StorageService not initialised -- call init_storage_service() first")
    return _service
