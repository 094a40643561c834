"""
Receipt storage on Supabase Storage.

Receipts are uploaded under ``<prefix>/<owner>-<epoch ms>.<ext>`` with a small
retry policy: up to three attempts, each bounded by a timeout, with the wait
before the next attempt chosen by the kind of failure (see RETRY_STRATEGIES).
"""

import asyncio
import logging
import mimetypes
import time
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Callable, NamedTuple, Optional

import httpx
from storage3.utils import StorageException
from supabase import Client, create_client

from errors import InvalidFile, UploadError

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "Supabase URL and Service Key must be configured"

MAX_RECEIPT_SIZE = 10 * 1024 * 1024  # 10MB
ALLOWED_CONTENT_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "application/pdf",
})

MAX_ATTEMPTS = 3
ATTEMPT_TIMEOUT = 25.0


class FailureKind(Enum):
    COLLISION = "collision"
    TIMEOUT = "timeout"
    OTHER = "other"


@dataclass(frozen=True)
class RetryStrategy:
    rename_key: bool
    backoff_seconds: float  # multiplied by the attempt number


RETRY_STRATEGIES = MappingProxyType({
    FailureKind.COLLISION: RetryStrategy(rename_key=True, backoff_seconds=0),
    FailureKind.TIMEOUT: RetryStrategy(rename_key=False, backoff_seconds=2),
    FailureKind.OTHER: RetryStrategy(rename_key=False, backoff_seconds=1),
})


class UploadedReceipt(NamedTuple):
    path: str
    url: str


def classify_failure(error: Exception) -> FailureKind:
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
        return FailureKind.TIMEOUT
    if "already exists" in str(error).lower():
        return FailureKind.COLLISION
    return FailureKind.OTHER


def file_extension(filename: Optional[str], content_type: str) -> str:
    if filename and "." in filename:
        return filename.rsplit(".", 1)[-1]
    guessed = mimetypes.guess_extension(content_type) or ""
    return guessed.lstrip(".") or "bin"


def validate_receipt(data: bytes, content_type: str):
    if len(data) > MAX_RECEIPT_SIZE:
        logger.error("File too large: %d bytes", len(data))
        raise InvalidFile("File size exceeds 10MB limit")
    if content_type not in ALLOWED_CONTENT_TYPES:
        logger.error("Invalid file type: %s", content_type)
        raise InvalidFile("File type not supported. Please use JPG, PNG, GIF, or PDF")


class ReceiptStorage:
    """Receipt uploads through the Supabase client; blocking calls run in a worker thread."""

    def __init__(
        self,
        url: str,
        service_key: str,
        bucket: str = "booking",
        prefix: str = "receipts",
        client: Optional[Client] = None,
        sleep: Callable = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        attempt_timeout: float = ATTEMPT_TIMEOUT,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        if not url or not service_key:
            raise UploadError(NOT_CONFIGURED)
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.attempt_timeout = attempt_timeout
        self.max_attempts = max_attempts
        self._client = client or create_client(url, service_key)
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, **kwargs):
        return cls(
            settings.SUPABASE_URL,
            settings.SUPABASE_SERVICE_ROLE_KEY,
            bucket=settings.STORAGE_BUCKET,
            prefix=settings.STORAGE_PREFIX,
            **kwargs,
        )

    def _bucket(self):
        return self._client.storage.from_(self.bucket)

    # ---------- blob store ----------

    def public_url(self, path: str) -> str:
        return self._bucket().get_public_url(path).rstrip("?")

    async def upload(self, path: str, data: bytes, content_type: str):
        await asyncio.to_thread(
            self._bucket().upload,
            path,
            data,
            {"content-type": content_type, "upsert": "false"},
        )

    async def delete(self, path: str):
        try:
            await asyncio.to_thread(self._bucket().remove, [path])
        except StorageException as e:
            raise UploadError(f"Failed to delete file: {e}", last_error=e) from e

    # ---------- receipts ----------

    def receipt_path(self, owner_id: str, extension: str, suffix: Optional[int] = None) -> str:
        stamp = int(self._clock() * 1000)
        name = f"{owner_id}-{stamp}"
        if suffix is not None:
            name = f"{name}-{suffix}"
        return f"{self.prefix}/{name}.{extension}"

    async def upload_receipt(
        self,
        data: bytes,
        filename: Optional[str],
        content_type: str,
        owner_id: str,
    ) -> UploadedReceipt:
        validate_receipt(data, content_type)

        extension = file_extension(filename, content_type)
        path = self.receipt_path(owner_id, extension)
        logger.info("Uploading file: %s, Size: %d bytes, Type: %s", path, len(data), content_type)

        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            logger.info("Upload attempt %d/%d", attempt, self.max_attempts)
            try:
                await asyncio.wait_for(
                    self.upload(path, data, content_type),
                    timeout=self.attempt_timeout,
                )
            except (asyncio.TimeoutError, httpx.HTTPError, StorageException) as e:
                last_error = e
                kind = classify_failure(e)
                strategy = RETRY_STRATEGIES[kind]
                logger.warning("Upload attempt %d failed (%s): %s", attempt, kind.value, e)

                if strategy.rename_key:
                    path = self.receipt_path(owner_id, extension, suffix=attempt)
                    logger.info("File exists, trying new name: %s", path)
                if attempt < self.max_attempts and strategy.backoff_seconds:
                    await self._sleep(strategy.backoff_seconds * attempt)
                continue

            url = self.public_url(path)
            logger.info("Upload successful on attempt %d, URL: %s", attempt, url)
            return UploadedReceipt(path=path, url=url)

        logger.error("All upload attempts failed. Last error: %s", last_error)
        raise UploadError(
            f"Upload failed after {self.max_attempts} attempts: {last_error}",
            last_error=last_error,
        )
