"""
S3 storage backend.

Thin boto3 wrapper for S3-compatible object storage. Streaming writes use a
multipart upload that is only completed on close; aborting the writer aborts
the upload so a failed invocation leaves no object behind.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import StorageError
from ..path_safety import safe_relpath
from ..settings import Settings
from .base import BufferedWriter, StorageHandle

__all__ = ["S3Storage", "s3_storage_for"]

logger = logging.getLogger(__name__)


def _wrap_error(e: Exception, operation: str, key: str) -> StorageError:
    """Wrap a boto error in StorageError, logging the original at DEBUG."""
    logger.debug("S3 %s failed for key=%s: %s", operation, key, e)
    if isinstance(e, ClientError):
        code = e.response.get("Error", {}).get("Code", "Unknown")
        return StorageError(f"S3 {operation} failed for key={key}: {code}")
    return StorageError(f"S3 {operation} failed for key={key}: {e}")


class S3Writer(BufferedWriter):
    """
    Multipart-upload writer.

    The upload is created lazily when the first full part is ready. Payloads
    smaller than one part are sent with a single put_object on close.
    """

    def __init__(self, client: Any, bucket: str, key: str, part_size: int) -> None:
        super().__init__(f"s3://{bucket}/{key}", part_size)
        self._client = client
        self._bucket = bucket
        self._key = key
        self._upload_id: Optional[str] = None
        self._parts: List[Dict[str, Any]] = []

    async def _call(self, operation: str, fn, **kwargs):
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise _wrap_error(e, operation, self._key) from e

    async def _upload_part(self, part: bytes) -> None:
        if self._upload_id is None:
            response = await self._call(
                "create_multipart_upload",
                self._client.create_multipart_upload,
                Bucket=self._bucket,
                Key=self._key,
            )
            self._upload_id = response["UploadId"]
            logger.debug(f"Started multipart upload {self._upload_id} for {self.path}")

        part_number = len(self._parts) + 1
        response = await self._call(
            "upload_part",
            self._client.upload_part,
            Bucket=self._bucket,
            Key=self._key,
            UploadId=self._upload_id,
            PartNumber=part_number,
            Body=part,
        )
        self._parts.append({"ETag": response["ETag"], "PartNumber": part_number})

    async def _commit(self, tail: bytes) -> None:
        if self._upload_id is None:
            await self._call(
                "put_object",
                self._client.put_object,
                Bucket=self._bucket,
                Key=self._key,
                Body=tail,
            )
            return

        try:
            if tail:
                await self._upload_part(tail)
            await self._call(
                "complete_multipart_upload",
                self._client.complete_multipart_upload,
                Bucket=self._bucket,
                Key=self._key,
                UploadId=self._upload_id,
                MultipartUpload={"Parts": self._parts},
            )
        except StorageError:
            await self._discard()
            raise

    async def _discard(self) -> None:
        if self._upload_id is None:
            return
        upload_id, self._upload_id = self._upload_id, None
        try:
            await self._call(
                "abort_multipart_upload",
                self._client.abort_multipart_upload,
                Bucket=self._bucket,
                Key=self._key,
                UploadId=upload_id,
            )
        except StorageError as e:
            # Lifecycle rules reap orphaned uploads; the invocation already failed
            logger.warning(f"Could not abort multipart upload {upload_id} for {self.path}: {e}")


class S3Storage(StorageHandle):
    """StorageHandle bound to one S3 bucket."""

    def __init__(self, bucket: str, *, settings: Settings, client: Any = None) -> None:
        if not bucket:
            raise ValueError("S3 locations require a bucket name")
        self.bucket = bucket
        self._part_size = settings.part_size
        self._client = client if client is not None else self._make_client(settings)

    def __repr__(self) -> str:
        return f"S3Storage(bucket={self.bucket!r})"

    @staticmethod
    def _make_client(settings: Settings):
        config = Config(
            s3={"addressing_style": settings.s3_addressing_style},
            connect_timeout=settings.storage_timeout_s,
            read_timeout=settings.storage_timeout_s,
        )
        kwargs: Dict[str, Any] = {"config": config}
        if settings.s3_endpoint_url:
            kwargs["endpoint_url"] = settings.s3_endpoint_url
        if settings.s3_region:
            kwargs["region_name"] = settings.s3_region
        if settings.s3_access_key_id:
            kwargs["aws_access_key_id"] = settings.s3_access_key_id
            kwargs["aws_secret_access_key"] = settings.s3_secret_access_key
        return boto3.client("s3", **kwargs)

    async def open_writer(self, path: str) -> S3Writer:
        key = safe_relpath(path)
        logger.debug(f"Opened writer for s3://{self.bucket}/{key}")
        return S3Writer(self._client, self.bucket, key, self._part_size)

    async def put_file(self, local_path: Path, path: str) -> int:
        key = safe_relpath(path)
        try:
            size = Path(local_path).stat().st_size
            await asyncio.to_thread(self._client.upload_file, str(local_path), self.bucket, key)
        except (ClientError, BotoCoreError, Boto3Error) as e:
            raise _wrap_error(e, "upload", key) from e
        except OSError as e:
            raise StorageError(f"S3 upload failed for key={key}: {e}") from e
        return size


def s3_storage_for(authority: str, settings: Settings) -> S3Storage:
    """Factory for ``s3://bucket/key`` descriptors."""
    return S3Storage(authority, settings=settings)
