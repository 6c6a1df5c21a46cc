"""
Azure Blob Storage backend.

Streaming writes stage blocks and commit the block list on close; blocks that
are never committed are discarded by the service, so aborting a writer leaves
no blob behind.
"""
from __future__ import annotations

import asyncio
import base64
import logging
import re
from pathlib import Path
from typing import Any, List, Optional

from azure.core.exceptions import AzureError
from azure.storage.blob import BlobBlock, BlobServiceClient

from ..errors import StorageError
from ..path_safety import safe_relpath
from ..settings import Settings
from .base import BufferedWriter, StorageHandle

__all__ = ["AzureBlobStorage", "azure_storage_for"]

logger = logging.getLogger(__name__)


class AzureBlobWriter(BufferedWriter):
    """Block-blob writer: one staged block per part, committed on close."""

    def __init__(self, blob_client: Any, path: str, part_size: int) -> None:
        super().__init__(path, part_size)
        self._blob_client = blob_client
        self._block_ids: List[str] = []

    async def _upload_part(self, part: bytes) -> None:
        block_id = base64.b64encode(f"{len(self._block_ids):08d}".encode()).decode()
        try:
            await asyncio.to_thread(self._blob_client.stage_block, block_id, part)
        except AzureError as e:
            raise StorageError(f"Azure stage_block failed for {self.path}: {e}") from e
        self._block_ids.append(block_id)

    async def _commit(self, tail: bytes) -> None:
        try:
            if not self._block_ids:
                await asyncio.to_thread(self._blob_client.upload_blob, tail, overwrite=True)
                return
            if tail:
                await self._upload_part(tail)
            blocks = [BlobBlock(block_id=block_id) for block_id in self._block_ids]
            await asyncio.to_thread(self._blob_client.commit_block_list, blocks)
        except AzureError as e:
            raise StorageError(f"Azure commit failed for {self.path}: {e}") from e

    async def _discard(self) -> None:
        # Uncommitted blocks expire on the service side
        self._block_ids.clear()


class AzureBlobStorage(StorageHandle):
    """
    StorageHandle bound to one Azure blob container.

    Uses azure-storage-blob SDK with connection string or account+key authentication.
    Supports custom endpoints for Azurite and private Azure clouds.
    """

    def __init__(self, container: str, *, settings: Settings, service_client: Any = None) -> None:
        """
        Initialize the handle for a container.

        Args:
            container: Blob container name (the descriptor's authority)
            settings: Settings containing Azure authentication and configuration
            service_client: Pre-built BlobServiceClient (tests, shared pools)

        Raises:
            ValueError: If Azure authentication is not properly configured
        """
        if not container:
            raise ValueError("az:// locations require a container name")
        self.container = container
        self._settings = settings
        self._part_size = settings.part_size
        if service_client is None:
            self._validate_azure_auth()
            service_client = self._make_service_client()
        self._service_client = service_client

    def __repr__(self) -> str:
        return f"AzureBlobStorage(container={self.container!r})"

    def _validate_azure_auth(self) -> None:
        """Validate Azure authentication configuration."""
        has_conn_str = bool(self._settings.az_connection_string)
        has_account_key = bool(self._settings.az_account and self._settings.az_key)

        if not has_conn_str and not has_account_key:
            raise ValueError("Azure authentication not configured: need AZURE_STORAGE_CONNECTION_STRING or (AZURE_STORAGE_ACCOUNT + AZURE_STORAGE_KEY)")

    def _make_service_client(self) -> BlobServiceClient:
        """
        Build the service client.

        Connection patterns:
        1. Connection string (standard Azure cloud)
        2. Connection string + custom endpoint: account name is taken from the
           connection string, endpoint overridden (Azurite/private cloud)
        3. Account+key against https://{account}.blob.core.windows.net
        4. Account+key against {endpoint}/{account}
        """
        s = self._settings
        common = {
            "connection_timeout": s.storage_timeout_s,
            "retry_total": 5,
            "retry_backoff_factor": 0.4,
        }

        if s.az_connection_string:
            account_match = re.search(r"AccountName=([^;]+)", s.az_connection_string)
            if s.az_blob_endpoint and account_match:
                account_url = f"{s.az_blob_endpoint.rstrip('/')}/{account_match.group(1)}"
                key_match = re.search(r"AccountKey=([^;]+)", s.az_connection_string)
                credential: Optional[dict] = None
                if key_match:
                    credential = {"account_name": account_match.group(1), "account_key": key_match.group(1)}
                logger.debug(f"Azure handle using connection string auth with custom endpoint: {s.az_blob_endpoint}")
                return BlobServiceClient(account_url=account_url, credential=credential, **common)
            logger.debug("Azure handle using connection string auth")
            return BlobServiceClient.from_connection_string(s.az_connection_string, **common)

        if s.az_blob_endpoint:
            account_url = f"{s.az_blob_endpoint.rstrip('/')}/{s.az_account}"
        else:
            account_url = f"https://{s.az_account}.blob.core.windows.net"
        logger.debug(f"Azure handle using account+key auth for {s.az_account}")
        return BlobServiceClient(
            account_url=account_url,
            credential={"account_name": s.az_account, "account_key": s.az_key},
            **common,
        )

    def _blob_client(self, path: str):
        return self._service_client.get_blob_client(container=self.container, blob=safe_relpath(path))

    async def open_writer(self, path: str) -> AzureBlobWriter:
        blob_client = self._blob_client(path)
        logger.debug(f"Opened writer for az://{self.container}/{path}")
        return AzureBlobWriter(blob_client, f"az://{self.container}/{path}", self._part_size)

    async def put_file(self, local_path: Path, path: str) -> int:
        blob_client = self._blob_client(path)

        def _upload() -> int:
            with open(local_path, "rb") as f:
                blob_client.upload_blob(f, overwrite=True)
            return Path(local_path).stat().st_size

        try:
            return await asyncio.to_thread(_upload)
        except AzureError as e:
            raise StorageError(f"Azure blob upload error for {path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Azure blob upload failed for {path}: {e}") from e


def azure_storage_for(authority: str, settings: Settings) -> AzureBlobStorage:
    """Factory for ``az://container/blob`` descriptors."""
    return AzureBlobStorage(authority, settings=settings)
