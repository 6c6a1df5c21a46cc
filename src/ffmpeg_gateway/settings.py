"""
Settings and configuration for the ffmpeg gateway.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables at service construction time.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

__all__ = ["Settings", "create_settings_from_env", "MIN_PART_SIZE"]

# S3 rejects multipart parts smaller than this (except the last one)
MIN_PART_SIZE = 5 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for the gateway and its storage backends.

    Tool Settings:
        ffmpeg_bin: ffmpeg executable, looked up on PATH unless absolute
        ffprobe_bin: ffprobe executable, looked up on PATH unless absolute
        scratch_dir: Parent directory for scratch workspaces (system temp if None)
        chunk_size: Read size used when pumping the tool's output stream

    Transfer Settings:
        copy_concurrency: Maximum number of files uploaded at once by the bulk copier
        upload_retry: Extra attempts for a failed per-file upload (0=no retry)
        part_size: Multipart/block size used by streaming writers
        storage_timeout_s: Connect/read timeout handed to storage SDKs

    Backend Settings:
        fs_root: Root directory served by the fs:// scheme
        s3_endpoint_url: Custom S3 endpoint (MinIO, Ceph, ...)
        s3_region: S3 region name
        s3_access_key_id / s3_secret_access_key: Static S3 credentials
        s3_addressing_style: "auto" | "path" | "virtual"
        az_connection_string: Azure storage connection string
        az_account / az_key: Azure storage account name and key
        az_blob_endpoint: Custom Azure blob endpoint (for Azurite/private endpoints)
    """
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    scratch_dir: Optional[str] = None
    chunk_size: int = 64 * 1024

    copy_concurrency: int = 4
    upload_retry: int = 0
    part_size: int = 8 * 1024 * 1024
    storage_timeout_s: float = 60.0

    fs_root: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    s3_region: Optional[str] = None
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    s3_addressing_style: str = "auto"
    az_connection_string: Optional[str] = None
    az_account: Optional[str] = None
    az_key: Optional[str] = None
    az_blob_endpoint: Optional[str] = None

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.ffmpeg_bin:
            raise ValueError("ffmpeg_bin is required")
        if not self.ffprobe_bin:
            raise ValueError("ffprobe_bin is required")

        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

        if self.copy_concurrency < 1:
            raise ValueError(f"copy_concurrency must be at least 1, got {self.copy_concurrency}")

        if self.upload_retry < 0:
            raise ValueError(f"upload_retry must be non-negative, got {self.upload_retry}")

        if self.part_size < MIN_PART_SIZE:
            raise ValueError(f"part_size must be at least {MIN_PART_SIZE} bytes, got {self.part_size}")

        if self.storage_timeout_s <= 0:
            raise ValueError(f"storage_timeout_s must be positive, got {self.storage_timeout_s}")

        if self.s3_addressing_style not in ("auto", "path", "virtual"):
            raise ValueError(
                f"Invalid s3_addressing_style: {self.s3_addressing_style}. "
                "Supported values: auto, path, virtual"
            )

        # Static S3 credentials come in pairs
        if bool(self.s3_access_key_id) != bool(self.s3_secret_access_key):
            raise ValueError("s3_access_key_id and s3_secret_access_key must be specified together")

        # Azure auth: either connection string OR (account + key), never both
        has_conn_str = bool(self.az_connection_string)
        has_account_key = bool(self.az_account and self.az_key)

        if has_conn_str and has_account_key:
            raise ValueError("Specify either az_connection_string OR (az_account + az_key), not both")

        if self.az_account and not self.az_key:
            raise ValueError("az_account specified but az_key is missing")
        if self.az_key and not self.az_account:
            raise ValueError("az_key specified but az_account is missing")


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        Tool:
        - FFMPEG_GATEWAY_FFMPEG_BIN (default: ffmpeg)
        - FFMPEG_GATEWAY_FFPROBE_BIN (default: ffprobe)
        - FFMPEG_GATEWAY_SCRATCH_DIR (optional)
        - FFMPEG_GATEWAY_CHUNK_SIZE (default: 65536)

        Transfer:
        - FFMPEG_GATEWAY_COPY_CONCURRENCY (default: 4)
        - FFMPEG_GATEWAY_UPLOAD_RETRY (default: 0)
        - FFMPEG_GATEWAY_PART_SIZE (default: 8388608)
        - FFMPEG_GATEWAY_STORAGE_TIMEOUT (default: 60.0)

        Backends:
        - FFMPEG_GATEWAY_FS_ROOT (optional)
        - AWS_ENDPOINT_URL, AWS_REGION, AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY (optional)
        - FFMPEG_GATEWAY_S3_ADDRESSING_STYLE (default: auto)
        - AZURE_STORAGE_CONNECTION_STRING (optional)
        - AZURE_STORAGE_ACCOUNT, AZURE_STORAGE_KEY (optional)
        - FFMPEG_GATEWAY_AZURE_BLOB_ENDPOINT (optional, for Azurite/custom endpoints)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    return Settings(
        ffmpeg_bin=os.getenv("FFMPEG_GATEWAY_FFMPEG_BIN", "ffmpeg"),
        ffprobe_bin=os.getenv("FFMPEG_GATEWAY_FFPROBE_BIN", "ffprobe"),
        scratch_dir=os.getenv("FFMPEG_GATEWAY_SCRATCH_DIR"),
        chunk_size=get_int("FFMPEG_GATEWAY_CHUNK_SIZE", 64 * 1024),
        copy_concurrency=get_int("FFMPEG_GATEWAY_COPY_CONCURRENCY", 4),
        upload_retry=get_int("FFMPEG_GATEWAY_UPLOAD_RETRY", 0),
        part_size=get_int("FFMPEG_GATEWAY_PART_SIZE", 8 * 1024 * 1024),
        storage_timeout_s=get_float("FFMPEG_GATEWAY_STORAGE_TIMEOUT", 60.0),
        fs_root=os.getenv("FFMPEG_GATEWAY_FS_ROOT"),
        s3_endpoint_url=os.getenv("AWS_ENDPOINT_URL"),
        s3_region=os.getenv("AWS_REGION"),
        s3_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
        s3_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        s3_addressing_style=os.getenv("FFMPEG_GATEWAY_S3_ADDRESSING_STYLE", "auto"),
        az_connection_string=os.getenv("AZURE_STORAGE_CONNECTION_STRING"),
        az_account=os.getenv("AZURE_STORAGE_ACCOUNT"),
        az_key=os.getenv("AZURE_STORAGE_KEY"),
        az_blob_endpoint=os.getenv("FFMPEG_GATEWAY_AZURE_BLOB_ENDPOINT"),
    )
