"""
Local filesystem storage backend.

Serves ``file:///absolute/path`` descriptors (root "/") and ``fs://name/path``
descriptors rooted at the configured FFMPEG_GATEWAY_FS_ROOT. Writes go to a
temporary sibling file and are renamed into place on close, so a reader never
observes a partially written output.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import IO, Optional

from ..errors import StorageError
from ..path_safety import safe_relpath
from ..settings import Settings
from .base import BufferedWriter, StorageHandle

__all__ = ["LocalFsStorage", "file_storage_for", "fs_storage_for"]

logger = logging.getLogger(__name__)

_TMP_PREFIX = ".ffgw.tmp."


class LocalFsWriter(BufferedWriter):
    """Writer that streams into a temp file and renames it over the target on close."""

    def __init__(self, target: Path, fh: IO[bytes], tmp_path: Path, part_size: int) -> None:
        super().__init__(str(target), part_size)
        self._target = target
        self._fh = fh
        self._tmp_path = tmp_path

    async def _upload_part(self, part: bytes) -> None:
        try:
            await asyncio.to_thread(self._fh.write, part)
        except OSError as e:
            raise StorageError(f"Write to {self._target} failed: {e}") from e

    async def flush(self) -> None:
        await super().flush()
        if self._buffer:
            part = bytes(self._buffer)
            self._buffer.clear()
            await self._upload_part(part)
        try:
            await asyncio.to_thread(self._fh.flush)
        except OSError as e:
            raise StorageError(f"Flush of {self._target} failed: {e}") from e

    async def _commit(self, tail: bytes) -> None:
        def _finish() -> None:
            self._fh.write(tail)
            self._fh.flush()
            os.fsync(self._fh.fileno())
            self._fh.close()
            os.replace(self._tmp_path, self._target)

        try:
            await asyncio.to_thread(_finish)
        except OSError as e:
            await self._discard()
            raise StorageError(f"Commit of {self._target} failed: {e}") from e

    async def _discard(self) -> None:
        def _cleanup() -> None:
            with contextlib.suppress(OSError):
                self._fh.close()
            with contextlib.suppress(FileNotFoundError):
                self._tmp_path.unlink()

        await asyncio.to_thread(_cleanup)


class LocalFsStorage(StorageHandle):
    """
    StorageHandle over a local directory.

    All paths are resolved relative to ``root`` and validated with
    safe_relpath, so a descriptor cannot escape the root.
    """

    def __init__(self, root: Path, *, settings: Optional[Settings] = None) -> None:
        self.root = Path(root)
        self._part_size = (settings or Settings()).part_size

    def __repr__(self) -> str:
        return f"LocalFsStorage(root={str(self.root)!r})"

    def _target(self, path: str) -> Path:
        return self.root / safe_relpath(path)

    async def open_writer(self, path: str) -> LocalFsWriter:
        target = self._target(path)

        def _open():
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=target.parent)
            return os.fdopen(fd, "wb"), Path(tmp)

        try:
            fh, tmp_path = await asyncio.to_thread(_open)
        except OSError as e:
            raise StorageError(f"Cannot open {target} for writing: {e}") from e

        logger.debug(f"Opened writer for {target}")
        return LocalFsWriter(target, fh, tmp_path, self._part_size)

    async def put_file(self, local_path: Path, path: str) -> int:
        target = self._target(path)

        def _copy() -> int:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=target.parent)
            os.close(fd)
            try:
                shutil.copyfile(local_path, tmp)
                os.replace(tmp, target)
            except BaseException:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(tmp)
                raise
            return target.stat().st_size

        try:
            return await asyncio.to_thread(_copy)
        except OSError as e:
            raise StorageError(f"Copy of {local_path} to {target} failed: {e}") from e


def file_storage_for(authority: str, settings: Settings) -> LocalFsStorage:
    """
    Factory for ``file://`` descriptors.

    Only local files are supported: the authority must be empty or "localhost".
    """
    if authority not in ("", "localhost"):
        raise ValueError(f"file:// locations must be local, got authority {authority!r}")
    return LocalFsStorage(Path("/"), settings=settings)


def fs_storage_for(authority: str, settings: Settings) -> LocalFsStorage:
    """
    Factory for ``fs://name/path`` descriptors.

    The authority names a directory below settings.fs_root.
    """
    if not settings.fs_root:
        raise ValueError("fs:// locations require FFMPEG_GATEWAY_FS_ROOT to be configured")
    root = Path(settings.fs_root)
    if authority:
        root = root / safe_relpath(authority)
    return LocalFsStorage(root, settings=settings)
