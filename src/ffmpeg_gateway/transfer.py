"""
Result delivery for one tool run.

Two strategies, chosen once per invocation:

- streaming: the tool writes its payload to stdout, which is pumped into a
  storage writer while the process runs (3-way join: exit, stderr, payload)
- copy: the tool writes files into a scratch workspace, which is bulk-copied
  to the destination after a successful exit (2-way join: exit, stderr)

Every member of a join runs to completion even when another one fails, so no
pipe is left undrained: a tool blocked on a full stderr or stdout pipe would
never exit.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, List, Optional, Tuple

from .errors import GatewayError, ToolError, TransferError
from .process import ToolProcess
from .storage.base import CopyResult, StorageHandle, StorageWriter

__all__ = ["settle", "join", "Delivery", "deliver_stream", "deliver_files", "tool_failure"]

logger = logging.getLogger(__name__)


async def settle(*aws: Awaitable[Any]) -> Tuple[List[Any], List[BaseException]]:
    """
    Run awaitables concurrently and wait for all of them.

    Returns:
        (results, errors): results in argument order, with the exception in
        place of the value for members that failed; errors in the order the
        failures were observed
    """
    errors: List[BaseException] = []

    async def _track(aw: Awaitable[Any]) -> Any:
        try:
            return await aw
        except Exception as e:
            errors.append(e)
            raise

    results = await asyncio.gather(*(_track(aw) for aw in aws), return_exceptions=True)
    return list(results), errors


async def join(*aws: Awaitable[Any]) -> Tuple[Any, ...]:
    """Like settle(), but raise the first observed failure once all members finished."""
    results, errors = await settle(*aws)
    if errors:
        raise errors[0]
    return tuple(results)


@dataclass(frozen=True)
class Delivery:
    """Outcome of a successful delivery."""
    stderr: str
    returncode: int
    bytes_streamed: Optional[int] = None
    copied: Optional[CopyResult] = None


def tool_failure(name: str, returncode: int, stderr: str) -> ToolError:
    """Build the ToolError for a non-zero exit, quoting the last diagnostic line."""
    lines = [line for line in stderr.splitlines() if line.strip()]
    message = f"{name} failed with exit status {returncode}"
    if lines:
        message = f"{message}: {lines[-1].strip()}"
    return ToolError(message, returncode=returncode, stderr=stderr)


async def _discard(reader: asyncio.StreamReader, chunk_size: int) -> int:
    """Read and drop the rest of a pipe so the writing process can finish."""
    dropped = 0
    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            return dropped
        dropped += len(chunk)


async def _abort_quietly(writer: StorageWriter) -> None:
    try:
        await writer.abort()
    except Exception as e:
        logger.warning(f"Failed to abort writer: {e}")


async def _pump(reader: asyncio.StreamReader, writer: StorageWriter, chunk_size: int) -> int:
    copied = 0
    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            return copied
        await writer.write(chunk)
        copied += len(chunk)


async def _stream_payload(proc: ToolProcess, handle: StorageHandle, path: str, chunk_size: int) -> int:
    """
    Pump the tool's stdout into a writer at path.

    The writer is committed only once the tool has exited successfully; on a
    non-zero exit it is aborted, so a failed run never leaves a committed
    object. If the writer fails, the rest of stdout is drained and dropped so
    the tool is not left blocked on a full pipe.
    """
    try:
        writer = await handle.open_writer(path)
    except Exception:
        dropped = await _discard(proc.stdout, chunk_size)
        logger.warning(f"Discarded {dropped} bytes of {proc.name} output: writer could not be opened")
        raise

    try:
        copied = await _pump(proc.stdout, writer, chunk_size)
        await writer.flush()
        returncode = await proc.wait()
        if returncode != 0:
            await _abort_quietly(writer)
            logger.debug(f"Aborted {copied} streamed bytes after {proc.name} exit status {returncode}")
            return copied
        await writer.close()
    except Exception:
        await _abort_quietly(writer)
        dropped = await _discard(proc.stdout, chunk_size)
        if dropped:
            logger.warning(f"Discarded {dropped} bytes of {proc.name} output after a write failure")
        raise
    except BaseException:
        await asyncio.shield(_abort_quietly(writer))
        raise

    logger.debug(f"Streamed {copied} bytes from {proc.name} to {path}")
    return copied


async def deliver_stream(
    proc: ToolProcess,
    handle: StorageHandle,
    path: str,
    *,
    chunk_size: int = 64 * 1024,
) -> Delivery:
    """
    Streaming strategy: exit, stderr and payload run as one 3-way join.

    Outcome rules:
    - non-zero exit: ToolError with the full stderr, whatever the payload did
    - zero exit but the payload copy failed: TransferError with the I/O cause
    - otherwise success with the full stderr

    Raises:
        ToolError, TransferError
    """
    (returncode, stderr, streamed), errors = await settle(
        proc.wait(),
        proc.read_stderr(),
        _stream_payload(proc, handle, path, chunk_size),
    )
    stderr_text = stderr if isinstance(stderr, str) else ""

    if isinstance(returncode, int) and returncode != 0:
        raise tool_failure(proc.name, returncode, stderr_text)

    if errors:
        cause = errors[0]
        if isinstance(cause, GatewayError):
            raise cause
        raise TransferError(f"Failed to deliver {proc.name} output to {path or '/'}: {cause}", stderr=stderr_text) from cause

    return Delivery(stderr=stderr_text, returncode=returncode, bytes_streamed=streamed)


async def deliver_files(
    proc: ToolProcess,
    handle: StorageHandle,
    path: str,
    workspace: Path,
    *,
    concurrency: int = 4,
    retry: int = 0,
) -> Delivery:
    """
    Copy strategy: wait for exit and stderr, then bulk-copy the workspace.

    No copy is attempted after a non-zero exit: the workspace contents are
    partial at best.

    Raises:
        ToolError, TransferError
    """
    (returncode, stderr), errors = await settle(proc.wait(), proc.read_stderr())
    stderr_text = stderr if isinstance(stderr, str) else ""

    if isinstance(returncode, int) and returncode != 0:
        raise tool_failure(proc.name, returncode, stderr_text)
    if errors:
        raise TransferError(f"Lost track of {proc.name}: {errors[0]}", stderr=stderr_text) from errors[0]

    try:
        copied = await handle.copy_tree(workspace, "*", path, concurrency=concurrency, retry=retry)
    except (OSError, ValueError) as e:
        raise TransferError(f"Failed to copy {proc.name} output to {path or '/'}: {e}", stderr=stderr_text) from e

    return Delivery(stderr=stderr_text, returncode=returncode, copied=copied)
