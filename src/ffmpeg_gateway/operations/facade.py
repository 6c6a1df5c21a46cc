"""
Gateway service facade.

One method per operation. Each call is a self-contained unit of work: it owns
its storage handle, scratch workspace and process, performs no retries, and
either returns the response or raises a GatewayError. Retrying and
deduplicating calls is the job of the execution harness around it.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, TypeVar, Union

from pydantic import ValidationError

from ..errors import GatewayError, ToolError
from ..models import Failure, FfmpegRequest, FfmpegResponse, FfprobeRequest, FfprobeResponse
from ..process import build_command, read_all, run_tool
from ..settings import Settings
from ..storage.resolver import StorageResolver, make_resolver
from ..transfer import deliver_files, deliver_stream, join, tool_failure
from ..workspace import scratch_workspace

__all__ = ["GatewayService", "run_unit"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GatewayService:
    """
    Application service for the ffmpeg and ffprobe operations.

    The resolver is injected so tests and embedders can register their own
    backends; by default every built-in backend is available.
    """

    def __init__(self, settings: Optional[Settings] = None, resolver: Optional[StorageResolver] = None) -> None:
        if settings is None:
            from ..settings import create_settings_from_env
            settings = create_settings_from_env()
        self.settings = settings
        self.resolver = resolver if resolver is not None else make_resolver(settings)

    async def ffmpeg(self, request: FfmpegRequest) -> FfmpegResponse:
        """
        Run ffmpeg and deliver its result to request.output.location.

        The destination is resolved before anything is spawned, so an unknown
        scheme costs no process.

        Raises:
            ResolutionError: Destination cannot be routed to a backend
            ValueError: Streaming to the root of a backend or to a directory
            SpawnError: ffmpeg could not be started
            ToolError: ffmpeg exited with a non-zero status
            TransferError: The result could not be delivered
        """
        location = request.output.location
        handle, path = self.resolver.resolve(location)
        streaming = request.streams_output
        if streaming and not path:
            raise ValueError(f"Streaming output needs an object path, got backend root {location}")
        if streaming and path.endswith("/"):
            raise ValueError(f"Streaming output needs an object path, got directory {location}")

        command = build_command(self.settings.ffmpeg_bin, request.args)
        logger.info(f"ffmpeg -> {location} ({'stream' if streaming else 'files'})")

        if streaming:
            async with run_tool(command, capture_stdout=True) as proc:
                delivery = await deliver_stream(proc, handle, path, chunk_size=self.settings.chunk_size)
            logger.info(f"Streamed {delivery.bytes_streamed} bytes to {location}")
        else:
            with scratch_workspace(self.settings.scratch_dir) as workdir:
                async with run_tool(command, cwd=workdir) as proc:
                    delivery = await deliver_files(
                        proc,
                        handle,
                        path,
                        workdir,
                        concurrency=self.settings.copy_concurrency,
                        retry=self.settings.upload_retry,
                    )
            logger.info(f"Copied {len(delivery.copied)} files to {location}")

        return FfmpegResponse(stderr=delivery.stderr)

    async def ffprobe(self, request: FfprobeRequest) -> FfprobeResponse:
        """
        Inspect a media file with ffprobe.

        Raises:
            SpawnError: ffprobe could not be started
            ToolError: ffprobe failed or printed something that is not probe JSON
        """
        args = ["-v", "quiet", "-print_format", "json"]
        if request.show_format:
            args.append("-show_format")
        if request.show_streams:
            args.append("-show_streams")
        args.append(request.input)

        command = build_command(self.settings.ffprobe_bin, args, safety_flags=False)
        async with run_tool(command, capture_stdout=True) as proc:
            returncode, stdout, stderr = await join(proc.wait(), read_all(proc.stdout), proc.read_stderr())

        if returncode != 0:
            raise tool_failure(proc.name, returncode, stderr)

        try:
            return FfprobeResponse.model_validate_json(stdout)
        except ValidationError as e:
            raise ToolError(f"invalid {proc.name} output: {e}", returncode=returncode, stderr=stderr) from e


async def run_unit(fn: Callable[[], Awaitable[T]]) -> Union[T, Failure]:
    """
    Run one unit of work and convert gateway failures into a Failure result.

    This is the shape a durable-execution harness records: either the
    response or a structured failure, never a partial result. Errors outside
    the gateway taxonomy (bugs) still propagate.
    """
    try:
        return await fn()
    except (GatewayError, ValueError) as e:
        failure = Failure.from_exception(e)
        logger.info(f"Unit of work failed ({failure.kind}): {failure.message}")
        return failure
