"""
External tool processes.

Spawns the media tool with its standard streams wired for the gateway: stdin
closed, stderr always piped (diagnostics), stdout piped only when the caller
wants the payload as a stream. The caller's arguments are passed through
verbatim; the tool itself reports malformed arguments on stderr.
"""
from __future__ import annotations

import asyncio
import logging
import shlex
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional, Sequence

from .errors import SpawnError

__all__ = ["SAFETY_FLAGS", "build_command", "ToolProcess", "run_tool", "read_all"]

logger = logging.getLogger(__name__)

# Never prompt on stdin, always overwrite existing outputs
SAFETY_FLAGS = ("-nostdin", "-y")


def build_command(executable: str, args: Sequence[str], *, safety_flags: bool = True) -> List[str]:
    """
    Build the argv for one tool run.

    Examples:
        >>> build_command("ffmpeg", ["-i", "in.mp4", "out.mp4"])
        ['ffmpeg', '-nostdin', '-y', '-i', 'in.mp4', 'out.mp4']
    """
    command = [executable]
    if safety_flags:
        command.extend(SAFETY_FLAGS)
    command.extend(args)
    return command


async def read_all(reader: asyncio.StreamReader) -> bytes:
    """Read a pipe to EOF. No size cap: diagnostics must never be truncated."""
    return await reader.read()


class ToolProcess:
    """
    One running tool instance.

    Owns the process's pipe endpoints and exit status. wait() may be awaited
    by several tasks at once; all of them see the same status.
    """

    def __init__(self, proc: asyncio.subprocess.Process, command: Sequence[str]) -> None:
        self._proc = proc
        self.command = list(command)

    @property
    def name(self) -> str:
        return Path(self.command[0]).name

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._proc.returncode

    @property
    def stdout(self) -> asyncio.StreamReader:
        if self._proc.stdout is None:
            raise RuntimeError(f"{self.name} was spawned without a stdout pipe")
        return self._proc.stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        return self._proc.stderr

    async def wait(self) -> int:
        return await self._proc.wait()

    async def read_stderr(self) -> str:
        """Drain the diagnostic stream completely and decode it."""
        data = await read_all(self.stderr)
        return data.decode("utf-8", errors="replace")

    async def kill(self) -> None:
        """Kill the process if it is still running and reap it."""
        if self._proc.returncode is None:
            logger.warning(f"Killing {self.name} (pid {self.pid})")
            try:
                self._proc.kill()
            except ProcessLookupError:
                pass
        await self._proc.wait()


@asynccontextmanager
async def run_tool(
    command: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    capture_stdout: bool = False,
) -> AsyncIterator[ToolProcess]:
    """
    Spawn a tool and guarantee it is reaped when the block exits.

    If the block is left while the process still runs (cancellation, an
    unexpected error) the process is killed so no child outlives its
    invocation with dangling pipes.

    Args:
        command: Full argv, see build_command
        cwd: Working directory for the process
        capture_stdout: Pipe stdout to the caller instead of discarding it

    Raises:
        SpawnError: If the executable or working directory is missing, or the
            executable cannot be run
    """
    logger.debug(f"Spawning: {shlex.join(command)} (cwd={cwd})")
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd) if cwd is not None else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE if capture_stdout else asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        # Raised for a missing cwd as well as a missing executable
        if cwd is not None and not Path(cwd).is_dir():
            raise SpawnError(f"Working directory {cwd} does not exist: {e}") from e
        raise SpawnError(f"{command[0]} not found: {e}") from e
    except PermissionError as e:
        raise SpawnError(f"{command[0]} is not executable: {e}") from e
    except OSError as e:
        raise SpawnError(f"Failed to start {command[0]}: {e}") from e

    tool = ToolProcess(proc, command)
    try:
        yield tool
    finally:
        if tool.returncode is None:
            await asyncio.shield(tool.kill())
