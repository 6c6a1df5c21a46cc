"""
Gateway error classes.

Provides a clear taxonomy of the fatal conditions an invocation can hit.
Backend SDK exceptions are mapped onto these classes so that callers get a
consistent error interface regardless of the storage implementation.
"""
from __future__ import annotations

from typing import Optional


class GatewayError(Exception):
    """
    Base class for all gateway errors.

    Carries the diagnostic text captured from the tool, when there is any,
    so a failure can always be reported with as much context as was available.
    """

    kind = "gateway"

    def __init__(self, message: str, stderr: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stderr = stderr


class ResolutionError(GatewayError):
    """
    Destination could not be routed to a storage backend.

    Raised when:
    - The location is not a scheme://authority/path descriptor
    - No backend is registered for the scheme
    - The backend rejects the authority (e.g. missing credentials)
    """

    kind = "resolution"


class SpawnError(GatewayError):
    """
    The external tool could not be started.

    Raised when:
    - The executable is not found on PATH
    - The executable is not permitted to run
    """

    kind = "spawn"


class ToolError(GatewayError):
    """
    The external tool exited with a non-zero status.

    Always carries the full diagnostic text. Supersedes any transfer outcome
    of the same invocation.
    """

    kind = "tool"

    def __init__(self, message: str, returncode: int, stderr: Optional[str] = None):
        super().__init__(message, stderr=stderr)
        self.returncode = returncode


class TransferError(GatewayError):
    """
    Delivering the result to the destination failed.

    Raised when:
    - Writing, flushing or closing a remote writer fails
    - Enumerating or uploading the scratch workspace fails
    """

    kind = "transfer"


class StorageError(OSError):
    """
    Backend-level I/O failure.

    Raised by storage handles in place of SDK-specific exceptions to avoid
    leaking backend details; wrapped into TransferError by the transfer engine.
    """


__all__ = [
    "GatewayError",
    "ResolutionError",
    "SpawnError",
    "ToolError",
    "TransferError",
    "StorageError",
]
