"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

from ..models import Failure

T = TypeVar('T')

EXIT_CODES = {
    "ResolutionError": 2,
    "ValidationError": 2,
    "ValueError": 2,
    "SpawnError": 4,
    "ToolError": 5,
    "TransferError": 6,
}

# Same table keyed by Failure.kind, for results produced by run_unit
KIND_EXIT_CODES = {
    "resolution": 2,
    "validation": 2,
    "spawn": 4,
    "tool": 5,
    "transfer": 6,
}


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    - 0: Success
    - 2: Bad request (ResolutionError, ValidationError, ValueError)
    - 3: Unknown error (fallback)
    - 4: Tool could not be started (SpawnError)
    - 5: Tool failed (ToolError)
    - 6: Result could not be delivered (TransferError)
    """
    return EXIT_CODES.get(type(exc).__name__, 3)


def exit_code_for_failure(failure: Failure) -> int:
    return KIND_EXIT_CODES.get(failure.kind, 3)


def run_and_exit(func: Callable[[], T], *, json_output: bool = False) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit. The failure is reported on stderr, or as a
    Failure document on stdout when json_output is set.

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except typer.Exit:
        raise
    except Exception as e:
        from .printers import print_failure

        print_failure(Failure.from_exception(e), json_output=json_output)
        raise typer.Exit(code=exit_code_for(e)) from e
