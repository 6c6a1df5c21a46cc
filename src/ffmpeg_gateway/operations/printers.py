"""
Output formatting.

Machine-readable documents go to stdout as JSON; human-readable failure
summaries go to stderr through Rich so they never mix with a payload.
"""
from __future__ import annotations

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.markup import escape

from ..models import Failure

_err_console = Console(stderr=True)


def print_model(model: BaseModel) -> None:
    """Print a response model as JSON (camelCase names, unset optionals dropped)."""
    typer.echo(model.model_dump_json(by_alias=True, exclude_none=True, indent=2))


def print_diagnostics(stderr: str) -> None:
    """Print the tool's diagnostic text as-is."""
    if stderr:
        typer.echo(stderr, nl=not stderr.endswith("\n"))


def print_failure(failure: Failure, *, json_output: bool = False) -> None:
    """
    Report a failed operation.

    Args:
        failure: Structured failure
        json_output: Print the Failure document on stdout instead of a summary
    """
    if json_output:
        print_model(failure)
        return

    _err_console.print(f"[bold red]Error ({failure.kind}):[/] {escape(failure.message)}")
    if failure.stderr:
        _err_console.print("[dim]--- diagnostics ---[/]")
        _err_console.print(escape(failure.stderr.rstrip("\n")), highlight=False)
