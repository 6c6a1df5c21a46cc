"""
ffmpeg gateway CLI

Commands:
- ffmpeg: Run ffmpeg and deliver its output to a destination
- invoke: Run an ffmpeg request document (JSON), print the response or failure
- probe: Inspect a media file with ffprobe
- schema: Print the JSON schema of a request/response model
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import List, Optional

import typer

from .models import Failure, FfmpegRequest, FfmpegResponse, FfprobeRequest, FfprobeResponse, Output
from .operations import GatewayService, exit_code_for_failure, run_and_exit, run_unit
from .operations.printers import print_diagnostics, print_failure, print_model

app = typer.Typer(name="ffmpeg-gateway", help="Run ffmpeg/ffprobe and deliver results to storage")

SCHEMA_MODELS = {
    "ffmpeg-request": FfmpegRequest,
    "ffmpeg-response": FfmpegResponse,
    "ffprobe-request": FfprobeRequest,
    "ffprobe-response": FfprobeResponse,
    "failure": Failure,
}


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")
) -> None:
    """Run ffmpeg/ffprobe and deliver results to storage."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@app.command()
def ffmpeg(
    output: str = typer.Argument(..., help="Destination, e.g. s3://bucket/ or s3://bucket/clip.mp4"),
    args: Optional[List[str]] = typer.Argument(None, help="ffmpeg arguments, after --"),
    mode: str = typer.Option("auto", "--mode", help="Delivery strategy: auto, stream or files"),
    json_output: bool = typer.Option(False, "--json", help="Print the response/failure as JSON"),
) -> None:
    """Run ffmpeg and deliver its output to a destination."""

    def _ffmpeg() -> None:
        request = FfmpegRequest(args=list(args or []), output=Output(location=output), mode=mode)
        service = GatewayService()
        response = asyncio.run(service.ffmpeg(request))
        if json_output:
            print_model(response)
        else:
            print_diagnostics(response.stderr)

    run_and_exit(_ffmpeg, json_output=json_output)


@app.command()
def invoke(
    request_file: str = typer.Argument("-", help="FfmpegRequest JSON file, '-' for stdin"),
) -> None:
    """Run an ffmpeg request document and print the response or failure as JSON."""

    def _load() -> FfmpegRequest:
        if request_file == "-":
            payload = sys.stdin.read()
        else:
            with open(request_file, "r") as f:
                payload = f.read()
        return FfmpegRequest.model_validate_json(payload)

    request = run_and_exit(_load, json_output=True)
    service = run_and_exit(GatewayService, json_output=True)

    result = asyncio.run(run_unit(lambda: service.ffmpeg(request)))
    if isinstance(result, Failure):
        print_failure(result, json_output=True)
        raise typer.Exit(code=exit_code_for_failure(result))
    print_model(result)


@app.command()
def probe(
    source: str = typer.Argument(..., metavar="INPUT", help="Path or URL of the media file"),
    show_format: bool = typer.Option(False, "--show-format", help="Include format information"),
    show_streams: bool = typer.Option(False, "--show-streams", help="Include stream information"),
) -> None:
    """Inspect a media file with ffprobe."""

    def _probe() -> None:
        request = FfprobeRequest(input=source, show_format=show_format, show_streams=show_streams)
        service = GatewayService()
        print_model(asyncio.run(service.ffprobe(request)))

    run_and_exit(_probe)


@app.command()
def schema(
    model: str = typer.Argument(..., help=f"One of: {', '.join(SCHEMA_MODELS)}"),
) -> None:
    """Print the JSON schema of a request/response model."""

    def _schema() -> None:
        if model not in SCHEMA_MODELS:
            raise ValueError(f"Unknown model '{model}'. Choose from: {', '.join(SCHEMA_MODELS)}")
        typer.echo(json.dumps(SCHEMA_MODELS[model].model_json_schema(by_alias=True), indent=2))

    run_and_exit(_schema)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
