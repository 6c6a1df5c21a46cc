"""Run ffmpeg/ffprobe and deliver results to object storage while the tool runs."""
from .errors import GatewayError, ResolutionError, SpawnError, ToolError, TransferError
from .models import FfmpegRequest, FfmpegResponse, FfprobeRequest, FfprobeResponse, Output
from .operations import GatewayService, run_unit
from .settings import Settings, create_settings_from_env

__version__ = "0.1.0"

__all__ = [
    "GatewayError",
    "ResolutionError",
    "SpawnError",
    "ToolError",
    "TransferError",
    "FfmpegRequest",
    "FfmpegResponse",
    "FfprobeRequest",
    "FfprobeResponse",
    "Output",
    "GatewayService",
    "run_unit",
    "Settings",
    "create_settings_from_env",
]
