"""
Request and response models for the gateway operations.

These Pydantic models are the wire contract of the ffmpeg and ffprobe
operations. Request/response envelopes use camelCase JSON names (snake_case
is accepted on input); the ffprobe records keep the field names ffprobe
itself emits.
"""
from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .errors import GatewayError

__all__ = [
    "STREAM_SENTINEL",
    "Output",
    "FfmpegRequest",
    "FfmpegResponse",
    "FfprobeRequest",
    "FfprobeResponse",
    "Format",
    "Stream",
    "Disposition",
    "Failure",
]

# ffmpeg's name for "write to stdout"
STREAM_SENTINEL = "-"

DeliveryMode = Literal["auto", "stream", "files"]


class _Envelope(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Output(_Envelope):
    """Where the result of an ffmpeg run is delivered."""
    location: str = Field(..., description="Destination descriptor, scheme://authority/path")


class FfmpegRequest(_Envelope):
    """
    One ffmpeg run.

    ``mode`` selects how the result is delivered:

    - "stream": ffmpeg writes to stdout (last argument "-"), the bytes are
      streamed to ``output.location`` while ffmpeg runs
    - "files": ffmpeg writes files into its working directory, which is
      copied below ``output.location`` after a successful exit
    - "auto": "stream" if the last argument is "-", otherwise "files"
    """
    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "args": ["-i", "input.mp4", "-vf", "scale=-1:720", "output.mp4"],
                    "output": {"location": "s3://bucket/"},
                }
            ]
        }
    )

    args: List[str] = Field(..., description="Arguments passed to ffmpeg verbatim")
    output: Output
    mode: DeliveryMode = Field(default="auto", description="Delivery strategy")

    @model_validator(mode="after")
    def validate_mode(self) -> FfmpegRequest:
        ends_with_sentinel = bool(self.args) and self.args[-1] == STREAM_SENTINEL
        if self.mode == "stream" and not ends_with_sentinel:
            raise ValueError(f"mode 'stream' requires the last argument to be '{STREAM_SENTINEL}'")
        if self.mode == "files" and ends_with_sentinel:
            raise ValueError(f"mode 'files' cannot write to '{STREAM_SENTINEL}' (stdout)")
        return self

    @property
    def streams_output(self) -> bool:
        """True when the result is delivered from stdout rather than from files."""
        if self.mode == "auto":
            return bool(self.args) and self.args[-1] == STREAM_SENTINEL
        return self.mode == "stream"


class FfmpegResponse(_Envelope):
    model_config = ConfigDict(json_schema_extra={"examples": [{"stderr": ""}]})

    stderr: str = Field(..., description="Everything ffmpeg wrote to stderr")


class FfprobeRequest(_Envelope):
    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "input": "https://download.blender.org/peach/bigbuckbunny_movies/big_buck_bunny_1080p_h264.mov",
                    "showFormat": True,
                    "showStreams": True,
                }
            ]
        }
    )

    input: str = Field(..., description="Path or URL of the media file")
    show_format: bool = Field(default=False, description="Include format information")
    show_streams: bool = Field(default=False, description="Include stream information")


class Format(BaseModel):
    """Container-level information (ffprobe -show_format)."""
    filename: str
    nb_streams: int
    nb_programs: int
    format_name: str
    format_long_name: str
    start_time: Optional[str] = None
    duration: Optional[str] = None
    size: Optional[str] = None
    bit_rate: Optional[str] = None
    probe_score: Optional[int] = None
    tags: Dict[str, str] = Field(default_factory=dict)


class Disposition(BaseModel):
    default: int = 0
    dub: int = 0
    original: int = 0
    comment: int = 0
    lyrics: int = 0
    karaoke: int = 0
    forced: int = 0
    hearing_impaired: int = 0
    visual_impaired: int = 0
    clean_effects: int = 0
    attached_pic: int = 0


class Stream(BaseModel):
    """One elementary stream (ffprobe -show_streams)."""
    index: int
    codec_name: Optional[str] = None
    codec_long_name: Optional[str] = None
    codec_type: str  # "video", "audio", "subtitle", "data"
    codec_tag_string: Optional[str] = None
    codec_tag: Optional[str] = None

    # Video
    width: Optional[int] = None
    height: Optional[int] = None
    coded_width: Optional[int] = None
    coded_height: Optional[int] = None
    r_frame_rate: Optional[str] = None
    avg_frame_rate: Optional[str] = None
    pix_fmt: Optional[str] = None
    level: Optional[int] = None
    color_range: Optional[str] = None
    color_space: Optional[str] = None

    # Audio
    sample_fmt: Optional[str] = None
    sample_rate: Optional[str] = None
    channels: Optional[int] = None
    channel_layout: Optional[str] = None
    bits_per_sample: Optional[int] = None

    # Timing
    time_base: Optional[str] = None
    start_pts: Optional[int] = None
    start_time: Optional[str] = None
    duration_ts: Optional[int] = None
    duration: Optional[str] = None
    bit_rate: Optional[str] = None
    nb_frames: Optional[str] = None

    disposition: Optional[Disposition] = None
    tags: Dict[str, str] = Field(default_factory=dict)


class FfprobeResponse(BaseModel):
    model_config = ConfigDict(json_schema_extra={"examples": [{}]})

    format: Optional[Format] = None
    streams: Optional[List[Stream]] = None


class Failure(_Envelope):
    """Structured failure result of an operation."""
    kind: str = Field(..., description="resolution | spawn | tool | transfer | validation | gateway")
    message: str
    stderr: Optional[str] = Field(default=None, description="Diagnostic text captured before the failure")
    returncode: Optional[int] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> Failure:
        if isinstance(exc, GatewayError):
            return cls(
                kind=exc.kind,
                message=exc.message,
                stderr=exc.stderr,
                returncode=getattr(exc, "returncode", None),
            )
        if isinstance(exc, ValueError):
            return cls(kind="validation", message=str(exc))
        return cls(kind="gateway", message=str(exc) or type(exc).__name__)
