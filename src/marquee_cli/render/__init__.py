from .ffmpeg import (
    CorruptSourceError,
    FFmpegNotFoundError,
    GenerationError,
    ToolFailureError,
    ToolTimeoutError,
    check_ffmpeg,
    run_ffmpeg,
)

__all__ = [
    "CorruptSourceError",
    "FFmpegNotFoundError",
    "GenerationError",
    "ToolFailureError",
    "ToolTimeoutError",
    "check_ffmpeg",
    "run_ffmpeg",
]
