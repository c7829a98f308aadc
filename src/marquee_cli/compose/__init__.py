from __future__ import annotations

from .cache import CompositionCache, sweep_orphans, wait_for_file
from .generator import FfmpegVideoGenerator, GenerationJob, Generator, PillowCompositor
from .params import DEFAULT_PARAMS, DEFAULT_VIDEO_PARAMS, GenerationParams, VideoParams

__all__ = [
    "CompositionCache",
    "sweep_orphans",
    "wait_for_file",
    "FfmpegVideoGenerator",
    "GenerationJob",
    "Generator",
    "PillowCompositor",
    "DEFAULT_PARAMS",
    "DEFAULT_VIDEO_PARAMS",
    "GenerationParams",
    "VideoParams",
]
