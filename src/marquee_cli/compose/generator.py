from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image

from ..render.ffmpeg import (
    CorruptSourceError,
    FFmpegNotFoundError,
    GenerationError,
    ToolFailureError,
    check_ffmpeg,
    is_corrupt_source_output,
    run_ffmpeg,
)
from .params import GenerationParams, VideoParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationJob:
    background: Path
    foreground: Path
    out_path: Path
    size: tuple[int, int]
    params: GenerationParams = field(default_factory=GenerationParams)
    video: VideoParams = field(default_factory=VideoParams)


class Generator(ABC):
    @property
    @abstractmethod
    def generator_id(self) -> str: ...

    @abstractmethod
    def generate(self, job: GenerationJob) -> None:
        """Write the composite for job to job.out_path or raise GenerationError."""
        raise NotImplementedError


class PillowCompositor(Generator):
    """Still composite: background cover-fitted to the panel, logo centered on top."""

    logo_fill = 0.9

    @property
    def generator_id(self) -> str:
        return "pillow"

    def generate(self, job: GenerationJob) -> None:
        w, h = job.size
        p = job.params
        try:
            with Image.open(job.background) as bg_src:
                bg = bg_src.convert("RGBA")
            with Image.open(job.foreground) as fg_src:
                logo = fg_src.convert("RGBA")
        except (OSError, ValueError) as e:
            raise GenerationError(f"Cannot read composition input: {e}") from e

        canvas = Image.new("RGBA", (w, h), (0, 0, 0, 255))

        cover = max(w / bg.width, h / bg.height) * p.fanart_scale
        bg = bg.resize((max(1, round(bg.width * cover)), max(1, round(bg.height * cover))), Image.LANCZOS)
        bx = (w - bg.width) // 2 + p.fanart_offset_x
        by = (h - bg.height) // 2 + p.fanart_offset_y
        canvas.paste(bg, (bx, by), bg)

        fit = min(w * self.logo_fill / logo.width, h * self.logo_fill / logo.height) * p.logo_scale
        logo = logo.resize((max(1, round(logo.width * fit)), max(1, round(logo.height * fit))), Image.LANCZOS)
        lx = (w - logo.width) // 2 + p.logo_offset_x
        ly = (h - logo.height) // 2 + p.logo_offset_y
        layer = Image.new("RGBA", (w, h), (0, 0, 0, 0))
        layer.paste(logo, (lx, ly), logo)
        canvas = Image.alpha_composite(canvas, layer)

        job.out_path.parent.mkdir(parents=True, exist_ok=True)
        canvas.save(job.out_path, format="PNG")


class FfmpegVideoGenerator(Generator):
    """Gameplay clip scaled to the panel with the game logo overlaid."""

    def __init__(self, timeout: float = 30.0, delete_corrupt_sources: bool = True):
        self.timeout = timeout
        self.delete_corrupt_sources = delete_corrupt_sources

    @property
    def generator_id(self) -> str:
        return "ffmpeg"

    def build_command(self, job: GenerationJob) -> list[str]:
        w, h = job.size
        v = job.video
        cmd = ["ffmpeg", "-y", "-hide_banner", "-loglevel", "error"]
        if v.start_time > 0:
            cmd += ["-ss", f"{v.start_time:g}"]
        if v.end_time > v.start_time:
            cmd += ["-to", f"{v.end_time:g}"]
        cmd += ["-i", str(job.background), "-i", str(job.foreground)]

        chain = []
        if v.has_crop:
            chain.append(f"crop={v.crop_width}:{v.crop_height}:{v.crop_x}:{v.crop_y}")
        zw, zh = round(w * v.zoom), round(h * v.zoom)
        chain.append(f"scale={zw}:{zh}:force_original_aspect_ratio=increase")
        chain.append(f"crop={w}:{h}")
        logo_h = max(1, round(h * 0.8 * v.logo_scale))
        graph = (
            f"[0:v]{','.join(chain)}[bg];"
            f"[1:v]scale=-1:{logo_h}[logo];"
            f"[bg][logo]overlay={v.logo_x}:{v.logo_y}[out]"
        )
        cmd += [
            "-filter_complex", graph,
            "-map", "[out]",
            "-an",
            "-c:v", "libx264",
            "-pix_fmt", "yuv420p",
            "-f", "mp4",
            str(job.out_path),
        ]
        return cmd

    def generate(self, job: GenerationJob) -> None:
        if not check_ffmpeg():
            raise FFmpegNotFoundError()
        job.out_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            run_ffmpeg(self.build_command(job), timeout=self.timeout)
        except ToolFailureError as e:
            if is_corrupt_source_output(e.stderr):
                self._discard_source(job.background)
                raise CorruptSourceError(str(job.background), e.stderr) from e
            raise

    def _discard_source(self, source: Path) -> None:
        if not self.delete_corrupt_sources:
            return
        try:
            source.unlink()
            logger.warning(f"Deleted corrupt source video {source}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not delete corrupt source {source}: {e}")

