from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional, Union

SCALE_TOLERANCE = 0.01
MIN_SCALE = 0.1
MAX_SCALE = 5.0

_SIDECAR_KEYS = {
    "fanart_offset_x": "fanartOffsetX",
    "fanart_offset_y": "fanartOffsetY",
    "fanart_scale": "fanartScale",
    "logo_offset_x": "logoOffsetX",
    "logo_offset_y": "logoOffsetY",
    "logo_scale": "logoScale",
}


def _clamp_scale(value: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, value))


@dataclass(frozen=True, eq=False)
class GenerationParams:
    """How a background and a logo are combined into one composite.

    Offsets compare exactly; scales compare within SCALE_TOLERANCE.
    """

    fanart_offset_x: int = 0
    fanart_offset_y: int = 0
    fanart_scale: float = 1.0
    logo_offset_x: int = 0
    logo_offset_y: int = 0
    logo_scale: float = 1.0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GenerationParams):
            return NotImplemented
        return (
            self.fanart_offset_x == other.fanart_offset_x
            and self.fanart_offset_y == other.fanart_offset_y
            and self.logo_offset_x == other.logo_offset_x
            and self.logo_offset_y == other.logo_offset_y
            and abs(self.fanart_scale - other.fanart_scale) < SCALE_TOLERANCE
            and abs(self.logo_scale - other.logo_scale) < SCALE_TOLERANCE
        )

    # tolerance equality cannot be hashed consistently
    __hash__ = None  # type: ignore[assignment]

    @property
    def is_default(self) -> bool:
        return self == DEFAULT_PARAMS

    def moved(self, dx: int, dy: int, is_logo: bool) -> "GenerationParams":
        if is_logo:
            return replace(self, logo_offset_x=self.logo_offset_x + dx, logo_offset_y=self.logo_offset_y + dy)
        return replace(self, fanart_offset_x=self.fanart_offset_x + dx, fanart_offset_y=self.fanart_offset_y + dy)

    def scaled(self, delta: float, is_logo: bool) -> "GenerationParams":
        if is_logo:
            return replace(self, logo_scale=_clamp_scale(self.logo_scale + delta))
        return replace(self, fanart_scale=_clamp_scale(self.fanart_scale + delta))

    def to_dict(self) -> dict[str, Any]:
        return {_SIDECAR_KEYS[k]: v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GenerationParams":
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            key = _SIDECAR_KEYS[f.name]
            if key in data:
                kwargs[f.name] = float(data[key]) if f.type == "float" else int(data[key])
        return cls(**kwargs)


DEFAULT_PARAMS = GenerationParams()


def sidecar_path(artifact: Path) -> Path:
    return artifact.with_suffix(".json")


def write_params_sidecar(artifact: Path, params: "AnyParams") -> Path:
    sidecar = sidecar_path(artifact)
    sidecar.write_text(json.dumps(params.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    return sidecar


def read_params_sidecar(artifact: Path, params_type: type = GenerationParams) -> Optional["AnyParams"]:
    sidecar = sidecar_path(artifact)
    if not sidecar.exists():
        return None
    try:
        data = json.loads(sidecar.read_text(encoding="utf-8"))
        return params_type.from_dict(data)
    except (json.JSONDecodeError, OSError, TypeError, ValueError, AttributeError):
        return None


_VIDEO_KEYS = {
    "crop_x": "cropX",
    "crop_y": "cropY",
    "crop_width": "cropWidth",
    "crop_height": "cropHeight",
    "zoom": "zoom",
    "logo_x": "logoX",
    "logo_y": "logoY",
    "logo_scale": "logoScale",
    "start_time": "startTime",
    "end_time": "endTime",
}


@dataclass(frozen=True, eq=False)
class VideoParams:
    """Crop, zoom, logo placement and trim window for a generated marquee video."""

    crop_x: int = 0
    crop_y: int = 0
    crop_width: int = 0
    crop_height: int = 0
    zoom: float = 1.0
    logo_x: int = 10
    logo_y: int = 10
    logo_scale: float = 1.0
    start_time: float = 0.0
    end_time: float = 0.0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VideoParams):
            return NotImplemented
        for f in fields(self):
            a, b = getattr(self, f.name), getattr(other, f.name)
            if f.type == "float":
                if abs(a - b) >= SCALE_TOLERANCE:
                    return False
            elif a != b:
                return False
        return True

    __hash__ = None  # type: ignore[assignment]

    @property
    def is_default(self) -> bool:
        return self == DEFAULT_VIDEO_PARAMS

    @property
    def has_crop(self) -> bool:
        return self.crop_width > 0 and self.crop_height > 0

    def to_dict(self) -> dict[str, Any]:
        return {_VIDEO_KEYS[k]: v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VideoParams":
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            key = _VIDEO_KEYS[f.name]
            if key in data:
                kwargs[f.name] = float(data[key]) if f.type == "float" else int(data[key])
        return cls(**kwargs)


DEFAULT_VIDEO_PARAMS = VideoParams()

AnyParams = Union[GenerationParams, VideoParams]
