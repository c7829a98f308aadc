from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Generic, TypeVar

from .compose.params import GenerationParams, VideoParams
from .io import atomic_write_json, read_json

P = TypeVar("P", GenerationParams, VideoParams)


class _ParamsStore(Generic[P]):
    params_type: type

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, dict[str, Any]]] = self._load()

    def _load(self) -> dict[str, dict[str, dict[str, Any]]]:
        return read_json(self.path, {}, dict)

    def get(self, system: str, game: str) -> P:
        with self._lock:
            raw = self._data.get(system, {}).get(game)
        if raw is None:
            return self.params_type()
        return self.params_type.from_dict(raw)

    def set(self, system: str, game: str, params: P) -> None:
        with self._lock:
            self._data.setdefault(system, {})[game] = params.to_dict()
            atomic_write_json(self.path, self._data)


class OffsetStore(_ParamsStore[GenerationParams]):
    """Per-game composition offsets and scales, persisted as system -> game -> params."""

    params_type = GenerationParams

    def update_offset(self, system: str, game: str, dx: int, dy: int, is_logo: bool) -> GenerationParams:
        params = self.get(system, game).moved(dx, dy, is_logo)
        self.set(system, game, params)
        return params

    def update_scale(self, system: str, game: str, delta: float, is_logo: bool) -> GenerationParams:
        params = self.get(system, game).scaled(delta, is_logo)
        self.set(system, game, params)
        return params


class VideoOffsetStore(_ParamsStore[VideoParams]):
    params_type = VideoParams
