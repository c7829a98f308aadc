from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class EventType(str, Enum):
    SYSTEM_SELECTED = "system-selected"
    GAME_SELECTED = "game-selected"
    GAME_START = "game-start"

    @classmethod
    def parse(cls, value: str) -> Optional["EventType"]:
        try:
            return cls(value)
        except ValueError:
            return None


class MediaKind(str, Enum):
    MARQUEE = "mpv"
    DMD = "dmd"


VIDEO_EXTENSIONS = (".mp4", ".avi", ".webm", ".mkv", ".mov", ".gif")


def is_video(path: Path) -> bool:
    return path.suffix.lower() in VIDEO_EXTENSIONS


@dataclass(frozen=True)
class AssetRequest:
    event: str
    system: str
    game: str
    rom_path: Optional[str] = None
    media_kind: MediaKind = MediaKind.MARQUEE

    @property
    def event_type(self) -> Optional[EventType]:
        return EventType.parse(self.event)

    @property
    def rom_stem(self) -> str:
        if not self.rom_path:
            return self.game
        name = self.rom_path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
        return Path(name).stem or self.game


@dataclass(frozen=True)
class ScrapeIdentity:
    """What a remote source needs to look up art for one game."""

    system: str
    game: str
    rom_path: str
    media_kind: MediaKind = MediaKind.MARQUEE

    @property
    def key(self) -> str:
        return f"{self.system}_{self.game}_{self.media_kind.value}"

    @property
    def rom_stem(self) -> str:
        name = self.rom_path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
        return Path(name).stem


@dataclass(frozen=True)
class ScrapeCompleted:
    identity: ScrapeIdentity
    path: Optional[Path]
    source_id: str
