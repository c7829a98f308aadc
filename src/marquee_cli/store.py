from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from .config import MarqueeConfig
from .io import atomic_write_bytes
from .placeholders import default_placeholder, scraping_placeholder
from .types import MediaKind

logger = logging.getLogger(__name__)


class AssetStore:
    """Filesystem primitives shared by the resolver and the scrapers."""

    def __init__(self, config: MarqueeConfig):
        self.config = config
        self.paths = config.paths

    @property
    def media_root(self) -> Path:
        return self.paths.media_root

    def size_for(self, kind: MediaKind) -> tuple[int, int]:
        return self.config.display.dmd_size if kind == MediaKind.DMD else self.config.display.marquee_size

    def exists(self, path: Optional[Path]) -> bool:
        return path is not None and path.is_file()

    def find_first(
        self,
        directory: Path,
        names: Iterable[str],
        extensions: Optional[Iterable[str]] = None,
    ) -> Optional[Path]:
        """First directory/<name><ext> that exists, names outermost."""
        if not directory.is_dir():
            return None
        exts = list(extensions) if extensions is not None else self.config.display.extensions
        for name in names:
            if not name:
                continue
            for ext in exts:
                candidate = directory / f"{name}{ext}"
                if candidate.is_file():
                    return candidate
        return None

    def find_file(self, base: Path, extensions: Optional[Iterable[str]] = None) -> Optional[Path]:
        """base with any accepted extension appended."""
        return self.find_first(base.parent, [base.name], extensions)

    def list_prefix(self, directory: Path, prefix: str) -> list[Path]:
        if not directory.is_dir():
            return []
        lowered = prefix.lower()
        return sorted(p for p in directory.iterdir() if p.is_file() and p.name.lower().startswith(lowered))

    def read_bytes(self, path: Path) -> bytes:
        return path.read_bytes()

    def write_bytes(self, path: Path, data: bytes) -> Path:
        atomic_write_bytes(path, data)
        return path

    def default_placeholder(self, kind: MediaKind = MediaKind.MARQUEE, force: bool = False) -> Path:
        out = self.paths.default_placeholder
        if out is None:
            name = "default-dmd.png" if kind == MediaKind.DMD else "default.png"
            out = self.media_root / name
        return default_placeholder(out, self.size_for(kind), force)

    def scraping_placeholder(
        self,
        kind: MediaKind,
        source_name: str = "ScreenScraper",
        force: bool = False,
    ) -> Path:
        return scraping_placeholder(self.media_root, kind, self.size_for(kind), source_name, force)
