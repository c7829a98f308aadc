from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from ..compose.cache import DMD_SUBFOLDER
from ..config import MarqueeConfig
from ..naming import fuzzy_find
from ..store import AssetStore
from ..types import MediaKind

logger = logging.getLogger(__name__)

SOURCE_VIDEO_EXTENSIONS = (".mp4", ".avi", ".mkv", ".webm", ".mov")
GAME_START_EXTENSIONS = (".mp4", ".avi", ".mkv", ".webm", ".mov", ".gif", ".png", ".jpg")
GAME_START_SUFFIXES = ("", "-topper", "-marquee", "-marquee_composed")
DMD_EXTENSIONS = (".gif", ".mp4", ".avi", ".png", ".jpg", ".bmp")
DMD_SUFFIXES = ("-marquee", "-marquee_composed", "-topper", "")


def _fill(pattern: str, system: str, game: str) -> str:
    return pattern.replace("{system_name}", system).replace("{game_name}", game)


class MarqueeFinder:
    """Filesystem lookups for game, system and start-of-session media."""

    def __init__(self, config: MarqueeConfig, store: AssetStore):
        self.config = config
        self.store = store
        self.paths = config.paths
        self.display = config.display

    def is_custom(self, path: Path) -> bool:
        p = self.paths
        roots = (p.custom_root, p.custom_game_start_root, p.dmd_root, p.dmd_game_start_root)
        return any(r is not None and path.is_relative_to(r) for r in roots)

    def is_generated(self, path: Path) -> bool:
        return path.is_relative_to(self.generated_root)

    @property
    def generated_root(self) -> Path:
        return self.paths.media_root / self.config.video.output_folder

    def generated_path(self, system: str, rom_name: str, kind: MediaKind = MediaKind.MARQUEE) -> Path:
        root = self.generated_root / DMD_SUBFOLDER if kind == MediaKind.DMD else self.generated_root
        return root / system / f"{rom_name}.mp4"

    def find_dmd(self, names: Iterable[str], systems: list[str]) -> Optional[Path]:
        """Dedicated DMD folder: <dmd>/<system> for each system, then <dmd> itself."""
        root = self.paths.dmd_root
        if root is None:
            return None
        candidates = [n + s for n in names if n for s in DMD_SUFFIXES]
        for d in [root / s for s in systems] + [root]:
            found = self.store.find_first(d, candidates, DMD_EXTENSIONS)
            if found is not None:
                logger.debug(f"DMD match {found}")
                return found
        return None

    def find_custom(self, names: Iterable[str], systems: list[str], suffix: str = "") -> Optional[Path]:
        """Operator override folder: <custom>/<system>/<name><suffix>."""
        root = self.paths.custom_root
        if root is None:
            return None
        variants = [suffix] if suffix else ["", "-marquee", "-marquee_composed"]
        for name in names:
            for system in systems:
                found = self.store.find_first(root / system, [name + v for v in variants])
                if found is not None:
                    logger.debug(f"Custom match {found}")
                    return found
        return None

    def _pattern_bases(self, system: str, name: str, suffix: str) -> list[Path]:
        configured = self.paths.media_root / (_fill(self.display.marquee_pattern, system, name) + suffix)
        default = _fill(self.display.default_pattern, system, name)
        if suffix:
            default = default.replace("-marquee", suffix) if "-marquee" in default else default + suffix
        return [configured, self.paths.roms_root / default]

    def try_find(self, names: Iterable[str], systems: list[str], suffix: str = "") -> Optional[Path]:
        """Exact pass over custom, themed and default roots; fuzzy pass only if it misses."""
        names = [n for n in names if n]
        for name in names:
            for system in systems:
                found = self.find_custom([name], [system], suffix)
                if found is not None:
                    return found
                for base in self._pattern_bases(system, name, suffix):
                    found = self.store.find_file(base)
                    if found is not None:
                        return found

        for name in names:
            if len(name) < 5:
                continue
            for system in systems:
                for base in self._pattern_bases(system, name, suffix):
                    tail = base.name[len(name):] if base.name.startswith(name) else suffix
                    fuzzy = fuzzy_find(base.parent, name, tail)
                    if fuzzy is not None and fuzzy.suffix.lower() in self.display.extensions:
                        return fuzzy
        return None

    def system_marquee(self, system: str) -> Optional[Path]:
        # collections arrive as "_favorites"
        system = system.lstrip("_")
        candidates = [system]
        alias = self.display.system_aliases.get(system)
        if alias:
            candidates.append(alias)
        names: list[str] = []
        for sys in candidates:
            names += [f"{sys}-w", sys, f"auto-{sys}", f"custom-{sys}"]

        dirs: list[Path] = []
        if self.paths.custom_root is not None:
            dirs.append(self.paths.custom_root / "systems")
        dirs.append(self.paths.system_marquee_root or self.paths.media_root / "systems")
        for d in dirs:
            found = self.store.find_first(d, names)
            if found is not None:
                return found
        return None

    def find_video(self, names: Iterable[str], systems: list[str]) -> Optional[Path]:
        """Gameplay clip: <roms>/<sys>/{videos,video,images} or the scrape cache."""
        for name in names:
            if not name:
                continue
            for system in systems:
                dirs = [self.paths.roms_root / system / d for d in ("videos", "video", "images")]
                dirs.append(self.paths.scrape_cache_root / system)
                for d in dirs:
                    found = self.store.find_first(d, [f"{name}-video", name], SOURCE_VIDEO_EXTENSIONS)
                    if found is not None:
                        return found
        return None

    def _start_candidates(self, rom_name: str, game: str) -> list[str]:
        out: list[str] = []
        for base in (rom_name, game):
            if base:
                out += [base + s for s in GAME_START_SUFFIXES]
        return out

    def find_game_start_custom(
        self,
        system: str,
        rom_name: str,
        game: str,
        kind: MediaKind = MediaKind.MARQUEE,
    ) -> Optional[Path]:
        roots = [self.paths.custom_game_start_root]
        if kind == MediaKind.DMD:
            roots.insert(0, self.paths.dmd_game_start_root)
        candidates = self._start_candidates(rom_name, game)
        for root in roots:
            if root is None:
                continue
            for d in ([root / system] if system else []) + [root]:
                found = self.store.find_first(d, candidates, GAME_START_EXTENSIONS)
                if found is not None:
                    return found
        return None

    def find_game_start_scraped(
        self,
        system: str,
        rom_name: str,
        game: str,
        kind: MediaKind = MediaKind.MARQUEE,
    ) -> Optional[Path]:
        ss = self.config.screenscraper
        media_type = ss.dmd_media_type if kind == MediaKind.DMD else ss.media_type
        names: list[str] = []
        for cand in self._start_candidates(rom_name, game):
            if media_type:
                names.append(f"{cand}_{media_type}")
            names.append(cand)
        return self.store.find_first(self.paths.scrape_cache_root / system, names, GAME_START_EXTENSIONS)

