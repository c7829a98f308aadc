from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..compose.cache import CompositionCache, sweep_orphans
from ..compose.generator import FfmpegVideoGenerator, Generator
from ..config import MarqueeConfig, find_config, load_config
from ..naming import name_candidates, system_candidates
from ..offsets import OffsetStore, VideoOffsetStore
from ..scrape.manager import ScraperManager
from ..store import AssetStore
from ..types import AssetRequest, EventType, ScrapeCompleted, ScrapeIdentity
from .finder import MarqueeFinder
from .strategies import DEFAULT_CHAIN, ResolveContext, Strategy, identity_for

logger = logging.getLogger(__name__)

ResolvedListener = Callable[[AssetRequest, Path], None]


@dataclass(frozen=True)
class _LastContext:
    request: AssetRequest
    systems: tuple[str, ...]


class AssetResolver:
    """Answers "what should the panel show right now" for a frontend event.

    Game events walk an ordered chain of strategies and return the first
    hit. The chain ends in a static fallback that always produces a file, so
    ``resolve`` never raises and never returns None. Network fetches and
    long generations happen on worker threads; their results arrive through
    ``subscribe``.
    """

    def __init__(
        self,
        config: MarqueeConfig,
        store: Optional[AssetStore] = None,
        scrapers: Optional[ScraperManager] = None,
        composition: Optional[CompositionCache] = None,
        offsets: Optional[OffsetStore] = None,
        video_offsets: Optional[VideoOffsetStore] = None,
        video_generator: Optional[Generator] = None,
        chain: tuple[type[Strategy], ...] = DEFAULT_CHAIN,
    ):
        self.config = config
        self.store = store or AssetStore(config)
        self.finder = MarqueeFinder(config, self.store)
        self.scrapers = scrapers or ScraperManager(config, self.store)
        self.composition = composition or CompositionCache(
            config.paths.cache_root, size=config.display.marquee_size
        )
        cache_root = config.paths.cache_root
        self.offsets = offsets or OffsetStore(cache_root / "offsets.json")
        self.video_offsets = video_offsets or VideoOffsetStore(cache_root / "video_offsets.json")
        self.video_generator = video_generator or FfmpegVideoGenerator(timeout=config.video.timeout_sec)
        self.strategies = [cls(self) for cls in chain]

        self._last: Optional[_LastContext] = None
        self._last_lock = threading.Lock()
        self._listeners: list[ResolvedListener] = []
        self.scrapers.subscribe(self._on_scrape_completed)
        sweep_orphans(self.finder.generated_root)

    @classmethod
    def from_config_file(cls, config_path: Optional[Path] = None) -> "AssetResolver":
        if config_path is None:
            config_path = find_config()
        return cls(load_config(config_path))

    def subscribe(self, listener: ResolvedListener) -> None:
        self._listeners.append(listener)

    def resolve(self, request: AssetRequest, preview: bool = False) -> Path:
        event = request.event_type
        if event is None:
            logger.debug(f"Unhandled event '{request.event}', showing default")
            return self.store.default_placeholder(request.media_kind)
        if event == EventType.SYSTEM_SELECTED:
            return self.finder.system_marquee(request.system) or self.store.default_placeholder(request.media_kind)

        game_start = event == EventType.GAME_START
        return self._resolve_game(request, allow_video=game_start, game_start=game_start, preview=preview)

    def _resolve_game(
        self,
        request: AssetRequest,
        allow_video: bool,
        game_start: bool,
        preview: bool,
    ) -> Path:
        systems = system_candidates(request.system, self.config.display.system_aliases, request.rom_path)
        rom_name = request.rom_stem
        ctx = ResolveContext(
            request=request,
            systems=systems,
            names=name_candidates(rom_name, request.game),
            rom_name=rom_name,
            allow_video=allow_video,
            game_start=game_start,
            preview=preview,
        )
        with self._last_lock:
            self._last = _LastContext(request, tuple(systems))

        for strategy in self.strategies:
            try:
                found = strategy.try_resolve(ctx)
            except Exception:
                logger.exception(f"Resolution tier '{strategy.name}' failed for {request.game}")
                continue
            if found is not None:
                logger.debug(f"{request.game}: resolved by {strategy.name} -> {found}")
                return found
        return self.store.default_placeholder(request.media_kind)

    def scrape_identity(self, request: AssetRequest) -> ScrapeIdentity:
        return identity_for(request, self.config.display.system_aliases)

    def logo_for(self, ctx: ResolveContext) -> Optional[Path]:
        """Logo to overlay on generated videos; never the default placeholder."""
        return (
            self.finder.try_find(ctx.names, ctx.systems, "-marquee")
            or ctx.raw
            or self.finder.try_find(ctx.names, ctx.systems)
            or self.finder.system_marquee(ctx.system)
        )

    @property
    def last_request(self) -> Optional[AssetRequest]:
        with self._last_lock:
            return self._last.request if self._last else None

    def refresh_composition(self, dx: int, dy: int, is_logo: bool) -> Optional[Path]:
        """Nudge the last game's composition and regenerate it as a preview."""
        request = self.last_request
        if request is None:
            return None
        self.offsets.update_offset(request.system, request.game, dx, dy, is_logo)
        return self._retune(request)

    def refresh_scale(self, delta: float, is_logo: bool) -> Optional[Path]:
        request = self.last_request
        if request is None:
            return None
        self.offsets.update_scale(request.system, request.game, delta, is_logo)
        return self._retune(request)

    def _retune(self, request: AssetRequest) -> Path:
        return self._resolve_game(request, allow_video=False, game_start=True, preview=True)

    def _on_scrape_completed(self, event: ScrapeCompleted) -> None:
        with self._last_lock:
            last = self._last
        if last is None or event.path is None:
            return
        if last.request.game != event.identity.game or event.identity.system not in last.systems:
            return
        logger.info(f"Art for {event.identity.game} arrived from {event.source_id}, refreshing")
        path = self.resolve(last.request)
        for listener in list(self._listeners):
            listener(last.request, path)

    def close(self) -> None:
        self.scrapers.shutdown(wait=True)
