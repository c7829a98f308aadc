from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..naming import name_candidates, system_from_rom_path
from ..render.ffmpeg import GenerationError
from ..types import AssetRequest, MediaKind, ScrapeIdentity, is_video

if TYPE_CHECKING:
    from .resolver import AssetResolver

logger = logging.getLogger(__name__)


@dataclass
class ResolveContext:
    request: AssetRequest
    systems: list[str]
    names: list[str]
    rom_name: str
    allow_video: bool
    game_start: bool
    preview: bool = False
    held: Optional[Path] = None
    raw: Optional[Path] = None

    @property
    def system(self) -> str:
        return self.request.system


class Strategy(ABC):
    """One tier of the resolution chain."""

    name: str = "strategy"

    def __init__(self, resolver: "AssetResolver"):
        self.resolver = resolver

    @abstractmethod
    def try_resolve(self, ctx: ResolveContext) -> Optional[Path]: ...


class OverrideStrategy(Strategy):
    name = "override"

    def try_resolve(self, ctx: ResolveContext) -> Optional[Path]:
        finder = self.resolver.finder
        if ctx.request.media_kind == MediaKind.DMD:
            found = finder.find_dmd(ctx.names, ctx.systems)
            if found is not None:
                return found
        return finder.find_custom(ctx.names, ctx.systems)


class ScrapeStrategy(Strategy):
    name = "scrape"

    def try_resolve(self, ctx: ResolveContext) -> Optional[Path]:
        r = self.resolver
        req = ctx.request
        if not r.scrapers.enabled or not req.rom_path or ctx.preview or ctx.game_start:
            return None
        result = r.scrapers.lookup(r.scrape_identity(req))
        if result.path is not None:
            return result.path
        if result.pending_source is not None:
            return r.store.scraping_placeholder(req.media_kind, result.pending_source)
        return None


class GameStartStrategy(Strategy):
    """Start-of-session media; a scraped still is held for later tiers."""

    name = "game-start"

    def try_resolve(self, ctx: ResolveContext) -> Optional[Path]:
        if not ctx.game_start:
            return None
        finder = self.resolver.finder
        req = ctx.request
        custom = finder.find_game_start_custom(ctx.system, ctx.rom_name, req.game, req.media_kind)
        if custom is not None:
            return custom
        for system in ctx.systems:
            scraped = finder.find_game_start_scraped(system, ctx.rom_name, req.game, req.media_kind)
            if scraped is None:
                continue
            if is_video(scraped):
                return scraped
            ctx.held = scraped
            break
        return None


class RawBypassStrategy(Strategy):
    """Authored videos and override files are shown as-is, never recomposed."""

    name = "raw"

    def try_resolve(self, ctx: ResolveContext) -> Optional[Path]:
        finder = self.resolver.finder
        raw = finder.try_find(ctx.names, ctx.systems)
        if raw is not None and not ctx.game_start and finder.is_generated(raw):
            raw = None
        ctx.raw = raw
        if raw is not None and (finder.is_custom(raw) or is_video(raw)):
            return raw
        return None


class VideoGenerationStrategy(Strategy):
    name = "video"

    def try_resolve(self, ctx: ResolveContext) -> Optional[Path]:
        r = self.resolver
        if not ctx.allow_video or not r.config.video.generation_enabled:
            return None
        if ctx.raw is not None and is_video(ctx.raw):
            return None
        source = r.finder.find_video(ctx.names, ctx.systems)
        if source is None:
            return None
        logo = r.logo_for(ctx)
        if logo is None:
            logger.debug(f"No logo to overlay on {source}")
            return None

        out = r.finder.generated_path(ctx.system, ctx.rom_name, ctx.request.media_kind)
        params = r.video_offsets.get(ctx.system, ctx.request.game)
        try:
            return r.composition.compose(
                source,
                logo,
                params,
                out,
                generator=r.video_generator,
                size=r.store.size_for(ctx.request.media_kind),
                require_fresh=True,
            )
        except GenerationError as e:
            logger.warning(f"Video generation failed for {ctx.request.game}: {e}")
            return None


class HeldMediaStrategy(Strategy):
    name = "held"

    def try_resolve(self, ctx: ResolveContext) -> Optional[Path]:
        return ctx.held


class CompositionStrategy(Strategy):
    name = "compose"

    def try_resolve(self, ctx: ResolveContext) -> Optional[Path]:
        r = self.resolver
        if not r.config.compose.enabled:
            return None
        background = self.find_background(ctx)
        if background is None:
            return None
        foreground = self.find_foreground(ctx, background)
        if foreground is None:
            return background

        params = r.offsets.get(ctx.system, ctx.request.game)
        target = r.composition.target_for(ctx.system, foreground, ctx.request.media_kind)
        try:
            return r.composition.compose(
                background,
                foreground,
                params,
                target,
                is_preview=ctx.preview,
                size=r.store.size_for(ctx.request.media_kind),
            )
        except GenerationError as e:
            logger.warning(f"Composition failed for {ctx.request.game}: {e}")
            return None

    def find_background(self, ctx: ResolveContext) -> Optional[Path]:
        finder = self.resolver.finder
        if self.resolver.config.compose.media == "image":
            for suffix in ("-image", "-thumb", "-mix"):
                found = finder.try_find(ctx.names, ctx.systems, suffix)
                if found is not None:
                    return found
            # plain rom-named still, but never the marquee itself
            found = finder.try_find(name_candidates(ctx.rom_name, None), ctx.systems, "")
            if found is not None and found != ctx.raw:
                return found
        return finder.try_find(ctx.names, ctx.systems, "-fanart")

    def find_foreground(self, ctx: ResolveContext, background: Path) -> Optional[Path]:
        finder = self.resolver.finder
        topper = finder.try_find(ctx.names, ctx.systems, "-topper")
        if topper is not None:
            return topper
        if ctx.raw is not None and ctx.raw != background:
            return ctx.raw
        return finder.system_marquee(ctx.system)


class StaticFallbackStrategy(Strategy):
    name = "static"

    def try_resolve(self, ctx: ResolveContext) -> Optional[Path]:
        finder = self.resolver.finder
        if ctx.raw is not None:
            return ctx.raw
        topper = finder.try_find(ctx.names, ctx.systems, "-topper")
        if topper is not None:
            return topper
        system = finder.system_marquee(ctx.system)
        if system is not None:
            return system
        return self.resolver.store.default_placeholder(ctx.request.media_kind)


DEFAULT_CHAIN: tuple[type[Strategy], ...] = (
    OverrideStrategy,
    ScrapeStrategy,
    GameStartStrategy,
    RawBypassStrategy,
    VideoGenerationStrategy,
    HeldMediaStrategy,
    CompositionStrategy,
    StaticFallbackStrategy,
)


def scrape_system(request: AssetRequest, aliases: dict[str, str]) -> str:
    """System a remote lookup should be filed under: ROM folder, alias, then request."""
    return system_from_rom_path(request.rom_path) or aliases.get(request.system) or request.system


def identity_for(request: AssetRequest, aliases: dict[str, str]) -> ScrapeIdentity:
    return ScrapeIdentity(
        system=scrape_system(request, aliases),
        game=request.game,
        rom_path=request.rom_path or "",
        media_kind=request.media_kind,
    )
