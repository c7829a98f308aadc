from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..config import KNOWN_SCRAPERS, ConfigError, MarqueeConfig, find_config, load_config
from ..store import AssetStore
from ..types import ScrapeCompleted, ScrapeIdentity
from .arcadeitalia import ArcadeItaliaSource
from .budget import ConcurrencyBudget
from .coordinator import CompletionListener, NegativeCache, ScrapeCoordinator
from .screenscraper import ScreenScraperSource
from .source import ArtSource

logger = logging.getLogger(__name__)

FAILED_FILES = {
    "screenscraper": "scraps_failed.json",
    "arcadeitalia": "arcadeitalia_failed.json",
}
ARCADEITALIA_CEILING = 2


@dataclass(frozen=True)
class ScrapeLookup:
    path: Optional[Path] = None
    pending_source: Optional[str] = None


class ScraperManager:
    """Scrapers in configured priority order, one coordinator per source."""

    def __init__(
        self,
        config: MarqueeConfig,
        store: Optional[AssetStore] = None,
        sources: Optional[dict[str, ArtSource]] = None,
        executor: Optional[Executor] = None,
    ):
        self._config = config
        self._store = store or AssetStore(config)
        self._sources = dict(sources or {})
        self._executor = executor
        self._coordinators: dict[str, ScrapeCoordinator] = {}
        self._listeners: list[CompletionListener] = []

    @classmethod
    def from_config_file(cls, config_path: Optional[Path] = None) -> "ScraperManager":
        if config_path is None:
            config_path = find_config()
        return cls(load_config(config_path))

    @property
    def config(self) -> MarqueeConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.scraping.auto_scrape

    def get_coordinator(self, name: str) -> ScrapeCoordinator:
        if name in self._coordinators:
            return self._coordinators[name]

        source = self._sources.get(name) or self._instantiate_source(name)
        ceiling = self._config.screenscraper.threads if name == "screenscraper" else ARCADEITALIA_CEILING
        failed_file = self._config.paths.cache_root / FAILED_FILES.get(name, f"{name}_failed.json")
        coordinator = ScrapeCoordinator(
            source,
            NegativeCache(failed_file),
            ConcurrencyBudget(ceiling, name=source.display_name),
            executor=self._executor,
        )
        coordinator.subscribe(self._forward)
        self._coordinators[name] = coordinator
        return coordinator

    def _instantiate_source(self, name: str) -> ArtSource:
        if name == "screenscraper":
            return ScreenScraperSource(self._config, self._store)
        if name == "arcadeitalia":
            return ArcadeItaliaSource(self._config, self._store)
        available = set(KNOWN_SCRAPERS) | set(self._sources)
        raise ConfigError(f"Unknown scraper: '{name}'. Available scrapers: {sorted(available)}")

    def coordinators(self) -> list[ScrapeCoordinator]:
        return [self.get_coordinator(name) for name in self._config.scraping.priority]

    def subscribe(self, listener: CompletionListener) -> None:
        self._listeners.append(listener)

    def check_and_fetch(self, identity: ScrapeIdentity) -> Optional[Path]:
        """First cached artifact in priority order; a pending job stops the chain."""
        return self.lookup(identity).path

    def lookup(self, identity: ScrapeIdentity) -> ScrapeLookup:
        """Like check_and_fetch, also naming the source whose job is pending."""
        if not self.enabled:
            return ScrapeLookup()
        for coordinator in self.coordinators():
            path, pending = coordinator.lookup(identity)
            if path is not None:
                return ScrapeLookup(path=path)
            if pending:
                return ScrapeLookup(pending_source=coordinator.source.display_name)
        return ScrapeLookup()

    def is_scraping(self, identity: ScrapeIdentity) -> bool:
        return self.active_scraper_name(identity) is not None

    def active_scraper_name(self, identity: ScrapeIdentity) -> Optional[str]:
        for coordinator in self._coordinators.values():
            if coordinator.is_pending(identity):
                return coordinator.source.display_name
        return None

    def clear_failures(self, name: Optional[str] = None) -> list[str]:
        names = [name] if name else list(self._config.scraping.priority)
        for n in names:
            self.get_coordinator(n).clear_failures()
        return names

    def shutdown(self, wait: bool = True) -> None:
        """Stop the workers; network clients are closed only once jobs have drained."""
        for coordinator in self._coordinators.values():
            coordinator.shutdown(wait=wait)
        if wait:
            for coordinator in self._coordinators.values():
                coordinator.source.close()

    def _forward(self, event: ScrapeCompleted) -> None:
        for listener in list(self._listeners):
            listener(event)
