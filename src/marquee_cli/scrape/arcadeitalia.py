from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import httpx

from ..config import MarqueeConfig
from ..store import AssetStore
from ..types import ScrapeIdentity
from .budget import ConcurrencyBudget
from .source import ArtSource, RateLimitedError, TransientNetworkError

logger = logging.getLogger(__name__)


class ArcadeItaliaSource(ArtSource):
    """MAME marquees served as static files, addressed by ROM short name."""

    extensions = ("png", "jpg")

    def __init__(
        self,
        config: MarqueeConfig,
        store: AssetStore,
        client: Optional[httpx.Client] = None,
    ):
        self.config = config
        self.settings = config.arcadeitalia
        self.store = store
        self._client = client or httpx.Client(timeout=self.settings.timeout_sec, follow_redirects=True)

    @property
    def source_id(self) -> str:
        return "arcadeitalia"

    @property
    def display_name(self) -> str:
        return "ArcadeItalia"

    def close(self) -> None:
        self._client.close()

    def can_fetch(self, identity: ScrapeIdentity) -> bool:
        return self.settings.enabled and bool(self.settings.base_url) and bool(identity.rom_stem)

    def cache_path(self, identity: ScrapeIdentity) -> Path:
        return (
            self.config.paths.media_root
            / "arcadeitalia"
            / identity.system
            / f"{identity.rom_stem}_arcadeitalia.png"
        )

    def find_cached(self, identity: ScrapeIdentity) -> Optional[Path]:
        path = self.cache_path(identity)
        return path if path.is_file() else None

    def media_urls(self, rom: str) -> list[str]:
        base = self.settings.base_url.rstrip("/")
        return [f"{base}/media/mame.current/marquees/{rom}.{ext}" for ext in self.extensions]

    def fetch(self, identity: ScrapeIdentity, budget: ConcurrencyBudget) -> Optional[Path]:
        for url in self.media_urls(identity.rom_stem):
            data = budget.call_with_retry(lambda: self._get_image(url))
            if data:
                return self.store.write_bytes(self.cache_path(identity), data)
        return None

    def _get_image(self, url: str) -> Optional[bytes]:
        try:
            response = self._client.get(url)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise TransientNetworkError(f"{url}: {e}") from e
        if response.status_code == 429:
            raise RateLimitedError(f"{url}: HTTP 429")
        if response.status_code >= 500:
            raise TransientNetworkError(f"{url}: HTTP {response.status_code}")
        if not response.is_success:
            return None
        if not response.headers.get("content-type", "").lower().startswith("image"):
            logger.debug(f"{url}: not an image ({response.headers.get('content-type')})")
            return None
        return response.content
