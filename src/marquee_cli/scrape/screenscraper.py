"""ScreenScraper-style art lookup.

A game is identified through a ladder of increasingly loose queries, each
restricted to the requested system:

1. ROM checksum (CRC32) via ``jeuInfos``
2. ROM file name without extension via ``jeuInfos``
3. cleaned display name search via ``jeuRecherche``
4. raw display name search, when it differs from the cleaned one
5. "<display name> <system>" search

Matches on other systems seen along the way are remembered; with global
search enabled the first of them is used instead of asking again, and only
if there was none is a final search issued without the system filter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import httpx

from ..config import MarqueeConfig
from ..io import read_yaml
from ..naming import clean_name, crc32_of
from ..store import AssetStore
from ..types import MediaKind, ScrapeIdentity
from .budget import ConcurrencyBudget
from .source import (
    ArtSource,
    MediaDescriptor,
    RateLimitedError,
    ScrapeError,
    TransientNetworkError,
)

logger = logging.getLogger(__name__)

INFO_ENDPOINT = "jeuInfos.php"
SEARCH_ENDPOINT = "jeuRecherche.php"


def load_system_map(path: Optional[Path]) -> dict[str, str]:
    """System folder name -> remote system id, from a JSON or YAML mapping."""
    if path is None or not path.exists():
        return {}
    try:
        data = read_yaml(path)
    except (OSError, ValueError) as e:
        logger.warning(f"Cannot read system map {path}: {e}")
        return {}
    return {str(k).lower(): str(v) for k, v in data.items()}


def is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.is_success:
        return False
    return "threads" in response.text.lower()


def system_id_of(game: dict[str, Any]) -> Optional[str]:
    for key in ("systeme", "system"):
        sys = game.get(key)
        if isinstance(sys, dict) and sys.get("id") is not None:
            return str(sys["id"]).strip()
    return None


def title_of(game: dict[str, Any]) -> str:
    names = {item.get("langue"): item.get("nom") for item in game.get("noms") or [] if item.get("nom")}
    for lang in ("en", "fr"):
        if names.get(lang):
            return names[lang]
    return next(iter(names.values()), "Untitled")


def media_of(game: dict[str, Any], media_type: str) -> Optional[MediaDescriptor]:
    for media in game.get("medias") or []:
        if media.get("type") == media_type and media.get("url"):
            return MediaDescriptor(
                url=media["url"],
                format=media.get("format"),
                title=title_of(game),
                system_id=system_id_of(game),
            )
    return None


@dataclass
class LookupResult:
    media: Optional[MediaDescriptor] = None
    cross_system: Optional[MediaDescriptor] = None


class ScreenScraperSource(ArtSource):
    def __init__(
        self,
        config: MarqueeConfig,
        store: AssetStore,
        client: Optional[httpx.Client] = None,
        system_map: Optional[dict[str, str]] = None,
    ):
        self.config = config
        self.settings = config.screenscraper
        self.store = store
        self._client = client or httpx.Client(
            timeout=self.settings.timeout_sec,
            follow_redirects=True,
            headers={"User-Agent": self.settings.softname},
        )
        if system_map is None:
            system_map = load_system_map(self.settings.systems_file)
        self.system_map = {k.lower(): v for k, v in system_map.items()}

    @property
    def source_id(self) -> str:
        return "screenscraper"

    @property
    def display_name(self) -> str:
        return "ScreenScraper"

    def close(self) -> None:
        self._client.close()

    def media_type(self, identity: ScrapeIdentity) -> str:
        if identity.media_kind == MediaKind.DMD:
            return self.settings.dmd_media_type
        return self.settings.media_type

    def system_id(self, system: str) -> Optional[str]:
        return self.system_map.get(system.lower())

    def can_fetch(self, identity: ScrapeIdentity) -> bool:
        user, password = self.settings.credentials()
        if not user or not password:
            return False
        if not self.media_type(identity):
            return False
        if self.system_id(identity.system) is None:
            logger.debug(f"System '{identity.system}' has no remote id mapping")
            return False
        return True

    def cache_path(self, identity: ScrapeIdentity, fmt: Optional[str] = None) -> Path:
        media_type = self.media_type(identity)
        ext = fmt or ("mp4" if "video" in media_type else "png")
        name = f"{identity.rom_stem}_{media_type}.{ext.lstrip('.')}"
        return self.config.paths.scrape_cache_root / identity.system / name

    def find_cached(self, identity: ScrapeIdentity) -> Optional[Path]:
        expected = self.cache_path(identity)
        if expected.is_file():
            return expected
        # the downloaded format may differ from the guessed extension
        prefix = f"{identity.rom_stem}_{self.media_type(identity)}."
        for candidate in self.store.list_prefix(expected.parent, prefix):
            if candidate.suffix != ".tmp":
                return candidate
        return None

    def _base_params(self, system_id: Optional[str]) -> dict[str, str]:
        user, password = self.settings.credentials()
        params = {
            "devid": self.settings.dev_id,
            "devpassword": self.settings.dev_password,
            "softname": self.settings.softname,
            "output": "json",
            "ssid": user or "",
            "sspassword": password or "",
        }
        if system_id is not None:
            params["systemeid"] = system_id
        return params

    def fetch(self, identity: ScrapeIdentity, budget: ConcurrencyBudget) -> Optional[Path]:
        system_id = self.system_id(identity.system)
        media_type = self.media_type(identity)
        rom = Path(identity.rom_path)
        global_search = self.config.scraping.global_search

        rom_params = self._base_params(system_id)
        rom_params.update({
            "romnom": rom.name,
            "romtaille": str(rom.stat().st_size) if rom.is_file() else "0",
            "romtype": "rom",
        })
        cleaned = clean_name(identity.game)

        stages: list[tuple[str, str, dict[str, str]]] = []
        crc = crc32_of(rom)
        if crc:
            stages.append(("crc", INFO_ENDPOINT, {**rom_params, "crc": crc}))
        stages.append(("rom name", INFO_ENDPOINT, {**rom_params, "romnom": rom.stem}))
        search_base = {k: v for k, v in rom_params.items() if k != "romnom"}
        if identity.game:
            stages.append(("cleaned name", SEARCH_ENDPOINT, {**search_base, "recherche": cleaned}))
            if cleaned.lower() != identity.game.lower():
                stages.append(("full name", SEARCH_ENDPOINT, {**search_base, "recherche": identity.game}))
            stages.append((
                "name + system",
                SEARCH_ENDPOINT,
                {**search_base, "recherche": f"{identity.game} {identity.system}"},
            ))

        media: Optional[MediaDescriptor] = None
        cross_system: Optional[MediaDescriptor] = None
        for label, endpoint, params in stages:
            logger.debug(f"{identity.key}: trying {label}")
            result = budget.call_with_retry(
                lambda: self.lookup(endpoint, params, media_type, system_id, strict=True)
            )
            if cross_system is None:
                cross_system = result.cross_system
            if result.media is not None:
                media = result.media
                break

        if media is None and global_search:
            if cross_system is not None:
                logger.info(f"{identity.key}: using match from system {cross_system.system_id}: {cross_system.title}")
                media = cross_system
            else:
                params = self._base_params(None)
                params["recherche"] = cleaned
                result = budget.call_with_retry(
                    lambda: self.lookup(SEARCH_ENDPOINT, params, media_type, None, strict=False)
                )
                media = result.media

        if media is None:
            return None
        return self.download(media, self.cache_path(identity, media.format), budget)

    def lookup(
        self,
        endpoint: str,
        params: dict[str, str],
        media_type: str,
        target_system: Optional[str],
        strict: bool,
    ) -> LookupResult:
        """One API call. With strict, only media from target_system counts as a match."""
        url = f"{self.settings.base_url.rstrip('/')}/{endpoint}"
        try:
            response = self._client.get(url, params=params)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise TransientNetworkError(f"{endpoint}: {e}") from e

        if is_rate_limited(response):
            raise RateLimitedError(f"{endpoint}: account thread limit reached (HTTP {response.status_code})")
        if response.status_code >= 500:
            raise TransientNetworkError(f"{endpoint}: HTTP {response.status_code}")
        if not response.is_success:
            logger.debug(f"{endpoint}: HTTP {response.status_code}, treating as no match")
            return LookupResult()

        try:
            payload = response.json()
        except ValueError:
            logger.warning(f"{endpoint}: response is not JSON")
            return LookupResult()

        body = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(body, dict):
            return LookupResult()
        if isinstance(body.get("jeux"), list):
            games = [g for g in body["jeux"] if isinstance(g, dict)]
        elif isinstance(body.get("jeu"), dict):
            games = [body["jeu"]]
        else:
            games = []
        return self._pick(games, media_type, target_system, strict)

    def _pick(
        self,
        games: list[dict[str, Any]],
        media_type: str,
        target_system: Optional[str],
        strict: bool,
    ) -> LookupResult:
        result = LookupResult()
        for game in games:
            media = media_of(game, media_type)
            if media is None:
                continue
            same_system = target_system is not None and media.system_id == target_system.strip()
            if same_system or not strict:
                result.media = media
                return result
            if self.config.scraping.global_search and result.cross_system is None:
                result.cross_system = media
        return result

    def download(self, media: MediaDescriptor, dest: Path, budget: ConcurrencyBudget) -> Path:
        def get() -> bytes:
            try:
                response = self._client.get(media.url)
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                raise TransientNetworkError(f"download {media.url}: {e}") from e
            if response.status_code == 429:
                raise RateLimitedError(f"download {media.url}: HTTP 429")
            if response.status_code >= 500:
                raise TransientNetworkError(f"download {media.url}: HTTP {response.status_code}")
            if not response.is_success:
                raise ScrapeError(f"download {media.url}: HTTP {response.status_code}")
            return response.content

        data = budget.call_with_retry(get)
        return self.store.write_bytes(dest, data)
