from __future__ import annotations

from pathlib import Path
from typing import Callable

import httpx
import pytest

from marquee_cli.config import MarqueeConfig
from marquee_cli.scrape.arcadeitalia import ArcadeItaliaSource
from marquee_cli.scrape.budget import ConcurrencyBudget
from marquee_cli.scrape.source import TransientNetworkError
from marquee_cli.store import AssetStore
from marquee_cli.types import ScrapeIdentity


def make_source(
    make_config: Callable[..., MarqueeConfig],
    handler: Callable[[httpx.Request], httpx.Response],
    **settings,
) -> ArcadeItaliaSource:
    config = make_config(arcadeitalia=settings) if settings else make_config()
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return ArcadeItaliaSource(config, AssetStore(config), client=client)


IDENTITY = ScrapeIdentity(system="mame", game="Street Fighter II", rom_path="/roms/mame/sf2.zip")


class TestArcadeItaliaSource:
    def test_falls_back_to_jpg(self, tmp_path: Path, make_config) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            if request.url.path.endswith(".jpg"):
                return httpx.Response(200, content=b"JPEG", headers={"content-type": "image/jpeg"})
            return httpx.Response(404)

        source = make_source(make_config, handler)
        path = source.fetch(IDENTITY, ConcurrencyBudget(2))

        assert path == tmp_path / "media" / "arcadeitalia" / "mame" / "sf2_arcadeitalia.png"
        assert path.read_bytes() == b"JPEG"
        assert seen == ["/media/mame.current/marquees/sf2.png", "/media/mame.current/marquees/sf2.jpg"]
        assert source.find_cached(IDENTITY) == path

    def test_html_error_page_is_not_an_image(self, make_config) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>not found</html>", headers={"content-type": "text/html"})

        source = make_source(make_config, handler)
        assert source.fetch(IDENTITY, ConcurrencyBudget(2)) is None
        assert source.find_cached(IDENTITY) is None

    def test_server_errors_are_transient(self, make_config) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(503)

        source = make_source(make_config, handler)
        with pytest.raises(TransientNetworkError):
            source.fetch(IDENTITY, ConcurrencyBudget(2, sleep=lambda s: None))
        assert len(calls) == 3

    def test_disabled_source_cannot_fetch(self, make_config) -> None:
        source = make_source(make_config, lambda r: httpx.Response(404), enabled=False)
        assert not source.can_fetch(IDENTITY)

    def test_rom_stem_required(self, make_config) -> None:
        source = make_source(make_config, lambda r: httpx.Response(404))
        assert source.can_fetch(IDENTITY)
        assert not source.can_fetch(ScrapeIdentity(system="mame", game="x", rom_path=""))
