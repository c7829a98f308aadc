from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

import pytest

from marquee_cli.config import ConfigError
from marquee_cli.scrape.arcadeitalia import ArcadeItaliaSource
from marquee_cli.scrape.budget import ConcurrencyBudget
from marquee_cli.scrape.manager import ScraperManager
from marquee_cli.scrape.screenscraper import ScreenScraperSource
from marquee_cli.scrape.source import ArtSource
from marquee_cli.types import ScrapeCompleted, ScrapeIdentity


class StubSource(ArtSource):
    def __init__(self, name: str, root: Path, finds: bool = True):
        self.name = name
        self.root = root
        self.finds = finds
        self.gate = threading.Event()
        self.gate.set()
        self.calls = 0
        self.closed = False

    @property
    def source_id(self) -> str:
        return self.name

    @property
    def display_name(self) -> str:
        return self.name.title()

    def close(self) -> None:
        self.closed = True

    def can_fetch(self, identity: ScrapeIdentity) -> bool:
        return True

    def path_for(self, identity: ScrapeIdentity) -> Path:
        return self.root / self.name / f"{identity.key}.png"

    def find_cached(self, identity: ScrapeIdentity) -> Optional[Path]:
        path = self.path_for(identity)
        return path if path.exists() else None

    def fetch(self, identity: ScrapeIdentity, budget: ConcurrencyBudget) -> Optional[Path]:
        self.calls += 1
        self.gate.wait(5)
        if not self.finds:
            return None
        path = self.path_for(identity)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"art")
        return path


IDENTITY = ScrapeIdentity(system="mame", game="sf2", rom_path="/roms/mame/sf2.zip")


def make_manager(make_config, tmp_path: Path, auto_scrape: bool = True, **finds: bool) -> ScraperManager:
    config = make_config(scraping={"auto_scrape": auto_scrape, "priority": ["screenscraper", "arcadeitalia"]})
    sources = {
        name: StubSource(name, tmp_path / "art", finds=finds.get(name, True))
        for name in ("screenscraper", "arcadeitalia")
    }
    return ScraperManager(config, sources=sources)


class TestScraperManager:
    def test_disabled_does_nothing(self, tmp_path: Path, make_config) -> None:
        manager = make_manager(make_config, tmp_path, auto_scrape=False)
        assert manager.check_and_fetch(IDENTITY) is None
        assert manager.coordinators()[0].pending_count == 0

    def test_pending_job_stops_the_chain(self, tmp_path: Path, make_config) -> None:
        manager = make_manager(make_config, tmp_path)
        first, second = manager.coordinators()
        first.source.gate.clear()

        assert manager.check_and_fetch(IDENTITY) is None
        assert manager.is_scraping(IDENTITY)
        assert manager.active_scraper_name(IDENTITY) == "Screenscraper"

        first.source.gate.set()
        manager.shutdown(wait=True)
        assert second.source.calls == 0
        assert manager.check_and_fetch(IDENTITY) == first.source.path_for(IDENTITY)

    def test_lookup_names_the_source_it_queued(self, tmp_path: Path, make_config) -> None:
        manager = make_manager(make_config, tmp_path)
        first, _ = manager.coordinators()
        first.source.gate.clear()

        result = manager.lookup(IDENTITY)
        assert result.path is None
        assert result.pending_source == "Screenscraper"

        first.source.gate.set()
        manager.shutdown(wait=True)
        assert manager.lookup(IDENTITY).path == first.source.path_for(IDENTITY)
        assert manager.lookup(IDENTITY).pending_source is None

    def test_shutdown_closes_sources_after_draining(self, tmp_path: Path, make_config) -> None:
        manager = make_manager(make_config, tmp_path)
        sources = [c.source for c in manager.coordinators()]
        manager.shutdown(wait=False)
        assert not any(s.closed for s in sources)
        manager.shutdown(wait=True)
        assert all(s.closed for s in sources)

    def test_known_failure_moves_to_next_source(self, tmp_path: Path, make_config) -> None:
        manager = make_manager(make_config, tmp_path, screenscraper=False)
        manager.check_and_fetch(IDENTITY)
        manager.get_coordinator("screenscraper").shutdown(wait=True)
        assert IDENTITY.key in manager.get_coordinator("screenscraper").negative_cache

        assert manager.check_and_fetch(IDENTITY) is None
        manager.shutdown(wait=True)
        arcade = manager.get_coordinator("arcadeitalia").source
        assert arcade.calls == 1
        assert manager.check_and_fetch(IDENTITY) == arcade.path_for(IDENTITY)

    def test_failure_files_per_source(self, tmp_path: Path, make_config) -> None:
        manager = make_manager(make_config, tmp_path, screenscraper=False, arcadeitalia=False)
        manager.check_and_fetch(IDENTITY)
        manager.get_coordinator("screenscraper").shutdown(wait=True)
        manager.check_and_fetch(IDENTITY)
        manager.shutdown(wait=True)

        assert (tmp_path / "cache" / "scraps_failed.json").exists()
        assert (tmp_path / "cache" / "arcadeitalia_failed.json").exists()

        assert manager.clear_failures() == ["screenscraper", "arcadeitalia"]
        assert not (tmp_path / "cache" / "scraps_failed.json").exists()
        assert not (tmp_path / "cache" / "arcadeitalia_failed.json").exists()

    def test_completions_are_forwarded(self, tmp_path: Path, make_config) -> None:
        manager = make_manager(make_config, tmp_path)
        seen: list[ScrapeCompleted] = []
        manager.subscribe(seen.append)
        manager.check_and_fetch(IDENTITY)
        manager.shutdown(wait=True)
        assert [e.source_id for e in seen] == ["screenscraper"]

    def test_coordinator_is_cached(self, tmp_path: Path, make_config) -> None:
        manager = make_manager(make_config, tmp_path)
        assert manager.get_coordinator("arcadeitalia") is manager.get_coordinator("arcadeitalia")

    def test_arcadeitalia_ceiling_is_two(self, tmp_path: Path, make_config) -> None:
        manager = make_manager(make_config, tmp_path)
        assert manager.get_coordinator("arcadeitalia").budget.ceiling == 2
        assert manager.get_coordinator("screenscraper").budget.ceiling == 1


class TestSourceRegistry:
    def test_builtin_sources(self, make_config) -> None:
        manager = ScraperManager(make_config())
        assert isinstance(manager.get_coordinator("screenscraper").source, ScreenScraperSource)
        assert isinstance(manager.get_coordinator("arcadeitalia").source, ArcadeItaliaSource)
        manager.shutdown()

    def test_unknown_source_lists_available(self, make_config) -> None:
        manager = ScraperManager(make_config())
        with pytest.raises(ConfigError) as exc_info:
            manager.get_coordinator("nonexistent")
        assert "nonexistent" in str(exc_info.value)
        assert "screenscraper" in str(exc_info.value)

    def test_from_config_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "marquee.toml"
        config_file.write_text("""
[scraping]
auto_scrape = true
priority = ["arcadeitalia"]
""")
        manager = ScraperManager.from_config_file(config_file)
        assert manager.enabled
        assert [c.source.source_id for c in manager.coordinators()] == ["arcadeitalia"]
        manager.shutdown()
