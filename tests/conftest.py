from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from marquee_cli.config import MarqueeConfig


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., MarqueeConfig]:
    """Build a config rooted in tmp_path; keyword args override whole sections."""

    def _make(**sections: dict[str, Any]) -> MarqueeConfig:
        data: dict[str, dict[str, Any]] = {
            "paths": {
                "media_root": str(tmp_path / "media"),
                "roms_root": str(tmp_path / "roms"),
                "cache_root": str(tmp_path / "cache"),
                "scrape_cache_root": str(tmp_path / "media" / "screenscraper"),
            }
        }
        for section, values in sections.items():
            data.setdefault(section, {}).update(values)
        return MarqueeConfig.model_validate(data)

    return _make

