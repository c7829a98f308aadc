from __future__ import annotations

from pathlib import Path

import pytest

from marquee_cli.config import ConfigError, MarqueeConfig, find_config, load_config


class TestLoadConfig:
    def test_load_valid_config(self, tmp_path: Path) -> None:
        config_file = tmp_path / "marquee.toml"
        config_file.write_text("""
[paths]
media_root = "media"
roms_root = "/abs/roms"

[scraping]
auto_scrape = true
priority = ["arcadeitalia", "screenscraper"]

[screenscraper]
threads = 4
""")
        config = load_config(config_file)
        assert config.scraping.auto_scrape is True
        assert config.scraping.priority == ["arcadeitalia", "screenscraper"]
        assert config.screenscraper.threads == 4
        assert config.paths.media_root == tmp_path.resolve() / "media"
        assert config.paths.roms_root == Path("/abs/roms")

    def test_defaults(self) -> None:
        config = MarqueeConfig()
        assert config.display.marquee_size == (1920, 360)
        assert config.display.dmd_size == (128, 32)
        assert config.scraping.priority == ["screenscraper"]
        assert config.video.timeout_sec == 30.0
        assert config.video.output_folder == "generated_videos"

    def test_missing_config_produces_helpful_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "marquee.toml")
        assert "not found" in str(exc_info.value).lower()

    def test_invalid_toml_produces_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "marquee.toml"
        config_file.write_text("this is not valid [toml")

        with pytest.raises(ConfigError) as exc_info:
            load_config(config_file)
        assert "parse toml" in str(exc_info.value).lower()
        assert str(config_file) in str(exc_info.value)

    def test_unknown_scraper_lists_available(self, tmp_path: Path) -> None:
        config_file = tmp_path / "marquee.toml"
        config_file.write_text("""
[scraping]
priority = ["nonexistent"]
""")
        with pytest.raises(ConfigError) as exc_info:
            load_config(config_file)

        error_msg = str(exc_info.value)
        assert "nonexistent" in error_msg
        assert "screenscraper" in error_msg

    def test_unknown_keys_are_rejected(self, tmp_path: Path) -> None:
        config_file = tmp_path / "marquee.toml"
        config_file.write_text("""
[compose]
enabled = true
colour = "red"
""")
        with pytest.raises(ConfigError):
            load_config(config_file)


class TestDisplayConfig:
    def test_formats_are_normalized(self) -> None:
        config = MarqueeConfig.model_validate({"display": {"accepted_formats": [".PNG", " jpg "]}})
        assert config.display.accepted_formats == ["png", "jpg"]
        assert config.display.extensions == [".png", ".jpg"]

    def test_empty_formats_rejected(self) -> None:
        with pytest.raises(ValueError):
            MarqueeConfig.model_validate({"display": {"accepted_formats": []}})


class TestCredentials:
    def test_credentials_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCREENSCRAPER_USER", "alice")
        monkeypatch.setenv("SCREENSCRAPER_PASSWORD", "secret")
        assert MarqueeConfig().screenscraper.credentials() == ("alice", "secret")

    def test_explicit_credentials_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCREENSCRAPER_USER", "alice")
        config = MarqueeConfig.model_validate({"screenscraper": {"user": "bob", "password": "pw"}})
        assert config.screenscraper.credentials() == ("bob", "pw")


class TestFindConfig:
    def test_walks_up_to_parent(self, tmp_path: Path) -> None:
        (tmp_path / "marquee.toml").write_text("")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config(nested) == tmp_path.resolve() / "marquee.toml"

    def test_falls_back_to_start_dir(self, tmp_path: Path) -> None:
        assert find_config(tmp_path).name == "marquee.toml"
