from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from marquee_cli.cli import app

runner = CliRunner()


def write_config(tmp_path: Path, extra: str = "") -> Path:
    config_file = tmp_path / "marquee.toml"
    config_file.write_text(f"""
[paths]
media_root = "media"
roms_root = "roms"
cache_root = "cache"
{extra}
""")
    return config_file


class TestCli:
    def test_missing_config_exits_2(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["-c", str(tmp_path / "nope.toml"), "status"])
        assert result.exit_code == 2
        assert "Config error" in result.output

    def test_resolve_prints_path(self, tmp_path: Path) -> None:
        config_file = write_config(tmp_path)
        marquee = tmp_path / "media" / "snes" / "smw.png"
        marquee.parent.mkdir(parents=True)
        marquee.write_bytes(b"x")

        result = runner.invoke(
            app,
            ["-c", str(config_file), "resolve", "game-selected", "snes", "Super Mario World", "--rom", "smw.sfc"],
        )
        assert result.exit_code == 0, result.output
        assert "smw.png" in result.output.replace("\n", "")

    def test_placeholders_created(self, tmp_path: Path) -> None:
        config_file = write_config(tmp_path)
        result = runner.invoke(app, ["-c", str(config_file), "placeholders"])
        assert result.exit_code == 0, result.output
        for name in ("default.png", "default-dmd.png", "scraping.png", "scraping-dmd.png"):
            assert (tmp_path / "media" / name).exists()

    def test_offsets_adjusts_and_prints(self, tmp_path: Path) -> None:
        config_file = write_config(tmp_path)
        result = runner.invoke(app, ["-c", str(config_file), "offsets", "snes", "smw", "--dx", "5", "--fanart"])
        assert result.exit_code == 0, result.output
        assert "fanartOffsetX" in result.output
        assert (tmp_path / "cache" / "offsets.json").exists()

    def test_status_and_clear_failures(self, tmp_path: Path) -> None:
        config_file = write_config(tmp_path)
        (tmp_path / "cache").mkdir()
        (tmp_path / "cache" / "scraps_failed.json").write_text('["snes_smw_mpv"]')

        status = runner.invoke(app, ["-c", str(config_file), "status"])
        assert status.exit_code == 0, status.output
        assert "ScreenScraper" in status.output

        cleared = runner.invoke(app, ["-c", str(config_file), "clear-failures"])
        assert cleared.exit_code == 0, cleared.output
        assert not (tmp_path / "cache" / "scraps_failed.json").exists()

    def test_clear_unknown_scraper(self, tmp_path: Path) -> None:
        config_file = write_config(tmp_path)
        result = runner.invoke(app, ["-c", str(config_file), "clear-failures", "--scraper", "nope"])
        assert result.exit_code == 2
