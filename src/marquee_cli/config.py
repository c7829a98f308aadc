from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CONFIG_FILENAME = "marquee.toml"


class PathsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    media_root: Path = Path("media")
    roms_root: Path = Path("roms")
    custom_root: Optional[Path] = None
    custom_game_start_root: Optional[Path] = None
    dmd_root: Optional[Path] = None
    dmd_game_start_root: Optional[Path] = None
    system_marquee_root: Optional[Path] = None
    cache_root: Path = Path("media/_cache")
    scrape_cache_root: Path = Path("media/screenscraper")
    default_placeholder: Optional[Path] = None

    def resolve_against(self, base: Path) -> "PathsConfig":
        updates = {}
        for name, value in self:
            if isinstance(value, Path) and not value.is_absolute():
                updates[name] = base / value
        return self.model_copy(update=updates)


class DisplayConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    marquee_size: tuple[int, int] = (1920, 360)
    dmd_size: tuple[int, int] = (128, 32)
    accepted_formats: list[str] = Field(default_factory=lambda: ["mp4", "gif", "jpg", "png", "svg"])
    marquee_pattern: str = "{system_name}/{game_name}"
    default_pattern: str = "{system_name}/images/{game_name}-marquee"
    system_aliases: dict[str, str] = Field(default_factory=dict)

    @field_validator("accepted_formats")
    @classmethod
    def normalize_formats(cls, v: list[str]) -> list[str]:
        out = [f.strip().lstrip(".").lower() for f in v if f.strip()]
        if not out:
            raise ValueError("accepted_formats cannot be empty")
        return out

    @property
    def extensions(self) -> list[str]:
        return [f".{f}" for f in self.accepted_formats]


class ScrapingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    auto_scrape: bool = False
    priority: list[str] = Field(default_factory=lambda: ["screenscraper"])
    global_search: bool = False


class ScreenScraperConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    base_url: str = "https://api.screenscraper.fr/api2"
    user: Optional[str] = None
    password: Optional[str] = None
    user_env: str = "SCREENSCRAPER_USER"
    password_env: str = "SCREENSCRAPER_PASSWORD"
    dev_id: str = ""
    dev_password: str = ""
    softname: str = "marquee_cli"
    threads: int = Field(default=1, ge=1, le=32)
    media_type: str = "screenmarquee"
    dmd_media_type: str = "screenmarqueesmall"
    systems_file: Optional[Path] = None
    timeout_sec: float = Field(default=20.0, gt=0.0)

    def credentials(self) -> tuple[Optional[str], Optional[str]]:
        user = self.user or os.environ.get(self.user_env)
        password = self.password or os.environ.get(self.password_env)
        return user, password


class ArcadeItaliaConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    enabled: bool = True
    base_url: str = "http://adb.arcadeitalia.net"
    media_type: str = "marquee"
    timeout_sec: float = Field(default=20.0, gt=0.0)


class ComposeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    enabled: bool = False
    media: Literal["fanart", "image"] = "fanart"


class VideoConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    generation_enabled: bool = False
    output_folder: str = "generated_videos"
    timeout_sec: float = Field(default=30.0, gt=0.0)


KNOWN_SCRAPERS = ("screenscraper", "arcadeitalia")


class MarqueeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    paths: PathsConfig = PathsConfig()
    display: DisplayConfig = DisplayConfig()
    scraping: ScrapingConfig = ScrapingConfig()
    screenscraper: ScreenScraperConfig = ScreenScraperConfig()
    arcadeitalia: ArcadeItaliaConfig = ArcadeItaliaConfig()
    compose: ComposeConfig = ComposeConfig()
    video: VideoConfig = VideoConfig()

    @model_validator(mode="after")
    def check_scraper_priority(self) -> "MarqueeConfig":
        for name in self.scraping.priority:
            if name not in KNOWN_SCRAPERS:
                raise ValueError(
                    f"Unknown scraper '{name}' in scraping.priority. "
                    f"Available scrapers: {sorted(KNOWN_SCRAPERS)}"
                )
        return self


class ConfigError(Exception):
    def __init__(self, message: str, path: Optional[Path] = None, line: Optional[int] = None):
        self.path = path
        self.line = line
        if path:
            loc = f"{path}"
            if line:
                loc += f":{line}"
            message = f"{loc}: {message}"
        super().__init__(message)


def load_config(config_path: Path) -> MarqueeConfig:
    """Load and validate marquee.toml; relative paths resolve against its directory."""
    if not config_path.exists():
        raise ConfigError(
            f"Config file not found: {config_path}\n"
            f"Create a {CONFIG_FILENAME} next to your media folder",
            path=config_path,
        )

    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore

    try:
        text = config_path.read_text(encoding="utf-8")
        data = tomllib.loads(text)
    except Exception as e:
        line = getattr(e, "lineno", None)
        raise ConfigError(f"Failed to parse TOML: {e}", path=config_path, line=line) from e

    try:
        config = MarqueeConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}", path=config_path) from e

    base = config_path.resolve().parent
    return config.model_copy(update={"paths": config.paths.resolve_against(base)})


def find_config(start_dir: Optional[Path] = None) -> Path:
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()
    while current != current.parent:
        candidate = current / CONFIG_FILENAME
        if candidate.exists():
            return candidate
        current = current.parent

    return start_dir / CONFIG_FILENAME
