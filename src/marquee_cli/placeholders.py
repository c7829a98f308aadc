from __future__ import annotations

from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from .types import MediaKind


def draw_text_panel(out: Path, size: tuple[int, int], text: str) -> Path:
    """Black panel with white text centered on it."""
    img = Image.new("RGBA", size, (0, 0, 0, 255))
    d = ImageDraw.Draw(img)
    font = ImageFont.load_default()
    left, top, right, bottom = d.textbbox((0, 0), text, font=font)
    x = (size[0] - (right - left)) // 2 - left
    y = (size[1] - (bottom - top)) // 2 - top
    d.text((x, y), text, fill=(255, 255, 255, 255), font=font)
    out.parent.mkdir(parents=True, exist_ok=True)
    img.save(out, format="PNG")
    return out


def default_placeholder(out: Path, size: tuple[int, int], force: bool = False) -> Path:
    if out.exists() and not force:
        return out
    return draw_text_panel(out, size, "No marquee")


def scraping_placeholder(
    media_root: Path,
    kind: MediaKind,
    size: tuple[int, int],
    source_name: str = "ScreenScraper",
    force: bool = False,
) -> Path:
    name = "scraping-dmd.png" if kind == MediaKind.DMD else "scraping.png"
    out = media_root / name
    if out.exists() and not force:
        return out
    # DMD panels are too small for the source name
    text = "Scraping..." if kind == MediaKind.DMD else f"{source_name}: Scraping..."
    return draw_text_panel(out, size, text)
