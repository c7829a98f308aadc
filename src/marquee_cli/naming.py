from __future__ import annotations

import logging
import re
import zlib
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_INVALID_CHARS = set('<>:"/\\|?*') | {chr(i) for i in range(32)}
_DELIMITERS = set(" ()[]-.,")
_REGION_TAGS = re.compile(r"\(.*?\)|\[.*?\]")
_WHITESPACE = re.compile(r"\s+")

FUZZY_MAX_DISTANCE = 3
FUZZY_MIN_NAME_LENGTH = 5


def sanitize(name: str) -> str:
    """Fold characters that upset filesystems and DMD tools into single underscores."""
    if not name:
        return name
    out = "".join("_" if (c in _INVALID_CHARS or c in _DELIMITERS) else c for c in name)
    while "__" in out:
        out = out.replace("__", "_")
    return out.strip("_")


def clean_name(name: str) -> str:
    """Drop (region) and [flag] tags and collapse whitespace."""
    cleaned = _REGION_TAGS.sub("", name)
    return _WHITESPACE.sub(" ", cleaned).strip()


def levenshtein(s: str, t: str) -> int:
    if not s:
        return len(t)
    if not t:
        return len(s)
    prev = list(range(len(t) + 1))
    for i, cs in enumerate(s, start=1):
        cur = [i] + [0] * len(t)
        for j, ct in enumerate(t, start=1):
            cost = 0 if cs == ct else 1
            cur[j] = min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost)
        prev = cur
    return prev[-1]


def fuzzy_find(directory: Path, target: str, suffix: str = "") -> Optional[Path]:
    """Closest file in directory by edit distance, restricted to a short name prefix.

    Only files whose name starts with the first 3 characters of the sanitized
    target (1 character for very short targets) are considered, so the scan
    never compares against the whole directory.
    """
    if not directory.is_dir():
        return None
    safe_target = sanitize(target)
    if not safe_target:
        return None
    prefix = (safe_target[:3] if len(safe_target) >= 3 else safe_target[:1]).lower()

    best: Optional[Path] = None
    best_dist = FUZZY_MAX_DISTANCE + 1
    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        logger.error(f"Fuzzy scan failed for {directory}: {e}")
        return None

    for entry in entries:
        if not entry.is_file() or not entry.name.lower().startswith(prefix):
            continue
        stem = entry.stem
        if suffix:
            if not stem.lower().endswith(suffix.lower()):
                continue
            stem = stem[: len(stem) - len(suffix)]
        dist = levenshtein(safe_target, sanitize(stem))
        if dist < best_dist:
            best_dist = dist
            best = entry

    if best is not None:
        logger.info(f"Fuzzy match '{target}' -> '{best.name}' (distance {best_dist})")
    return best


def system_from_rom_path(rom_path: Optional[str]) -> Optional[str]:
    """Real system folder for a ROM, i.e. the segment after the last 'roms' folder."""
    if not rom_path or ("/" not in rom_path and "\\" not in rom_path):
        return None
    parts = [p for p in rom_path.replace("\\", "/").split("/") if p]
    idx = None
    for i, part in enumerate(parts):
        if part.lower() == "roms":
            idx = i
    if idx is None or idx + 1 >= len(parts) - 1:
        return None
    return parts[idx + 1]


def system_candidates(
    system: str,
    aliases: dict[str, str],
    rom_path: Optional[str] = None,
) -> list[str]:
    candidates = [system]
    alias = aliases.get(system)
    if alias and alias not in candidates:
        candidates.append(alias)
    real = system_from_rom_path(rom_path)
    if real and real.lower() != system.lower():
        if real in candidates:
            candidates.remove(real)
        candidates.insert(0, real)
    return candidates


def name_candidates(rom_name: Optional[str], game_name: Optional[str]) -> list[str]:
    """Literal rom, sanitized rom, literal display name, sanitized display name."""
    out: list[str] = []
    for raw in (rom_name, game_name):
        if not raw:
            continue
        for cand in (raw, sanitize(raw)):
            if cand and cand not in out:
                out.append(cand)
    return out


def crc32_of(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    crc = 0
    try:
        with path.open("rb") as f:
            for chunk in iter(lambda: f.read(1024 * 1024), b""):
                crc = zlib.crc32(chunk, crc)
    except OSError as e:
        logger.warning(f"Could not checksum {path}: {e}")
        return None
    return f"{crc & 0xFFFFFFFF:08X}"
