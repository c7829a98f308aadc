from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from ..render.ffmpeg import GenerationError
from ..types import MediaKind
from .generator import GenerationJob, Generator, PillowCompositor
from .params import (
    AnyParams,
    VideoParams,
    read_params_sidecar,
    sidecar_path,
    write_params_sidecar,
)

logger = logging.getLogger(__name__)

PREVIEW_SLOTS = 3
TMP_SUFFIX = ".tmp"
DMD_SUBFOLDER = "dmd"


def wait_for_file(path: Path, attempts: int = 10, delay: float = 0.2) -> bool:
    """Poll until path exists, is non-empty and can be opened for reading."""
    for i in range(attempts):
        try:
            if path.exists() and path.stat().st_size > 0:
                with path.open("rb"):
                    return True
        except OSError:
            pass
        if i < attempts - 1:
            time.sleep(delay)
    return False


def sweep_orphans(directory: Path) -> list[Path]:
    """Remove temp files left behind by interrupted generations.

    Only subfolders are swept; files directly in directory belong to the JSON
    state stores, which may be mid-write in another process.
    """
    removed: list[Path] = []
    if not directory.is_dir():
        return removed
    for sub in directory.iterdir():
        if not sub.is_dir():
            continue
        for tmp in sub.rglob(f"*{TMP_SUFFIX}"):
            try:
                tmp.unlink()
                removed.append(tmp)
            except OSError as e:
                logger.warning(f"Could not remove orphaned temp file {tmp}: {e}")
    if removed:
        logger.info(f"Removed {len(removed)} orphaned temp file(s) under {directory}")
    return removed


@dataclass
class _PathLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


def _is_stale(artifact: Path, sources: tuple[Path, ...]) -> bool:
    mtime = artifact.stat().st_mtime
    return any(src.exists() and src.stat().st_mtime > mtime for src in sources)


class CompositionCache:
    """Memoizes generated composites keyed by output path plus generation params.

    The params of a non-default artifact live in a JSON sidecar next to it;
    default params are never written, so "artifact without sidecar" means
    "generated with defaults".
    """

    def __init__(
        self,
        cache_root: Path,
        generator: Optional[Generator] = None,
        size: tuple[int, int] = (1920, 360),
    ):
        self.cache_root = cache_root
        self.generator = generator or PillowCompositor()
        self.size = size
        self._locks: dict[Path, _PathLock] = {}
        self._locks_guard = threading.Lock()
        self.generation_count = 0
        sweep_orphans(cache_root)

    def target_for(self, subfolder: str, logo: Path, kind: MediaKind = MediaKind.MARQUEE) -> Path:
        root = self.cache_root / DMD_SUBFOLDER if kind == MediaKind.DMD else self.cache_root
        return root / subfolder / f"{logo.stem}_composed.png"

    def is_hit(self, output_path: Path, params: AnyParams) -> bool:
        if not output_path.exists():
            return False
        stored = read_params_sidecar(output_path, type(params))
        if stored is None:
            return params.is_default and not sidecar_path(output_path).exists()
        return stored == params

    def compose(
        self,
        source_a: Path,
        source_b: Path,
        params: AnyParams,
        output_path: Path,
        is_preview: bool = False,
        generator: Optional[Generator] = None,
        size: Optional[tuple[int, int]] = None,
        require_fresh: bool = False,
    ) -> Path:
        """Return an artifact combining source_a (background) and source_b (logo).

        Raises:
            GenerationError: generation failed and no prior artifact exists
        """
        with self._lock_for(output_path):
            if not is_preview and self.is_hit(output_path, params):
                if not (require_fresh and _is_stale(output_path, (source_a, source_b))):
                    logger.debug(f"Composition cache hit: {output_path}")
                    return output_path

            target = self.preview_slot(output_path) if is_preview else output_path
            job_kwargs = {"video": params} if isinstance(params, VideoParams) else {"params": params}
            gen = generator or self.generator

            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f"{target.stem}.", suffix=TMP_SUFFIX)
            os.close(fd)
            tmp_path = Path(tmp_name)
            try:
                job = GenerationJob(
                    background=source_a,
                    foreground=source_b,
                    out_path=tmp_path,
                    size=size or self.size,
                    **job_kwargs,
                )
                self.generation_count += 1
                gen.generate(job)
                if not wait_for_file(tmp_path):
                    raise GenerationError(f"{gen.generator_id} produced no readable output for {target}")
            except GenerationError as e:
                tmp_path.unlink(missing_ok=True)
                if output_path.exists():
                    logger.error(f"Generation failed ({e}); keeping previous artifact {output_path}")
                    return output_path
                logger.error(f"Generation failed for {target}: {e}")
                raise

            if not is_preview:
                sidecar_path(target).unlink(missing_ok=True)
            os.replace(tmp_path, target)
            if not is_preview and not params.is_default:
                write_params_sidecar(target, params)
            logger.info(f"Generated {target}")
            return target

    def preview_slot(self, output_path: Path) -> Path:
        """First preview slot that is free or can be reclaimed, else an overflow name."""
        stem = output_path.stem
        for i in range(PREVIEW_SLOTS):
            slot = output_path.with_name(f"{stem}_preview_{i}.png")
            if not slot.exists():
                return slot
            try:
                slot.unlink()
                return slot
            except OSError:
                continue
        tick = int(time.time() * 1000) % 100
        return output_path.with_name(f"{stem}_preview_overflow_{tick}.png")

    @contextmanager
    def _lock_for(self, path: Path) -> Iterator[None]:
        """Per-output lock; the entry is dropped once nobody holds or waits on it."""
        with self._locks_guard:
            entry = self._locks.get(path)
            if entry is None:
                entry = self._locks[path] = _PathLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[path]
