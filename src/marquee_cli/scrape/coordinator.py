from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional

from ..io import atomic_write_json, read_json
from ..types import ScrapeCompleted, ScrapeIdentity
from .budget import ConcurrencyBudget
from .source import ArtSource, NotFoundError, ScrapeError

logger = logging.getLogger(__name__)

CompletionListener = Callable[[ScrapeCompleted], None]


class NegativeCache:
    """Keys known to have no remote art, mirrored to a JSON list on disk."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()
        self._keys: set[str] = {str(k) for k in read_json(path, [], list)}
        if self._keys:
            logger.info(f"Loaded {len(self._keys)} failed lookup(s) from {path}")

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def add(self, key: str) -> None:
        with self._lock:
            self._keys.add(key)
            snapshot = sorted(self._keys)
            # written under the lock so two failures cannot reorder on disk
            atomic_write_json(self.path, snapshot)

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()
            self.path.unlink(missing_ok=True)


class ScrapeCoordinator:
    """Turns "fetch art for this game" into at most one background job per key.

    Job states per key: idle (no record), pending (in ``_pending``), then
    succeeded (artifact on disk, found by ``find_cached``) or failed (key in
    the negative cache). Callers never wait on the network: a pending or new
    job answers None immediately.
    """

    def __init__(
        self,
        source: ArtSource,
        negative_cache: NegativeCache,
        budget: ConcurrencyBudget,
        executor: Optional[Executor] = None,
    ):
        self.source = source
        self.negative_cache = negative_cache
        self.budget = budget
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max(2, budget.ceiling * 2),
            thread_name_prefix=f"scrape-{source.source_id}",
        )
        self._pending: dict[str, ScrapeIdentity] = {}
        self._pending_lock = threading.Lock()
        self._listeners: list[CompletionListener] = []

    def subscribe(self, listener: CompletionListener) -> None:
        self._listeners.append(listener)

    def is_pending(self, identity: ScrapeIdentity) -> bool:
        with self._pending_lock:
            return identity.key in self._pending

    @property
    def pending_count(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def check_and_fetch(self, identity: ScrapeIdentity) -> Optional[Path]:
        """Cached artifact for identity, else None (possibly after starting a job)."""
        return self.lookup(identity)[0]

    def lookup(self, identity: ScrapeIdentity) -> tuple[Optional[Path], bool]:
        """Cached artifact, plus whether a job for identity is queued or running.

        The flag reflects this call: a job started here counts as pending even
        if it has already finished by the time the caller looks at it.
        """
        if not self.source.can_fetch(identity):
            return None, False
        key = identity.key
        if key in self.negative_cache:
            logger.debug(f"{self.source.source_id}: skipping known failure {key}")
            return None, False

        cached = self.source.find_cached(identity)
        if cached is not None:
            return cached, False

        with self._pending_lock:
            if key in self._pending:
                return None, True
            self._pending[key] = identity

        logger.info(f"{self.source.source_id}: queued lookup for {key}")
        try:
            self._executor.submit(self._run, identity)
        except RuntimeError:
            with self._pending_lock:
                self._pending.pop(key, None)
            raise
        return None, True

    def clear_failures(self) -> None:
        self.negative_cache.clear()
        logger.info(f"{self.source.source_id}: cleared failed lookups")

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def _run(self, identity: ScrapeIdentity) -> None:
        key = identity.key
        path: Optional[Path] = None
        definitive = True
        try:
            with self.budget.slot():
                path = self.source.fetch(identity, self.budget)
        except NotFoundError:
            path = None
        except ScrapeError as e:
            # not a definitive miss: the next request starts a fresh job
            definitive = False
            logger.warning(f"{self.source.source_id}: lookup for {key} failed: {e}")
        except Exception:
            definitive = False
            logger.exception(f"{self.source.source_id}: unexpected error while scraping {key}")

        if path is not None:
            logger.info(f"{self.source.source_id}: downloaded {path}")
        elif definitive:
            logger.warning(f"{self.source.source_id}: no media for {key}")
            try:
                self.negative_cache.add(key)
            except OSError as e:
                logger.error(f"Could not persist failed lookup {key}: {e}")
        self._finish(identity, path)

    def _finish(self, identity: ScrapeIdentity, path: Optional[Path]) -> None:
        # leave pending before anyone hears about it
        with self._pending_lock:
            self._pending.pop(identity.key, None)
        event = ScrapeCompleted(identity=identity, path=path, source_id=self.source.source_id)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Scrape completion listener failed")
