from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from .source import RateLimitedError, TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 2
BACKOFF_STEP_SEC = 3.0


class ConcurrencyBudget:
    """Ceiling on simultaneous remote jobs that only ever shrinks.

    When the server says the account runs too many threads the ceiling drops
    to one below the current activity (never below 1) and stays there for the
    rest of the process.
    """

    def __init__(
        self,
        ceiling: int,
        name: str = "remote",
        sleep: Callable[[float], None] = time.sleep,
    ):
        if ceiling < 1:
            raise ValueError("ceiling must be >= 1")
        self.name = name
        self._ceiling = ceiling
        self._active = 0
        self._peak = 0
        self._cond = threading.Condition()
        self._sleep = sleep

    @property
    def ceiling(self) -> int:
        with self._cond:
            return self._ceiling

    @property
    def active(self) -> int:
        with self._cond:
            return self._active

    @property
    def peak(self) -> int:
        """Highest simultaneous activity seen so far."""
        with self._cond:
            return self._peak

    def acquire(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            ok = self._cond.wait_for(lambda: self._active < self._ceiling, timeout=timeout)
            if not ok:
                return False
            self._active += 1
            self._peak = max(self._peak, self._active)
            return True

    def release(self) -> None:
        with self._cond:
            if self._active > 0:
                self._active -= 1
            self._cond.notify_all()

    @contextmanager
    def slot(self) -> Iterator[None]:
        self.acquire()
        try:
            yield
        finally:
            self.release()

    def downgrade(self) -> int:
        with self._cond:
            new = max(1, self._active - 1)
            if new < self._ceiling:
                logger.warning(f"{self.name}: concurrency limit reached, ceiling {self._ceiling} -> {new}")
                self._ceiling = new
            return self._ceiling

    def call_with_retry(self, call: Callable[[], T], retries: int = MAX_RETRIES) -> T:
        """Run call, retrying transient failures with linear backoff.

        Rate-limit failures also shrink the ceiling before the retry.
        """
        attempt = 0
        while True:
            try:
                return call()
            except TransientNetworkError as e:
                if isinstance(e, RateLimitedError):
                    self.downgrade()
                if attempt >= retries:
                    raise
                attempt += 1
                delay = BACKOFF_STEP_SEC * attempt
                logger.info(f"{self.name}: {e}; retry {attempt}/{retries} in {delay:g}s")
                self._sleep(delay)
