from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..types import ScrapeIdentity

if TYPE_CHECKING:
    from .budget import ConcurrencyBudget


class ScrapeError(Exception):
    pass


class NotFoundError(ScrapeError):
    """The remote side has no media for this identity."""


class TransientNetworkError(ScrapeError):
    """Timeouts, connection resets and 5xx responses; worth retrying."""


class RateLimitedError(TransientNetworkError):
    """The remote side reports too many concurrent requests for this account."""


@dataclass(frozen=True)
class MediaDescriptor:
    url: str
    format: Optional[str] = None
    title: Optional[str] = None
    system_id: Optional[str] = None


class ArtSource(ABC):
    """A remote provider of marquee art."""

    @property
    @abstractmethod
    def source_id(self) -> str: ...

    @property
    def display_name(self) -> str:
        return self.source_id

    def close(self) -> None:
        """Release network clients; called once scraping shuts down."""

    @abstractmethod
    def can_fetch(self, identity: ScrapeIdentity) -> bool:
        """Whether a lookup is possible at all (credentials, mapping, media type)."""

    @abstractmethod
    def find_cached(self, identity: ScrapeIdentity) -> Optional[Path]:
        """Previously downloaded artifact for identity, if any."""

    @abstractmethod
    def fetch(self, identity: ScrapeIdentity, budget: "ConcurrencyBudget") -> Optional[Path]:
        """Look up and download art; None when the source has nothing for identity.

        Runs on a worker thread. Raises ScrapeError for failures that should
        not be remembered as a definitive miss.
        """
        raise NotImplementedError
