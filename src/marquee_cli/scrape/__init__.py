from __future__ import annotations

from .budget import ConcurrencyBudget
from .coordinator import NegativeCache, ScrapeCoordinator
from .manager import ScrapeLookup, ScraperManager
from .source import (
    ArtSource,
    MediaDescriptor,
    NotFoundError,
    RateLimitedError,
    ScrapeError,
    TransientNetworkError,
)

__all__ = [
    "ConcurrencyBudget",
    "NegativeCache",
    "ScrapeCoordinator",
    "ScrapeLookup",
    "ScraperManager",
    "ArtSource",
    "MediaDescriptor",
    "NotFoundError",
    "RateLimitedError",
    "ScrapeError",
    "TransientNetworkError",
]
