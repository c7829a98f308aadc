from __future__ import annotations

from .finder import MarqueeFinder
from .resolver import AssetResolver
from .strategies import DEFAULT_CHAIN, ResolveContext, Strategy, identity_for

__all__ = [
    "MarqueeFinder",
    "AssetResolver",
    "DEFAULT_CHAIN",
    "ResolveContext",
    "Strategy",
    "identity_for",
]
