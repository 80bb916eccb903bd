"""
Provider-agnostic interfaces.

This module defines the contracts the fetcher depends on. Concrete
providers (the EODHD HTTP client, the in-memory static provider) implement
them.
"""

from .base import ImpliedVolatilitySource, MarketDataProvider
from .static import StaticProvider, StaticVolatility

__all__ = [
    "ImpliedVolatilitySource",
    "MarketDataProvider",
    "StaticProvider",
    "StaticVolatility",
]
