# chartdesk/__init__.py
"""
Chartdesk - market data normalisation and caching for charting dashboards.

Resolves user-typed symbols to provider symbols, fetches and validates
candles, aggregates them across timeframes, coalesces concurrent identical
requests behind a TTL cache, and derives expected-move price bands.
"""

from .cache import CacheCategory, CoalescingCache
from .config import Settings
from .errors import (
    ChartDeskError,
    FetchError,
    FetchErrorKind,
    InvalidResponseError,
    NoDataError,
    UnsupportedSymbolError,
    UpstreamUnavailableError,
)
from .expected_move import (
    ExpectedMoveResult,
    ExpectedMoveTooSmall,
    compute_expected_move,
)
from .fetcher import MarketDataFetcher, Quote
from .marketdata import Candle, CandleSeries, ResolvedSymbol, SymbolError, resolve
from .service import MarketDataService, configure_logging

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "CacheCategory",
    "Candle",
    "CandleSeries",
    "ChartDeskError",
    "CoalescingCache",
    "ExpectedMoveResult",
    "ExpectedMoveTooSmall",
    "FetchError",
    "FetchErrorKind",
    "InvalidResponseError",
    "MarketDataFetcher",
    "MarketDataService",
    "NoDataError",
    "Quote",
    "ResolvedSymbol",
    "Settings",
    "SymbolError",
    "UnsupportedSymbolError",
    "UpstreamUnavailableError",
    "compute_expected_move",
    "configure_logging",
    "resolve",
]
