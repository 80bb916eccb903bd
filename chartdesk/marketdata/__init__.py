from .aggregation import AggregationPeriod, CalendarAggregator, aggregate
from .candle import Candle, CandleSeries
from .normalize import NormalizeMode, normalize
from .symbols import (
    AssetClass,
    ResolvedSymbol,
    SearchSuggestion,
    SymbolError,
    is_supported,
    resolve,
)
from .timeframe import TIMEFRAMES, TimeframeConfig, get_timeframe, is_market_hours

__all__ = [
    "AggregationPeriod",
    "AssetClass",
    "CalendarAggregator",
    "Candle",
    "CandleSeries",
    "NormalizeMode",
    "ResolvedSymbol",
    "SearchSuggestion",
    "SymbolError",
    "TIMEFRAMES",
    "TimeframeConfig",
    "aggregate",
    "get_timeframe",
    "is_market_hours",
    "is_supported",
    "normalize",
    "resolve",
]
