"""
Market data fetching: symbol resolution, upstream calls, normalisation,
aggregation and caching for chart requests.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Optional

from chartdesk.cache import CacheCategory, CoalescingCache, make_key
from chartdesk.errors import (
    FetchError,
    InvalidResponseError,
    NoDataError,
    UnsupportedSymbolError,
    UpstreamUnavailableError,
)
from chartdesk.marketdata.aggregation import aggregate
from chartdesk.marketdata.candle import CandleSeries
from chartdesk.marketdata.normalize import NormalizeMode, normalize
from chartdesk.marketdata.symbols import (
    ResolvedSymbol,
    SearchSuggestion,
    resolve,
    suggestion_from_search_hit,
)
from chartdesk.marketdata.timeframe import TimeframeConfig, get_timeframe
from chartdesk.providers.base import MarketDataProvider
from chartdesk.time_utils import DateRange, lookback_range, today_utc


log = logging.getLogger(__name__)


__all__ = [
    "MarketDataFetcher",
    "Quote",
    "resolve_range",
]


# Quote fields in the order they are tried for the last price.
_QUOTE_PRICE_FIELDS = ("close", "previousClose", "price", "last")

SEARCH_LIMIT = 15


@dataclass(frozen=True)
class Quote:
    symbol: str
    price: float
    previous_close: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    timestamp: Optional[int] = None


def resolve_range(
    config: TimeframeConfig,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> DateRange:
    """Explicit bounds win; missing ones fall back to the timeframe's default lookback."""
    if start is None and end is None:
        return lookback_range(config.lookback_days)
    if end is None:
        end = max(start, today_utc())  # type: ignore[arg-type]
    if start is None:
        start = end - timedelta(days=config.lookback_days)
    return DateRange(start=start, end=end)


def _positive_float(value: Any) -> Optional[float]:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(out) or out <= 0:
        return None
    return out


def _optional_float(value: Any) -> Optional[float]:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


class MarketDataFetcher:
    """
    Produce candle series and quotes for user-supplied symbols.

    Every upstream call goes through the shared :class:`CoalescingCache`, so
    concurrent identical requests cost one upstream call. Failures are
    raised as :class:`FetchError` subclasses and never retried here.
    """

    def __init__(self, provider: MarketDataProvider, cache: CoalescingCache):
        self.provider = provider
        self.cache = cache

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @staticmethod
    def resolve_or_raise(user_symbol: Any) -> ResolvedSymbol:
        resolved = resolve(user_symbol)
        if not isinstance(resolved, ResolvedSymbol):
            raise UnsupportedSymbolError(resolved.reason, symbol=str(user_symbol))
        return resolved

    # ------------------------------------------------------------------
    # Candles
    # ------------------------------------------------------------------

    async def fetch_candles(
        self,
        user_symbol: Any,
        timeframe: str = "daily",
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> CandleSeries:
        """
        Fetch the candle series for a symbol and timeframe.

        Args:
            user_symbol: Anything the resolver understands ("AAPL", "gold", "BTC-USD.CC")
            timeframe: "1m", "5m", "15m", "1h", "4h", "daily", "weekly" or "monthly"
            start: Optional first date (inclusive)
            end: Optional last date (inclusive)

        Returns:
            A non-empty, time-ascending :class:`CandleSeries`.

        Raises:
            ValueError: unknown timeframe or inverted range
            UnsupportedSymbolError: symbol could not be resolved (upstream not contacted)
            NoDataError: upstream empty, or every record invalid
            UpstreamUnavailableError: transport failure, timeout or non-2xx
            InvalidResponseError: upstream body of the wrong shape
        """
        config = get_timeframe(timeframe)
        resolved = self.resolve_or_raise(user_symbol)
        date_range = resolve_range(config, start, end)

        symbol = resolved.provider_symbol
        key = make_key(CacheCategory.CHART_DATA, symbol, config.name, date_range.key)

        async def fetch() -> CandleSeries:
            return await self._load_candles(symbol, config, date_range)

        return await self.cache.get_or_fetch(key, CacheCategory.CHART_DATA, fetch)

    async def _load_candles(
        self,
        symbol: str,
        config: TimeframeConfig,
        date_range: DateRange,
    ) -> CandleSeries:
        log.debug("Fetching %s %s %s from %s", symbol, config.name, date_range.key, self.provider.name)

        try:
            if config.intraday:
                lo, hi = date_range.unix_bounds()
                raw = await self.provider.get_intraday_candles(symbol, config.interval or config.name, lo, hi)
                candles = normalize(raw, NormalizeMode.INTRADAY)
            else:
                raw = await self.provider.get_eod_candles(symbol, date_range.start, date_range.end)
                candles = normalize(raw, NormalizeMode.DAILY)
                if config.aggregate_to is not None:
                    candles = aggregate(candles, config.aggregate_to)
        except asyncio.TimeoutError as exc:
            raise UpstreamUnavailableError(f"Timeout fetching {symbol}", symbol=symbol) from exc
        except FetchError as exc:
            if exc.symbol is None:
                exc.symbol = symbol
            raise

        if not raw:
            raise NoDataError(f"Empty upstream result for {symbol} {config.name}", symbol=symbol)
        if not candles:
            log.warning("All %d upstream records for %s %s were invalid", len(raw), symbol, config.name)
            raise NoDataError(f"No valid records for {symbol} {config.name}", symbol=symbol)

        return CandleSeries(symbol=symbol, timeframe=config.name, candles=tuple(candles))

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    async def fetch_quote(self, user_symbol: Any) -> Quote:
        """Latest price for a symbol, cached under the ``price`` category."""
        resolved = self.resolve_or_raise(user_symbol)
        symbol = resolved.provider_symbol
        key = make_key(CacheCategory.PRICE, symbol)

        async def fetch() -> Quote:
            try:
                raw = await self.provider.get_quote(symbol)
            except asyncio.TimeoutError as exc:
                raise UpstreamUnavailableError(f"Timeout fetching quote for {symbol}", symbol=symbol) from exc
            return self._parse_quote(symbol, raw)

        return await self.cache.get_or_fetch(key, CacheCategory.PRICE, fetch)

    @staticmethod
    def _parse_quote(symbol: str, raw: Any) -> Quote:
        if not raw:
            raise NoDataError(f"Empty quote for {symbol}", symbol=symbol)
        if not isinstance(raw, dict):
            raise InvalidResponseError(f"Quote for {symbol} is not an object", symbol=symbol)

        price = None
        for field in _QUOTE_PRICE_FIELDS:
            price = _positive_float(raw.get(field))
            if price is not None:
                break
        if price is None:
            raise InvalidResponseError(f"Quote for {symbol} has no usable price", symbol=symbol)

        ts = _optional_float(raw.get("timestamp"))
        return Quote(
            symbol=symbol,
            price=price,
            previous_close=_positive_float(raw.get("previousClose")),
            change=_optional_float(raw.get("change")),
            change_percent=_optional_float(raw.get("change_p")),
            timestamp=int(ts) if ts is not None else None,
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, query: str) -> list[SearchSuggestion]:
        """Free-text symbol search mapped onto provider symbols."""
        if not isinstance(query, str) or not query.strip():
            raise ValueError("query must be a non-empty string")

        cleaned = query.strip()
        key = make_key("search", cleaned.lower())

        async def fetch() -> tuple[SearchSuggestion, ...]:
            hits = await self.provider.search(cleaned)
            suggestions = (suggestion_from_search_hit(h) for h in hits if isinstance(h, dict))
            return tuple(s for s in suggestions if s is not None)[:SEARCH_LIMIT]

        results = await self.cache.get_or_fetch(key, None, fetch)
        return list(results)
