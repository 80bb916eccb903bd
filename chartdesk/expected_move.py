"""
Expected move: a volatility-scaled price band around the latest close.

    EM = close * IV * sqrt(T)

where ``T`` is the horizon in years of 252 trading days. ``IV`` comes from
the first volatility estimator that yields a usable value: provider implied
volatility, then historical volatility of recent daily log returns, then a
fixed default.
"""

import abc
import asyncio
import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional, Union

import numpy as np

from chartdesk.cache import CacheCategory, CoalescingCache, make_key
from chartdesk.errors import FetchError, NoDataError
from chartdesk.fetcher import MarketDataFetcher
from chartdesk.marketdata.candle import Candle, CandleSeries
from chartdesk.marketdata.timeframe import get_timeframe
from chartdesk.providers.base import ImpliedVolatilitySource
from chartdesk.time_utils import today_utc


log = logging.getLogger(__name__)


__all__ = [
    "BatchResult",
    "DefaultVolatility",
    "ExpectedMoveCalculator",
    "ExpectedMoveResult",
    "ExpectedMoveTooSmall",
    "HistoricalVolatility",
    "ProvidedVolatility",
    "VolatilityEstimate",
    "VolatilityEstimator",
    "compute_expected_move",
    "historical_volatility",
    "horizon_name",
    "select_volatility",
    "trading_days_for",
]


TRADING_DAYS_PER_YEAR = 252
DEFAULT_VOLATILITY = 0.25
DEFAULT_CUSTOM_DAYS = 5
HISTORY_RETURNS = 20
# Bands narrower than this fraction of the close are not worth drawing.
NOISE_FLOOR = 0.005
# Minutes in a regular US equity session, for intraday horizons.
SESSION_MINUTES = 6.5 * 60

_HORIZON_DAYS: dict[str, float] = {
    "daily": 1,
    "weekly": 5,
    "monthly": 21,
}

_INTRADAY_MINUTES: dict[str, int] = {
    "1m": 1,
    "5m": 5,
    "15m": 15,
    "1h": 60,
    "4h": 240,
}


def horizon_name(timeframe: str) -> str:
    """
    Canonical horizon name: ``custom`` or a chart timeframe name.

    Accepts the same spellings as chart requests ("1d", "w", "60m", ...).
    """
    tf = str(timeframe or "").strip().lower()
    if tf == "custom":
        return tf
    return get_timeframe(tf).name


def trading_days_for(timeframe: str, custom_days: Optional[float] = None) -> float:
    """
    Horizon length in trading days.

    ``custom`` uses *custom_days*, falling back to 5 when it is missing or
    not positive. Intraday chart timeframes are a fraction of a 6.5 hour
    session.
    """
    tf = horizon_name(timeframe)
    if tf in _HORIZON_DAYS:
        return _HORIZON_DAYS[tf]
    if tf == "custom":
        try:
            days = float(custom_days) if custom_days is not None else 0.0
        except (TypeError, ValueError):
            days = 0.0
        return days if math.isfinite(days) and days > 0 else DEFAULT_CUSTOM_DAYS
    return _INTRADAY_MINUTES[tf] / SESSION_MINUTES


# ---------------------------------------------------------------------------
# Volatility estimators
# ---------------------------------------------------------------------------


def _usable(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def _closes_of(history: Union[CandleSeries, Iterable[Any], None]) -> np.ndarray:
    if history is None:
        return np.array([], dtype=np.float64)
    if isinstance(history, CandleSeries):
        return history.closes()
    values = [c.close if isinstance(c, Candle) else c for c in history]
    return np.asarray(values, dtype=np.float64)


def historical_volatility(
    history: Union[CandleSeries, Iterable[Any], None],
    max_returns: int = HISTORY_RETURNS,
) -> Optional[float]:
    """
    Annualised volatility from the last ``max_returns`` daily log returns.

    Pairs with a non-positive or non-finite close are skipped. Returns None
    when fewer than two usable returns remain.
    """
    closes = _closes_of(history)[-(max_returns + 1):]
    if closes.size < 3:
        return None

    prev, curr = closes[:-1], closes[1:]
    ok = np.isfinite(prev) & np.isfinite(curr) & (prev > 0) & (curr > 0)
    if np.count_nonzero(ok) < 2:
        return None

    returns = np.log(curr[ok] / prev[ok])
    variance = float(np.var(returns))
    return math.sqrt(variance * TRADING_DAYS_PER_YEAR)


@dataclass(frozen=True)
class VolatilityEstimate:
    value: float
    source: str


class VolatilityEstimator(abc.ABC):
    """One step in the volatility fallback chain."""

    name: str = "estimator"

    @abc.abstractmethod
    def estimate(self) -> Optional[float]:
        raise NotImplementedError


class ProvidedVolatility(VolatilityEstimator):
    """Provider-supplied implied volatility, used when present and > 0."""

    name = "implied"

    def __init__(self, iv: Optional[float]):
        self.iv = iv

    def estimate(self) -> Optional[float]:
        return _usable(self.iv)


class HistoricalVolatility(VolatilityEstimator):
    name = "historical"

    def __init__(self, history: Union[CandleSeries, Iterable[Any], None], max_returns: int = HISTORY_RETURNS):
        self.history = history
        self.max_returns = max_returns

    def estimate(self) -> Optional[float]:
        return _usable(historical_volatility(self.history, self.max_returns))


class DefaultVolatility(VolatilityEstimator):
    name = "default"

    def __init__(self, value: float = DEFAULT_VOLATILITY):
        self.value = value

    def estimate(self) -> Optional[float]:
        return self.value


def select_volatility(estimators: Sequence[VolatilityEstimator]) -> VolatilityEstimate:
    """First estimator with a usable value wins; the default closes the chain."""
    for estimator in estimators:
        value = _usable(estimator.estimate())
        if value is not None:
            return VolatilityEstimate(value=value, source=estimator.name)
    return VolatilityEstimate(value=DEFAULT_VOLATILITY, source=DefaultVolatility.name)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExpectedMoveResult:
    symbol: str
    close: float
    iv: float
    em: float
    upper_em: float
    lower_em: float
    upper_2sigma: float
    lower_2sigma: float
    timeframe: str
    trading_days: float
    iv_source: str = DefaultVolatility.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "close": self.close,
            "iv": self.iv,
            "em": self.em,
            "upperEM": self.upper_em,
            "lowerEM": self.lower_em,
            "upper2Sigma": self.upper_2sigma,
            "lower2Sigma": self.lower_2sigma,
            "timeframe": self.timeframe,
            "tradingDays": self.trading_days,
            "ivSource": self.iv_source,
        }


@dataclass(frozen=True)
class ExpectedMoveTooSmall:
    """The move is below the noise floor; callers should not draw a band."""

    symbol: str
    close: float
    em: float
    threshold: float
    timeframe: str
    trading_days: float

    @property
    def message(self) -> str:
        return f"Expected move too small to display (< {NOISE_FLOOR:.1%} of price)"

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "tooSmall": True,
            "message": self.message,
            "close": self.close,
            "em": self.em,
            "timeframe": self.timeframe,
        }


ExpectedMove = Union[ExpectedMoveResult, ExpectedMoveTooSmall]


def compute_expected_move(
    symbol: str,
    close: float,
    timeframe: str,
    iv: Optional[float] = None,
    history: Union[CandleSeries, Iterable[Any], None] = None,
    custom_days: Optional[float] = None,
) -> ExpectedMove:
    """
    Compute the ±1σ and ±2σ expected-move band.

    Args:
        symbol: Symbol carried through to the result
        close: Reference price; must be positive and finite
        timeframe: "daily", "weekly", "monthly", "custom" or an intraday chart timeframe
        iv: Provider implied volatility, if any
        history: Daily candles or closes for the historical fallback
        custom_days: Horizon for ``custom``

    Returns:
        :class:`ExpectedMoveResult`, or :class:`ExpectedMoveTooSmall` when
        ``EM < 0.5%`` of the close.
    """
    close_f = _usable(close)
    if close_f is None:
        raise ValueError(f"close must be a positive finite number, got {close!r}")

    name = horizon_name(timeframe)
    days = trading_days_for(name, custom_days)
    t = days / TRADING_DAYS_PER_YEAR

    vol = select_volatility([
        ProvidedVolatility(iv),
        HistoricalVolatility(history),
        DefaultVolatility(),
    ])
    log.debug("Volatility for %s: %.4f (%s)", symbol, vol.value, vol.source)

    em = close_f * vol.value * math.sqrt(t)
    threshold = close_f * NOISE_FLOOR

    if em < threshold:
        return ExpectedMoveTooSmall(
            symbol=symbol,
            close=close_f,
            em=em,
            threshold=threshold,
            timeframe=name,
            trading_days=days,
        )

    return ExpectedMoveResult(
        symbol=symbol,
        close=close_f,
        iv=vol.value,
        em=em,
        upper_em=close_f + em,
        lower_em=close_f - em,
        upper_2sigma=close_f + 2 * em,
        lower_2sigma=close_f - 2 * em,
        timeframe=name,
        trading_days=days,
        iv_source=vol.source,
    )


# ---------------------------------------------------------------------------
# Async calculator over the fetcher
# ---------------------------------------------------------------------------


@dataclass
class BatchResult:
    results: dict[str, ExpectedMoveResult] = field(default_factory=dict)
    too_small: dict[str, ExpectedMoveTooSmall] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)


class ExpectedMoveCalculator:
    """
    Expected move for user symbols, backed by the fetcher and cache.

    Daily history comes through the fetcher (``chart_data`` cache); the
    computed result is cached under ``analysis`` for expected-move requests
    and under ``levels`` for chart overlays.
    """

    # Calendar days of daily history; enough for 20 returns across holidays.
    HISTORY_LOOKBACK_DAYS = 45

    def __init__(
        self,
        fetcher: MarketDataFetcher,
        cache: CoalescingCache,
        iv_source: Optional[ImpliedVolatilitySource] = None,
        batch_width: int = 5,
    ):
        if batch_width <= 0:
            raise ValueError("batch_width must be > 0")
        self.fetcher = fetcher
        self.cache = cache
        self.iv_source = iv_source
        self.batch_width = batch_width

    async def compute(
        self,
        user_symbol: Any,
        timeframe: str = "weekly",
        custom_days: Optional[float] = None,
    ) -> ExpectedMove:
        """Expected move for one symbol, cached under ``analysis``."""
        return await self._compute(user_symbol, timeframe, custom_days, CacheCategory.ANALYSIS)

    async def levels(self, user_symbol: Any, chart_timeframe: str) -> ExpectedMove:
        """Band to overlay on a chart of *chart_timeframe*, cached under ``levels``."""
        return await self._compute(user_symbol, chart_timeframe, None, CacheCategory.LEVELS)

    async def _compute(
        self,
        user_symbol: Any,
        timeframe: str,
        custom_days: Optional[float],
        category: CacheCategory,
    ) -> ExpectedMove:
        name = horizon_name(timeframe)
        days = trading_days_for(name, custom_days)
        resolved = self.fetcher.resolve_or_raise(user_symbol)
        symbol = resolved.provider_symbol
        key = make_key(category, symbol, name, days)

        async def fetch() -> ExpectedMove:
            end = today_utc()
            history = await self.fetcher.fetch_candles(
                symbol,
                "daily",
                start=end - timedelta(days=self.HISTORY_LOOKBACK_DAYS),
                end=end,
            )
            close = _usable(history.last_price)
            if close is None:
                raise NoDataError(f"No positive close in recent history for {symbol}", symbol=symbol)
            iv = await self._implied_volatility(symbol, close)
            return compute_expected_move(symbol, close, name, iv, history, custom_days)

        return await self.cache.get_or_fetch(key, category, fetch)

    async def _implied_volatility(self, symbol: str, close: Optional[float]) -> Optional[float]:
        if self.iv_source is None or close is None:
            return None
        try:
            return await self.iv_source.get_implied_volatility(symbol, close)
        except Exception as exc:
            log.info("Implied volatility unavailable for %s, using history: %s", symbol, exc)
            return None

    async def compute_many(
        self,
        user_symbols: Sequence[Any],
        timeframe: str = "weekly",
        custom_days: Optional[float] = None,
    ) -> BatchResult:
        """
        Expected move for many symbols, at most ``batch_width`` in flight.

        Per-symbol failures are collected in :attr:`BatchResult.errors`; the
        batch itself only fails for an invalid timeframe.
        """
        trading_days_for(timeframe, custom_days)

        semaphore = asyncio.Semaphore(self.batch_width)
        batch = BatchResult()

        async def one(user_symbol: Any) -> None:
            name = str(user_symbol)
            async with semaphore:
                try:
                    outcome = await self.compute(user_symbol, timeframe, custom_days)
                except FetchError as exc:
                    log.warning("Expected move failed for %s: %s", name, exc)
                    batch.errors[name] = exc
                    return
                except Exception as exc:
                    log.exception("Unexpected error computing expected move for %s", name)
                    batch.errors[name] = exc
                    return
            if isinstance(outcome, ExpectedMoveTooSmall):
                batch.too_small[name] = outcome
            else:
                batch.results[name] = outcome

        await asyncio.gather(*(one(s) for s in user_symbols))
        return batch
