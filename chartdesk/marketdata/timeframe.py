"""Timeframe policy: how each chart resolution is queried upstream."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from chartdesk.marketdata.aggregation import AggregationPeriod


__all__ = [
    "QueryKind",
    "TIMEFRAMES",
    "TimeframeConfig",
    "get_timeframe",
    "is_intraday",
    "is_market_hours",
]


class QueryKind(str, Enum):
    INTRADAY = "intraday"
    EOD = "eod"


@dataclass(frozen=True)
class TimeframeConfig:
    """
    Attributes:
        name: Resolution name used by callers (e.g. "5m", "weekly")
        kind: Upstream query kind
        interval: Upstream intraday interval (intraday only)
        aggregate_to: Calendar period to roll daily bars into (weekly/monthly)
        lookback_days: Default calendar-day window when no range is given
        poll_interval: Suggested client refresh interval in seconds
    """

    name: str
    kind: QueryKind
    lookback_days: int
    poll_interval: int
    interval: Optional[str] = None
    aggregate_to: Optional[AggregationPeriod] = None

    @property
    def intraday(self) -> bool:
        return self.kind is QueryKind.INTRADAY


TIMEFRAMES: dict[str, TimeframeConfig] = {
    "1m": TimeframeConfig("1m", QueryKind.INTRADAY, lookback_days=2, poll_interval=5, interval="1m"),
    "5m": TimeframeConfig("5m", QueryKind.INTRADAY, lookback_days=2, poll_interval=5, interval="5m"),
    "15m": TimeframeConfig("15m", QueryKind.INTRADAY, lookback_days=2, poll_interval=5, interval="15m"),
    "1h": TimeframeConfig("1h", QueryKind.INTRADAY, lookback_days=14, poll_interval=10, interval="60m"),
    "4h": TimeframeConfig("4h", QueryKind.INTRADAY, lookback_days=14, poll_interval=30, interval="240m"),
    "daily": TimeframeConfig("daily", QueryKind.EOD, lookback_days=30, poll_interval=60),
    "weekly": TimeframeConfig("weekly", QueryKind.EOD, lookback_days=90, poll_interval=300, aggregate_to=AggregationPeriod.WEEKLY),
    "monthly": TimeframeConfig("monthly", QueryKind.EOD, lookback_days=365, poll_interval=600, aggregate_to=AggregationPeriod.MONTHLY),
}

_ALIASES = {
    "d": "daily",
    "1d": "daily",
    "day": "daily",
    "w": "weekly",
    "1w": "weekly",
    "week": "weekly",
    "mo": "monthly",
    "1mo": "monthly",
    "month": "monthly",
    "60m": "1h",
    "240m": "4h",
}


def get_timeframe(name: str) -> TimeframeConfig:
    """Look up a timeframe by name or common alias; raises ValueError if unknown."""
    key = str(name or "").strip().lower()
    key = _ALIASES.get(key, key)
    try:
        return TIMEFRAMES[key]
    except KeyError:
        raise ValueError(f"Unsupported timeframe: {name!r}") from None


def is_intraday(name: str) -> bool:
    return get_timeframe(name).intraday


_NEW_YORK = ZoneInfo("America/New_York")
_OPEN_MINUTE = 9 * 60 + 30
_CLOSE_MINUTE = 16 * 60


def is_market_hours(provider_symbol: str, now: Optional[datetime] = None) -> bool:
    """
    US equities trade 09:30-16:00 New York time, Monday to Friday.
    Crypto and forex symbols are treated as always open.
    """
    if not provider_symbol.upper().endswith(".US"):
        return True

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    et = now.astimezone(_NEW_YORK)

    minutes = et.hour * 60 + et.minute
    return et.weekday() < 5 and _OPEN_MINUTE <= minutes <= _CLOSE_MINUTE
