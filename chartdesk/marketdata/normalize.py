"""Conversion of raw provider records into validated candles.

Each upstream endpoint kind has its own adapter that pulls the timestamp and
OHLCV fields out of that endpoint's record shape. Adapted rows then pass a
shared validation step; a row that fails is dropped, never repaired.
"""

import logging
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from chartdesk.marketdata.candle import Candle
from chartdesk.time_utils import day_start, parse_timestamp, to_unix_seconds


log = logging.getLogger(__name__)


__all__ = [
    "NormalizeMode",
    "normalize",
]


class NormalizeMode(str, Enum):
    INTRADAY = "intraday"
    DAILY = "daily"


# Field name variants seen across the provider's endpoints, in priority order.
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "open": ("open", "o", "Open"),
    "high": ("high", "h", "High"),
    "low": ("low", "l", "Low"),
    "close": ("close", "c", "Close"),
    "volume": ("volume", "v", "Volume"),
}


@dataclass(frozen=True)
class _Adapted:
    """A raw record after field extraction, before validation."""

    timestamp: Any
    open: Any
    high: Any
    low: Any
    close: Any
    volume: Any


class _Drop(Exception):
    """Internal signal that a record fails validation."""


def _pick(record: Mapping[str, Any], field: str) -> Any:
    for name in _FIELD_ALIASES[field]:
        value = record.get(name)
        if value is not None:
            return value
    return None


def _pick_ohlcv(record: Mapping[str, Any], timestamp: Any) -> _Adapted:
    return _Adapted(
        timestamp=timestamp,
        open=_pick(record, "open"),
        high=_pick(record, "high"),
        low=_pick(record, "low"),
        close=_pick(record, "close"),
        volume=_pick(record, "volume"),
    )


def _adapt_eod(record: Mapping[str, Any]) -> _Adapted:
    """End-of-day rows: ``{"date": "2024-01-02", "open": ..., "adjusted_close": ...}``."""
    ts = record.get("date")
    if ts is None:
        ts = record.get("datetime", record.get("timestamp", record.get("t")))
    return _pick_ohlcv(record, ts)


def _adapt_intraday(record: Mapping[str, Any]) -> _Adapted:
    """Intraday rows: ``{"timestamp": 1704205800, "datetime": "2024-01-02 14:30:00", ...}``."""
    ts = record.get("timestamp")
    if ts is None:
        ts = record.get("t")
    if ts is None:
        ts = record.get("datetime", record.get("date"))
    return _pick_ohlcv(record, ts)


_ADAPTERS: dict[NormalizeMode, Callable[[Mapping[str, Any]], _Adapted]] = {
    NormalizeMode.DAILY: _adapt_eod,
    NormalizeMode.INTRADAY: _adapt_intraday,
}


def _number(value: Any, field: str) -> float:
    if value is None or isinstance(value, bool):
        raise _Drop(f"missing {field}")
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise _Drop(f"non-numeric {field}: {value!r}") from None
    if not math.isfinite(out):
        raise _Drop(f"non-finite {field}")
    if out < 0:
        raise _Drop(f"negative {field}")
    return out


def _validate(adapted: _Adapted, mode: NormalizeMode) -> Candle:
    if adapted.timestamp is None:
        raise _Drop("missing timestamp")
    try:
        dt = parse_timestamp(adapted.timestamp)
    except (TypeError, ValueError, OverflowError, OSError) as exc:
        raise _Drop(f"bad timestamp {adapted.timestamp!r}: {exc}") from None

    if mode is NormalizeMode.DAILY:
        dt = day_start(dt)

    o = _number(adapted.open, "open")
    h = _number(adapted.high, "high")
    lo = _number(adapted.low, "low")
    c = _number(adapted.close, "close")
    v = 0.0 if adapted.volume is None else _number(adapted.volume, "volume")

    if h < lo:
        raise _Drop(f"high {h} < low {lo}")

    return Candle(time=to_unix_seconds(dt), open=o, high=h, low=lo, close=c, volume=v)


def normalize(
    raw: Optional[Iterable[Any]],
    mode: NormalizeMode | str = NormalizeMode.DAILY,
) -> list[Candle]:
    """
    Convert raw provider records into a time-ascending list of candles.

    Records that are not mappings, miss a required field, carry non-finite or
    negative numbers, or have ``high < low`` are dropped. Survivors are
    stable-sorted by time; for duplicate times the first record in input
    order is kept.

    Args:
        raw: Records as decoded from the provider's JSON.
        mode: ``"daily"`` truncates timestamps to UTC midnight,
            ``"intraday"`` keeps them as-is.

    Returns:
        Validated candles with strictly increasing ``time``.
    """
    mode = NormalizeMode(mode)
    adapter = _ADAPTERS[mode]

    candles: list[Candle] = []
    dropped = 0

    for index, record in enumerate(raw or ()):
        if not isinstance(record, Mapping):
            dropped += 1
            continue
        try:
            candles.append(_validate(adapter(record), mode))
        except _Drop as reason:
            dropped += 1
            log.debug("Dropping %s record #%d: %s", mode.value, index, reason)

    candles.sort(key=lambda c: c.time)

    out: list[Candle] = []
    for candle in candles:
        if out and out[-1].time == candle.time:
            dropped += 1
            continue
        out.append(candle)

    if dropped:
        log.debug("Normalized %d %s candles, dropped %d", len(out), mode.value, dropped)

    return out
