"""Candle aggregation for timeframe conversion."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional

from chartdesk.marketdata.candle import Candle
from chartdesk.time_utils import month_start, to_unix_seconds, week_start


__all__ = [
    "AggregationPeriod",
    "CalendarAggregator",
    "aggregate",
]


class AggregationPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


_BUCKET_START: dict[AggregationPeriod, Callable[[datetime], datetime]] = {
    AggregationPeriod.WEEKLY: week_start,
    AggregationPeriod.MONTHLY: month_start,
}


def _bucket_of(period: AggregationPeriod, ts: int) -> int:
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return to_unix_seconds(_BUCKET_START[period](dt))


@dataclass
class _AggState:
    """Internal aggregation state for a single calendar bucket."""
    count: int
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def start(cls, candle: Candle) -> "_AggState":
        return cls(
            count=1,
            time=candle.time,
            open=candle.open,
            high=candle.high,
            low=candle.low,
            close=candle.close,
            volume=candle.volume,
        )

    def add(self, candle: Candle) -> None:
        self.count += 1
        self.high = max(self.high, candle.high)
        self.low = min(self.low, candle.low)
        self.close = candle.close
        self.volume += candle.volume

    def to_candle(self) -> Candle:
        return Candle(
            time=self.time,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.volume,
        )


class CalendarAggregator:
    """
    Roll daily candles into weekly or monthly bars using calendar boundaries.

    - Weekly buckets start Monday 00:00 UTC, monthly buckets on the 1st.
    - Each bucket is derived from the candle's own date, so missing sessions
      never shift later buckets.
    - The emitted candle is stamped with the first candle's time in the bucket.

    Usage:
        aggregator = CalendarAggregator(period="weekly")
        for candle in daily:
            bar = aggregator.update(candle)  # Candle when a bucket closes, else None
        last = aggregator.flush()            # the still-open bucket, if any
    """

    def __init__(self, period: AggregationPeriod | str):
        if isinstance(period, AggregationPeriod):
            self.period = period
        else:
            try:
                self.period = AggregationPeriod(str(period).strip().lower())
            except ValueError:
                raise ValueError(f"Unsupported aggregation period: {period!r}") from None

        self._bucket: Optional[int] = None
        self._state: Optional[_AggState] = None

    def reset(self) -> None:
        """Discard any partially built bucket."""
        self._bucket = None
        self._state = None

    def update(self, candle: Candle) -> Optional[Candle]:
        """
        Feed the next daily candle (time-ascending).

        Returns:
            The previous bucket's aggregated candle when *candle* opens a new
            bucket, None while accumulating.
        """
        bucket = _bucket_of(self.period, candle.time)

        if self._state is None:
            self._bucket = bucket
            self._state = _AggState.start(candle)
            return None

        if bucket == self._bucket:
            self._state.add(candle)
            return None

        # Bucket rolled -> emit previous aggregated candle
        out = self._state.to_candle()
        self._bucket = bucket
        self._state = _AggState.start(candle)
        return out

    def flush(self) -> Optional[Candle]:
        """Emit the open bucket (if any) and reset."""
        if self._state is None:
            return None
        out = self._state.to_candle()
        self.reset()
        return out


def aggregate(daily: Iterable[Candle], period: AggregationPeriod | str) -> list[Candle]:
    """
    Aggregate time-ascending daily candles into weekly or monthly bars.

    Single pass; empty input gives an empty list.
    """
    aggregator = CalendarAggregator(period)
    out: list[Candle] = []
    for candle in daily:
        bar = aggregator.update(candle)
        if bar is not None:
            out.append(bar)
    last = aggregator.flush()
    if last is not None:
        out.append(last)
    return out
