from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class Candle:
    """
    Represents a single OHLCV candle.

    Attributes:
        time: Bucket start as integer Unix seconds (UTC)
        open: Opening price
        high: Highest price during period
        low: Lowest price during period
        close: Closing price
        volume: Trading volume (or 0 if unavailable)
    """

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def typical_price(self) -> float:
        """Calculate typical price (HLC/3)."""
        return (self.high + self.low + self.close) / 3

    @property
    def mid(self) -> float:
        """Calculate midpoint between high and low."""
        return (self.high + self.low) / 2

    @property
    def range(self) -> float:
        """Calculate candle range (high - low)."""
        return self.high - self.low

    def to_dict(self) -> dict[str, float | int]:
        return {
            "time": self.time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }

    def __repr__(self) -> str:
        return (
            f"Candle(time={self.time}, "
            f"O={self.open:.5f}, H={self.high:.5f}, "
            f"L={self.low:.5f}, C={self.close:.5f}, "
            f"V={self.volume:.0f})"
        )


@dataclass(frozen=True)
class CandleSeries:
    """
    Time-ascending candles for one (provider symbol, timeframe) pair.

    The candle tuple is immutable so a series can be handed out of the cache
    to any number of callers without copying.

    Example:
        series = CandleSeries("AAPL.US", "daily", tuple(candles))
        closes = series.closes()
        recent = series.closes(count=21)  # Last 21 closes only
    """

    symbol: str
    timeframe: str
    candles: tuple[Candle, ...]

    def get_candles(self, count: Optional[int] = None) -> list[Candle]:
        """
        Get candle objects.

        Args:
            count: Number of most recent candles to return (None = all)

        Returns:
            List of Candle objects, oldest first
        """
        if count is None:
            return list(self.candles)
        if count <= 0:
            return []
        return list(self.candles[-count:])

    def times(self, count: Optional[int] = None) -> np.ndarray:
        candles = self.get_candles(count)
        return np.array([c.time for c in candles], dtype=np.int64)

    def opens(self, count: Optional[int] = None) -> np.ndarray:
        candles = self.get_candles(count)
        return np.array([c.open for c in candles], dtype=np.float64)

    def highs(self, count: Optional[int] = None) -> np.ndarray:
        candles = self.get_candles(count)
        return np.array([c.high for c in candles], dtype=np.float64)

    def lows(self, count: Optional[int] = None) -> np.ndarray:
        candles = self.get_candles(count)
        return np.array([c.low for c in candles], dtype=np.float64)

    def closes(self, count: Optional[int] = None) -> np.ndarray:
        """Get array of closing prices."""
        candles = self.get_candles(count)
        return np.array([c.close for c in candles], dtype=np.float64)

    def volumes(self, count: Optional[int] = None) -> np.ndarray:
        candles = self.get_candles(count)
        return np.array([c.volume for c in candles], dtype=np.float64)

    @property
    def latest(self) -> Optional[Candle]:
        """Get the most recent candle, or None if empty."""
        return self.candles[-1] if self.candles else None

    @property
    def last_price(self) -> Optional[float]:
        """Close of the most recent candle, or None if empty."""
        return self.candles[-1].close if self.candles else None

    def to_dict(self) -> dict[str, object]:
        """Chart payload: ``{"symbol", "timeframe", "candles", "lastPrice"}``."""
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "candles": [c.to_dict() for c in self.candles],
            "lastPrice": self.last_price,
        }

    def __len__(self) -> int:
        return len(self.candles)

    def __repr__(self) -> str:
        return (
            f"CandleSeries(symbol={self.symbol}, timeframe={self.timeframe}, "
            f"candles={len(self)})"
        )
