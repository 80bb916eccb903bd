"""Centralised timestamp handling.

All timestamp parsing and conversion goes through this module.
Internal representation: UTC-aware ``datetime``.
Integer Unix seconds are used on candles; epoch milliseconds and ISO strings
only appear at the provider boundary.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone


__all__ = [
    "DateRange",
    "MS_THRESHOLD",
    "day_start",
    "lookback_range",
    "month_start",
    "parse_timestamp",
    "to_unix_seconds",
    "today_utc",
    "week_start",
]


# Numeric timestamps at or above this are epoch milliseconds (year 1973 in ms,
# year 5138 in seconds); the intraday feed emits seconds.
MS_THRESHOLD = 10**11


# ---------------------------------------------------------------------------
# Core conversions
# ---------------------------------------------------------------------------


def parse_timestamp(ts: str | int | float) -> datetime:
    """Parse a provider timestamp to a UTC-aware datetime.

    Accepted inputs:
      * ISO 8601 string (``T`` or space separator, with or without ``Z``)
      * Date-only ``YYYY-MM-DD`` string (UTC midnight)
      * ``YYYY/MM/DD`` date prefix (normalised to dashes)
      * Integer or float epoch milliseconds, or epoch seconds below
        :data:`MS_THRESHOLD`
      * String containing a numeric value (e.g. ``"1640995200000"``)

    Raises:
        ValueError: empty or unparseable input.
        TypeError: input that is neither a string nor a number.
    """
    if isinstance(ts, bool):
        raise TypeError(f"Unsupported timestamp type: {type(ts).__name__}")

    if isinstance(ts, (int, float)):
        return _from_epoch(float(ts))

    if not isinstance(ts, str):
        raise TypeError(f"Unsupported timestamp type: {type(ts).__name__}")

    s = ts.strip()
    if not s:
        raise ValueError("Empty timestamp")

    # String that looks like a number → epoch
    if s.replace(".", "", 1).lstrip("-").isdigit():
        return _from_epoch(float(s))

    # Normalise YYYY/MM/DD → YYYY-MM-DD
    if len(s) >= 10 and s[4] == "/" and s[7] == "/":
        s = f"{s[:4]}-{s[5:7]}-{s[8:]}"

    s = s.replace("Z", "+00:00")
    s = s.replace(" ", "T", 1)

    dt = datetime.fromisoformat(s)
    return dt.astimezone(timezone.utc) if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _from_epoch(value: float) -> datetime:
    if value != value or value in (float("inf"), float("-inf")):
        raise ValueError(f"Non-finite epoch value: {value!r}")
    if abs(value) >= MS_THRESHOLD:
        value = value / 1000
    return datetime.fromtimestamp(value, tz=timezone.utc)


def to_unix_seconds(dt: datetime) -> int:
    """Convert a datetime to integer Unix seconds (naive values are UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


# ---------------------------------------------------------------------------
# Calendar boundaries
# ---------------------------------------------------------------------------


def day_start(dt: datetime) -> datetime:
    """UTC midnight of the day containing *dt*."""
    d = dt.astimezone(timezone.utc).date()
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def week_start(dt: datetime) -> datetime:
    """Monday 00:00 UTC of the ISO week containing *dt*."""
    d = dt.astimezone(timezone.utc).date()
    monday = d - timedelta(days=d.weekday())
    return datetime.combine(monday, time.min, tzinfo=timezone.utc)


def month_start(dt: datetime) -> datetime:
    """The 1st of the month containing *dt*, 00:00 UTC."""
    d = dt.astimezone(timezone.utc).date()
    return datetime(d.year, d.month, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Date ranges
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range used for end-of-day queries."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"DateRange start {self.start} is after end {self.end}")

    @property
    def key(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"

    def unix_bounds(self) -> tuple[int, int]:
        """(start 00:00:00, end 23:59:59) as Unix seconds, for intraday queries."""
        lo = datetime.combine(self.start, time.min, tzinfo=timezone.utc)
        hi = datetime.combine(self.end, time.max, tzinfo=timezone.utc)
        return to_unix_seconds(lo), to_unix_seconds(hi)


def lookback_range(days: int, *, end: date | None = None) -> DateRange:
    """Range covering the *days* calendar days up to and including *end* (default today)."""
    if days < 0:
        raise ValueError("days must be >= 0")
    end = end or today_utc()
    return DateRange(start=end - timedelta(days=days), end=end)
