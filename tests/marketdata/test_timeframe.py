"""Tests for the timeframe table and market-hours check."""

from datetime import datetime, timezone

import pytest

from chartdesk.marketdata.aggregation import AggregationPeriod
from chartdesk.marketdata.timeframe import (
    TIMEFRAMES,
    QueryKind,
    get_timeframe,
    is_intraday,
    is_market_hours,
)


@pytest.mark.parametrize("name", ["1m", "5m", "15m", "1h", "4h"])
def test_intraday_timeframes_query_intraday_endpoint(name):
    config = get_timeframe(name)
    assert config.kind is QueryKind.INTRADAY
    assert config.intraday
    assert config.interval is not None
    assert config.aggregate_to is None


def test_hourly_intervals_use_minute_notation():
    assert get_timeframe("1h").interval == "60m"
    assert get_timeframe("4h").interval == "240m"


def test_daily_is_not_aggregated():
    config = get_timeframe("daily")
    assert config.kind is QueryKind.EOD
    assert config.aggregate_to is None


@pytest.mark.parametrize("name, period", [
    ("weekly", AggregationPeriod.WEEKLY),
    ("monthly", AggregationPeriod.MONTHLY),
])
def test_weekly_and_monthly_aggregate_daily_bars(name, period):
    config = get_timeframe(name)
    assert config.kind is QueryKind.EOD
    assert config.aggregate_to is period


@pytest.mark.parametrize("alias, name", [
    ("D", "daily"), ("1d", "daily"), ("w", "weekly"), ("1mo", "monthly"), ("60m", "1h"), (" 5M ", "5m"),
])
def test_aliases(alias, name):
    assert get_timeframe(alias).name == name


def test_every_timeframe_has_a_positive_lookback_and_poll_interval():
    for config in TIMEFRAMES.values():
        assert config.lookback_days > 0
        assert config.poll_interval > 0


@pytest.mark.parametrize("name", ["", "2h", "yearly", None])
def test_unknown_timeframe_raises(name):
    with pytest.raises(ValueError, match="Unsupported timeframe"):
        get_timeframe(name)


def test_is_intraday():
    assert is_intraday("15m")
    assert not is_intraday("weekly")


class TestMarketHours:

    def test_us_equity_during_session(self):
        # Tuesday 2024-01-09 15:00 UTC = 10:00 New York
        now = datetime(2024, 1, 9, 15, 0, tzinfo=timezone.utc)
        assert is_market_hours("AAPL.US", now)

    def test_us_equity_before_open(self):
        # 14:00 UTC = 09:00 New York
        now = datetime(2024, 1, 9, 14, 0, tzinfo=timezone.utc)
        assert not is_market_hours("AAPL.US", now)

    def test_us_equity_on_weekend(self):
        now = datetime(2024, 1, 13, 16, 0, tzinfo=timezone.utc)
        assert not is_market_hours("AAPL.US", now)

    def test_summer_time_offset(self):
        # 13:45 UTC in July = 09:45 New York (EDT)
        now = datetime(2024, 7, 9, 13, 45, tzinfo=timezone.utc)
        assert is_market_hours("AAPL.US", now)

    def test_crypto_and_forex_always_open(self):
        now = datetime(2024, 1, 13, 3, 0, tzinfo=timezone.utc)
        assert is_market_hours("BTC-USD.CC", now)
        assert is_market_hours("EURUSD.FOREX", now)
