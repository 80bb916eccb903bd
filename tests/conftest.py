# tests/conftest.py
import os
import sys
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from chartdesk.cache import CoalescingCache
from chartdesk.providers.static import StaticProvider


class AsyncContextManagerMock:
    """Helper class to mock async context managers."""
    def __init__(self, return_value=None):
        self.return_value = return_value or MagicMock()

    async def __aenter__(self):
        return self.return_value

    async def __aexit__(self, *args):
        return None


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CoalescingCache(max_size=100, clock=clock)


@pytest.fixture
def mock_http_response():
    """Create a mock HTTP response."""
    mock_response = MagicMock()
    mock_response.status = 200
    mock_response.json = AsyncMock(return_value=[])
    mock_response.text = AsyncMock(return_value="")
    return mock_response


@pytest.fixture
def mock_aiohttp_session(mock_http_response):
    """Mock aiohttp ClientSession."""
    response_context = AsyncContextManagerMock(mock_http_response)

    mock_session = MagicMock()
    mock_session.request = MagicMock(return_value=response_context)
    mock_session.close = AsyncMock()
    mock_session.closed = False

    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)

    return mock_session


@pytest.fixture
def eod_rows():
    """Weekday EOD rows from 2024-01-01 (a Monday) to 2024-02-29, close rising by 1 per session."""
    rows = []
    day = date(2024, 1, 1)
    price = 100.0
    while day <= date(2024, 2, 29):
        if day.weekday() < 5:
            rows.append({
                "date": day.isoformat(),
                "open": price - 0.5,
                "high": price + 1.0,
                "low": price - 1.0,
                "close": price,
                "adjusted_close": price,
                "volume": 1000,
            })
            price += 1.0
        day += timedelta(days=1)
    return rows


@pytest.fixture
def static_provider(eod_rows):
    return StaticProvider(
        eod={
            "AAPL.US": eod_rows,
            "BTC-USD.CC": eod_rows,
        },
        intraday={
            ("AAPL.US", "5m"): [
                {"timestamp": 1704205800, "open": 10, "high": 11, "low": 9, "close": 10.5, "volume": 5},
                {"timestamp": 1704206100, "open": 10.5, "high": 12, "low": 10, "close": 11.5, "volume": 7},
                {"timestamp": 1704206400, "open": 11.5, "high": 12, "low": 11, "close": 11.0, "volume": 3},
            ],
        },
        quotes={
            "AAPL.US": {"code": "AAPL.US", "timestamp": 1704222000, "close": 185.6,
                        "previousClose": 184.2, "change": 1.4, "change_p": 0.76},
        },
        search_results={
            "apple": [
                {"Code": "AAPL", "Exchange": "US", "Name": "Apple Inc", "Type": "Common Stock"},
                {"Code": "APLE", "Exchange": "NYSE", "Name": "Apple Hospitality REIT", "Type": "Common Stock"},
            ],
        },
    )
