from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Any, Optional

from chartdesk.providers.base import ImpliedVolatilitySource, MarketDataProvider
from chartdesk.time_utils import parse_timestamp


class StaticProvider(MarketDataProvider):
    """
    In-memory provider serving canned raw records.

    - start/close are no-ops
    - EOD requests are filtered to the requested date range
    - intraday requests return the stored rows for the interval
    - ``failures`` maps a symbol to an exception raised on every call
    - ``calls`` counts upstream calls per (operation, symbol)
    """

    name = "static"

    def __init__(
        self,
        eod: Optional[dict[str, list[dict[str, Any]]]] = None,
        intraday: Optional[dict[tuple[str, str], list[dict[str, Any]]]] = None,
        quotes: Optional[dict[str, dict[str, Any]]] = None,
        search_results: Optional[dict[str, list[dict[str, Any]]]] = None,
    ) -> None:
        self._eod = {k: list(v) for k, v in (eod or {}).items()}
        self._intraday = {k: list(v) for k, v in (intraday or {}).items()}
        self._quotes = dict(quotes or {})
        self._search = {k.lower(): list(v) for k, v in (search_results or {}).items()}

        self.failures: dict[str, Exception] = {}
        self.calls: Counter[tuple[str, str]] = Counter()
        self.started = False
        self.closed = False

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    def _record_call(self, operation: str, symbol: str) -> None:
        self.calls[(operation, symbol)] += 1
        failure = self.failures.get(symbol)
        if failure is not None:
            raise failure

    async def get_quote(self, symbol: str) -> dict[str, Any]:
        self._record_call("quote", symbol)
        return dict(self._quotes.get(symbol, {}))

    async def get_eod_candles(self, symbol: str, start: date, end: date) -> list[dict[str, Any]]:
        self._record_call("eod", symbol)
        out = []
        for row in self._eod.get(symbol, []):
            try:
                day = parse_timestamp(row.get("date")).date()
            except (TypeError, ValueError):
                # Malformed rows pass through so the normalizer sees them.
                out.append(row)
                continue
            if start <= day <= end:
                out.append(row)
        return out

    async def get_intraday_candles(
        self,
        symbol: str,
        interval: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        self._record_call("intraday", symbol)
        return list(self._intraday.get((symbol, interval), []))

    async def search(self, query: str) -> list[dict[str, Any]]:
        self._record_call("search", query)
        return list(self._search.get(query.strip().lower(), []))


class StaticVolatility(ImpliedVolatilitySource):
    """Implied volatility from a fixed mapping; raises ``error`` when set."""

    def __init__(self, values: Optional[dict[str, float]] = None, error: Optional[Exception] = None):
        self._values = dict(values or {})
        self._error = error
        self.calls = 0

    async def get_implied_volatility(self, symbol: str, close: float) -> Optional[float]:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._values.get(symbol)
