"""
Provider-neutral interfaces.

The fetcher depends only on these contracts. Concrete providers return the
upstream's raw JSON records; normalisation happens in
:mod:`chartdesk.marketdata.normalize`, not here.
"""

import abc
from datetime import date
from typing import Any, Optional


__all__ = [
    "ImpliedVolatilitySource",
    "MarketDataProvider",
]


class MarketDataProvider(abc.ABC):
    """Abstract base for upstream market data providers.

    Implementations raise :class:`chartdesk.errors.UpstreamUnavailableError`
    for transport failures, timeouts and non-2xx statuses, and
    :class:`chartdesk.errors.InvalidResponseError` for undecodable bodies.
    """

    name: str = "provider"

    @abc.abstractmethod
    async def start(self) -> None:
        """Initialise the provider (e.g. create an HTTP session)."""
        raise NotImplementedError

    @abc.abstractmethod
    async def close(self) -> None:
        """Close any underlying resources."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_quote(self, symbol: str) -> dict[str, Any]:
        """
        Fetch the latest quote for a provider symbol.

        Returns:
            The raw quote record (``close``, ``previousClose``, ``timestamp``...).
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def get_eod_candles(self, symbol: str, start: date, end: date) -> list[dict[str, Any]]:
        """
        Fetch end-of-day records for a provider symbol over an inclusive date range.

        Returns:
            Raw records, in whatever order the provider sends them.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def get_intraday_candles(
        self,
        symbol: str,
        interval: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch intraday records.

        Args:
            symbol: Provider symbol
            interval: Upstream interval (e.g. "5m", "60m")
            start: Optional lower bound, Unix seconds
            end: Optional upper bound, Unix seconds
        """
        raise NotImplementedError

    async def search(self, query: str) -> list[dict[str, Any]]:
        """Free-text symbol search. Providers without search return nothing."""
        return []


class ImpliedVolatilitySource(abc.ABC):
    """Best-effort source of annualised implied volatility."""

    @abc.abstractmethod
    async def get_implied_volatility(self, symbol: str, close: float) -> Optional[float]:
        """
        Return annualised IV (e.g. 0.25 for 25%), or None if unavailable.

        Callers treat any exception the same as None.
        """
        raise NotImplementedError
