"""
Service wiring.

:class:`MarketDataService` owns one cache instance and hands it to every
component that needs it; construct it once per process, ``start()`` it,
and ``close()`` it on shutdown.
"""

import logging
import sys
from datetime import date
from typing import Any, Optional, Sequence, TextIO, Union

from chartdesk.cache import CoalescingCache
from chartdesk.config import Settings
from chartdesk.expected_move import BatchResult, ExpectedMove, ExpectedMoveCalculator
from chartdesk.fetcher import MarketDataFetcher, Quote
from chartdesk.marketdata.candle import CandleSeries
from chartdesk.marketdata.symbols import ResolvedSymbol, SearchSuggestion, SymbolError, resolve
from chartdesk.providers.base import ImpliedVolatilitySource, MarketDataProvider


log = logging.getLogger(__name__)


__all__ = [
    "MarketDataService",
    "configure_logging",
]


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO", force: bool = False, stream: Optional[TextIO] = None) -> None:
    """
    Send chartdesk log records to a console handler on the root logger.

    Leaves an application's existing logging setup alone unless *force* is
    set. The ``chartdesk`` logger always gets *level*, so
    ``CHARTDESK_LOG_LEVEL=DEBUG`` shows dropped records even when the host
    application configured the root logger itself.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        force: Replace any existing root handlers
        stream: Handler target, stdout by default
    """
    level = level.upper()
    logging.getLogger("chartdesk").setLevel(level)

    root_logger = logging.getLogger()
    if root_logger.hasHandlers() and not force:
        return

    if force:
        root_logger.handlers.clear()
    root_logger.setLevel(level)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(handler)


class MarketDataService:
    """
    Library-level entry point for chart and expected-move requests.

    Example:
        async with MarketDataService.from_settings(Settings.from_env()) as svc:
            series = await svc.fetch_candles("AAPL", "weekly")
            band = await svc.compute_expected_move("AAPL", "weekly")
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        *,
        iv_source: Optional[ImpliedVolatilitySource] = None,
        cache: Optional[CoalescingCache] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.settings.validate()

        self.provider = provider
        self.cache = cache or CoalescingCache(max_size=self.settings.cache_max_size)
        self.fetcher = MarketDataFetcher(provider, self.cache)
        self.expected_moves = ExpectedMoveCalculator(
            self.fetcher,
            self.cache,
            iv_source=iv_source,
            batch_width=self.settings.batch_width,
        )
        self._started = False

    @classmethod
    def from_settings(cls, settings: Settings, setup_logging: bool = True) -> "MarketDataService":
        """Build a service backed by the EODHD HTTP provider."""
        from chartdesk.providers.eodhd import EODHDClient, EODHDOptionsVolatility

        if setup_logging:
            configure_logging(settings.log_level)

        client = EODHDClient.from_settings(settings)
        return cls(client, iv_source=EODHDOptionsVolatility(client), settings=settings)

    async def __aenter__(self) -> "MarketDataService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def start(self) -> None:
        if self._started:
            return
        await self.provider.start()
        self._started = True
        log.info("Market data service started (provider=%s, cache max=%d)", self.provider.name, self.cache.max_size)

    async def close(self) -> None:
        """Close the provider and drop cached data."""
        try:
            await self.provider.close()
        finally:
            self.cache.clear()
            self._started = False
            log.info("Market data service closed")

    # ------------------------------------------------------------------
    # Request/response contracts
    # ------------------------------------------------------------------

    def resolve(self, user_input: Any) -> Union[ResolvedSymbol, SymbolError]:
        return resolve(user_input)

    async def fetch_candles(
        self,
        user_symbol: Any,
        timeframe: str = "daily",
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> CandleSeries:
        return await self.fetcher.fetch_candles(user_symbol, timeframe, start, end)

    async def fetch_quote(self, user_symbol: Any) -> Quote:
        return await self.fetcher.fetch_quote(user_symbol)

    async def search(self, query: str) -> list[SearchSuggestion]:
        return await self.fetcher.search(query)

    async def compute_expected_move(
        self,
        user_symbol: Any,
        timeframe: str = "weekly",
        custom_days: Optional[float] = None,
    ) -> ExpectedMove:
        return await self.expected_moves.compute(user_symbol, timeframe, custom_days)

    async def compute_expected_moves(
        self,
        user_symbols: Sequence[Any],
        timeframe: str = "weekly",
        custom_days: Optional[float] = None,
    ) -> BatchResult:
        return await self.expected_moves.compute_many(user_symbols, timeframe, custom_days)

    async def chart_levels(self, user_symbol: Any, chart_timeframe: str) -> ExpectedMove:
        return await self.expected_moves.levels(user_symbol, chart_timeframe)
