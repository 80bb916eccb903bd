"""
EODHD HTTP provider.

Endpoints used:
- /real-time/{symbol}  - latest quote
- /eod/{symbol}        - end-of-day bars over a date range
- /intraday/{symbol}   - intraday bars at a fixed interval
- /search/{query}      - symbol search
- /options/{symbol}    - option chain, for implied volatility

Retry policy belongs to the caller; every failure surfaces exactly once.
"""

import asyncio
import logging
import math
from datetime import date
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from chartdesk.config import Settings
from chartdesk.errors import InvalidResponseError, UpstreamUnavailableError
from chartdesk.providers.base import ImpliedVolatilitySource, MarketDataProvider


log = logging.getLogger(__name__)


__all__ = [
    "ATM_STRIKE_BAND",
    "EODHDClient",
    "EODHDOptionsVolatility",
]


# Options with strikes within this fraction of the close count as at-the-money.
ATM_STRIKE_BAND = 0.05

SEARCH_LIMIT = 15


class EODHDClient(MarketDataProvider):
    """
    aiohttp client for the EODHD REST API.

    Example:
        async with EODHDClient(api_token="...") as client:
            rows = await client.get_eod_candles("AAPL.US", start, end)
    """

    name = "eodhd"

    def __init__(
        self,
        api_token: str,
        *,
        base_url: str = "https://eodhd.com/api",
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        if not api_token:
            raise ValueError("api_token is required")
        self._api_token = api_token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, settings: Settings) -> "EODHDClient":
        settings.validate(require_token=True)
        return cls(
            api_token=settings.api_token or "",
            base_url=settings.base_url,
            timeout=settings.http_timeout,
        )

    async def __aenter__(self) -> "EODHDClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={"Accept": "application/json", "User-Agent": "chartdesk/1.0"},
            )
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """GET *path* and decode JSON. The token is added here and never logged."""
        if self._session is None:
            await self.start()
        assert self._session is not None

        url = f"{self._base_url}{path}"
        query = {k: v for k, v in (params or {}).items() if v is not None}
        query.update({"api_token": self._api_token, "fmt": "json"})

        try:
            async with self._session.request("GET", url, params=query) as response:
                if response.status >= 400:
                    body = await response.text()
                    log.warning("Upstream %s returned HTTP %s: %s", path, response.status, body[:200])
                    raise UpstreamUnavailableError(
                        f"HTTP {response.status} from {path}",
                        status_code=response.status,
                    )
                try:
                    return await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError) as exc:
                    raise InvalidResponseError(f"Undecodable body from {path}: {exc}") from exc
        except asyncio.TimeoutError as exc:
            log.warning("Upstream %s timed out after %.1fs", path, self._timeout)
            raise UpstreamUnavailableError(f"Timeout calling {path}") from exc
        except aiohttp.ClientError as exc:
            log.warning("Upstream %s connection error: %s", path, exc)
            raise UpstreamUnavailableError(f"Connection error calling {path}: {exc}") from exc

    async def _request_list(self, path: str, params: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
        data = await self._request(path, params)
        if data is None:
            return []
        if not isinstance(data, list):
            raise InvalidResponseError(f"Expected a JSON array from {path}, got {type(data).__name__}")
        return data

    # ------------------------------------------------------------------
    # MarketDataProvider
    # ------------------------------------------------------------------

    async def get_quote(self, symbol: str) -> dict[str, Any]:
        data = await self._request(f"/real-time/{quote(symbol, safe='')}")
        if not isinstance(data, dict):
            raise InvalidResponseError(f"Expected a JSON object for quote {symbol}")
        return data

    async def get_eod_candles(self, symbol: str, start: date, end: date) -> list[dict[str, Any]]:
        return await self._request_list(
            f"/eod/{quote(symbol, safe='')}",
            {"from": start.isoformat(), "to": end.isoformat(), "period": "d"},
        )

    async def get_intraday_candles(
        self,
        symbol: str,
        interval: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        return await self._request_list(
            f"/intraday/{quote(symbol, safe='')}",
            {"interval": interval, "from": start, "to": end},
        )

    async def search(self, query: str) -> list[dict[str, Any]]:
        try:
            return await self._request_list(
                f"/search/{quote(query.strip(), safe='')}",
                {"limit": SEARCH_LIMIT, "type": "all"},
            )
        except UpstreamUnavailableError as exc:
            if exc.status_code == 404:
                return []
            raise

    async def get_option_chain(self, symbol: str) -> list[dict[str, Any]]:
        data = await self._request(f"/options/{quote(symbol, safe='')}")
        if isinstance(data, dict) and isinstance(data.get("data"), list):
            return data["data"]
        return []


class EODHDOptionsVolatility(ImpliedVolatilitySource):
    """Average implied volatility of near-the-money options."""

    def __init__(self, client: EODHDClient, strike_band: float = ATM_STRIKE_BAND):
        self._client = client
        self._strike_band = strike_band

    async def get_implied_volatility(self, symbol: str, close: float) -> Optional[float]:
        chain = await self._client.get_option_chain(symbol)
        return atm_implied_volatility(chain, close, self._strike_band)


def atm_implied_volatility(
    chain: list[dict[str, Any]],
    close: float,
    strike_band: float = ATM_STRIKE_BAND,
) -> Optional[float]:
    """Mean positive ``impliedVolatility`` over strikes within *strike_band* of *close*."""
    if not close or close <= 0:
        return None

    ivs: list[float] = []
    for option in chain:
        try:
            strike = float(option.get("strike"))
            iv = float(option.get("impliedVolatility"))
        except (TypeError, ValueError):
            continue
        if not (math.isfinite(strike) and math.isfinite(iv)) or iv <= 0:
            continue
        if abs(strike - close) < close * strike_band:
            ivs.append(iv)

    if not ivs:
        return None
    return sum(ivs) / len(ivs)
