"""Tests for the EODHD HTTP provider with a mocked aiohttp session."""

import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from chartdesk.config import Settings
from chartdesk.errors import InvalidResponseError, UpstreamUnavailableError
from chartdesk.providers.eodhd import EODHDClient, EODHDOptionsVolatility, atm_implied_volatility


@pytest.fixture
def client(mock_aiohttp_session):
    return EODHDClient(api_token="test-token", base_url="https://example.test/api", session=mock_aiohttp_session)


def _call_params(session):
    args, kwargs = session.request.call_args
    return args, kwargs["params"]


class TestConstruction:

    def test_token_required(self):
        with pytest.raises(ValueError):
            EODHDClient(api_token="")

    def test_from_settings_requires_token(self):
        with pytest.raises(ValueError, match="EODHD_API_TOKEN"):
            EODHDClient.from_settings(Settings())

    def test_from_settings(self):
        client = EODHDClient.from_settings(Settings(api_token="abc", http_timeout=3.0))
        assert client.name == "eodhd"

    @pytest.mark.asyncio
    async def test_injected_session_is_not_closed(self, client, mock_aiohttp_session):
        await client.close()
        mock_aiohttp_session.close.assert_not_awaited()


class TestRequests:

    @pytest.mark.asyncio
    async def test_eod_request(self, client, mock_aiohttp_session, mock_http_response):
        mock_http_response.json = AsyncMock(return_value=[{"date": "2024-01-02", "close": 1}])

        rows = await client.get_eod_candles("AAPL.US", date(2024, 1, 1), date(2024, 1, 31))

        assert rows == [{"date": "2024-01-02", "close": 1}]
        args, params = _call_params(mock_aiohttp_session)
        assert args == ("GET", "https://example.test/api/eod/AAPL.US")
        assert params["from"] == "2024-01-01"
        assert params["to"] == "2024-01-31"
        assert params["period"] == "d"
        assert params["api_token"] == "test-token"
        assert params["fmt"] == "json"

    @pytest.mark.asyncio
    async def test_intraday_request_omits_missing_bounds(self, client, mock_aiohttp_session):
        await client.get_intraday_candles("BTC-USD.CC", "5m")

        args, params = _call_params(mock_aiohttp_session)
        assert args[1] == "https://example.test/api/intraday/BTC-USD.CC"
        assert params["interval"] == "5m"
        assert "from" not in params
        assert "to" not in params

    @pytest.mark.asyncio
    async def test_quote(self, client, mock_http_response):
        mock_http_response.json = AsyncMock(return_value={"code": "AAPL.US", "close": 185.6})
        assert (await client.get_quote("AAPL.US"))["close"] == 185.6

    @pytest.mark.asyncio
    async def test_quote_must_be_object(self, client, mock_http_response):
        mock_http_response.json = AsyncMock(return_value=[1, 2])
        with pytest.raises(InvalidResponseError):
            await client.get_quote("AAPL.US")

    @pytest.mark.asyncio
    async def test_null_body_is_empty_list(self, client, mock_http_response):
        mock_http_response.json = AsyncMock(return_value=None)
        assert await client.get_eod_candles("AAPL.US", date(2024, 1, 1), date(2024, 1, 2)) == []

    @pytest.mark.asyncio
    async def test_non_list_body_is_invalid(self, client, mock_http_response):
        mock_http_response.json = AsyncMock(return_value={"error": "nope"})
        with pytest.raises(InvalidResponseError) as exc_info:
            await client.get_eod_candles("AAPL.US", date(2024, 1, 1), date(2024, 1, 2))
        assert exc_info.value.http_status == 502

    @pytest.mark.asyncio
    async def test_undecodable_body_is_invalid(self, client, mock_http_response):
        mock_http_response.json = AsyncMock(side_effect=ValueError("Expecting value"))
        with pytest.raises(InvalidResponseError):
            await client.get_eod_candles("AAPL.US", date(2024, 1, 1), date(2024, 1, 2))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 429, 500, 503])
    async def test_error_status_is_upstream_unavailable(self, client, mock_http_response, status):
        mock_http_response.status = status
        mock_http_response.text = AsyncMock(return_value="Server error")

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.get_eod_candles("AAPL.US", date(2024, 1, 1), date(2024, 1, 2))

        assert exc_info.value.status_code == status
        assert "test-token" not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout_is_upstream_unavailable(self, client, mock_aiohttp_session):
        mock_aiohttp_session.request = MagicMock(side_effect=asyncio.TimeoutError())
        with pytest.raises(UpstreamUnavailableError):
            await client.get_quote("AAPL.US")

    @pytest.mark.asyncio
    async def test_connection_error_is_upstream_unavailable(self, client, mock_aiohttp_session):
        mock_aiohttp_session.request = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(UpstreamUnavailableError):
            await client.get_quote("AAPL.US")


class TestSearch:

    @pytest.mark.asyncio
    async def test_search_params(self, client, mock_aiohttp_session, mock_http_response):
        mock_http_response.json = AsyncMock(return_value=[{"Code": "AAPL", "Exchange": "US"}])

        hits = await client.search(" apple ")

        assert hits == [{"Code": "AAPL", "Exchange": "US"}]
        args, params = _call_params(mock_aiohttp_session)
        assert args[1] == "https://example.test/api/search/apple"
        assert params["limit"] == 15
        assert params["type"] == "all"

    @pytest.mark.asyncio
    async def test_search_not_found_is_empty(self, client, mock_http_response):
        mock_http_response.status = 404
        assert await client.search("zzzz") == []

    @pytest.mark.asyncio
    async def test_search_server_error_raises(self, client, mock_http_response):
        mock_http_response.status = 500
        with pytest.raises(UpstreamUnavailableError):
            await client.search("apple")


class TestImpliedVolatility:

    def test_atm_average(self):
        chain = [
            {"strike": 98, "impliedVolatility": 0.30},
            {"strike": 103, "impliedVolatility": 0.20},
            {"strike": 120, "impliedVolatility": 0.90},  # outside the band
            {"strike": 100, "impliedVolatility": 0},     # unusable
            {"strike": "x", "impliedVolatility": 0.5},   # malformed
        ]
        assert atm_implied_volatility(chain, 100.0) == pytest.approx(0.25)

    def test_no_atm_options(self):
        assert atm_implied_volatility([{"strike": 200, "impliedVolatility": 0.3}], 100.0) is None
        assert atm_implied_volatility([], 100.0) is None
        assert atm_implied_volatility([{"strike": 100, "impliedVolatility": 0.3}], 0) is None

    @pytest.mark.asyncio
    async def test_source_reads_option_chain(self, client, mock_aiohttp_session, mock_http_response):
        mock_http_response.json = AsyncMock(return_value={"data": [
            {"strike": 100, "impliedVolatility": 0.4},
        ]})

        iv = await EODHDOptionsVolatility(client).get_implied_volatility("AAPL.US", 101.0)

        assert iv == pytest.approx(0.4)
        args, _ = _call_params(mock_aiohttp_session)
        assert args[1] == "https://example.test/api/options/AAPL.US"

    @pytest.mark.asyncio
    async def test_unexpected_chain_shape_gives_none(self, client, mock_http_response):
        mock_http_response.json = AsyncMock(return_value=[])
        assert await EODHDOptionsVolatility(client).get_implied_volatility("AAPL.US", 100.0) is None
