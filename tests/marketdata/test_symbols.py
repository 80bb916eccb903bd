"""Tests for symbol resolution and search mapping."""

import pytest

from chartdesk.marketdata.symbols import (
    AssetClass,
    ResolvedSymbol,
    SymbolError,
    is_supported,
    resolve,
    suggestion_from_search_hit,
)


class TestResolve:

    @pytest.mark.parametrize("user_input, expected", [
        ("AAPL", "AAPL.US"),
        ("aapl", "AAPL.US"),
        ("  msft ", "MSFT.US"),
        ("BRK.B", "BRK.B.US"),
        ("AAPL.US", "AAPL.US"),
        ("SPY", "SPY.US"),
    ])
    def test_equities(self, user_input, expected):
        out = resolve(user_input)
        assert isinstance(out, ResolvedSymbol)
        assert out.provider_symbol == expected
        assert out.asset_class is AssetClass.EQUITY

    @pytest.mark.parametrize("user_input, expected", [
        ("BTC", "BTC-USD.CC"),
        ("btc", "BTC-USD.CC"),
        ("bitcoin", "BTC-USD.CC"),
        ("Bitcoin", "BTC-USD.CC"),
        ("BTCUSD", "BTC-USD.CC"),
        ("btc/usd", "BTC-USD.CC"),
        ("BTC-USD", "BTC-USD.CC"),
        ("ETH.CC", "ETH-USD.CC"),
        ("etherium", "ETH-USD.CC"),
        ("بيتكوين", "BTC-USD.CC"),
        ("SOL-USD.CC", "SOL-USD.CC"),
    ])
    def test_crypto(self, user_input, expected):
        out = resolve(user_input)
        assert isinstance(out, ResolvedSymbol)
        assert out.provider_symbol == expected
        assert out.asset_class is AssetClass.CRYPTO

    @pytest.mark.parametrize("user_input, expected", [
        ("gold", "XAUUSD.FOREX"),
        ("XAU", "XAUUSD.FOREX"),
        ("silver", "XAGUSD.FOREX"),
        ("EURUSD", "EURUSD.FOREX"),
        ("eur/usd", "EURUSD.FOREX"),
        ("GBPUSD.FOREX", "GBPUSD.FOREX"),
    ])
    def test_forex_and_metals(self, user_input, expected):
        out = resolve(user_input)
        assert isinstance(out, ResolvedSymbol)
        assert out.provider_symbol == expected
        assert out.asset_class is AssetClass.FOREX

    @pytest.mark.parametrize("user_input", [
        "AAPL", "bitcoin", "gold", "BRK.B", "ETH.CC", "EURUSD", "eth", "XAG",
    ])
    def test_resolution_is_idempotent(self, user_input):
        first = resolve(user_input)
        second = resolve(first.provider_symbol)
        assert second.provider_symbol == first.provider_symbol
        assert second.asset_class is first.asset_class

    @pytest.mark.parametrize("user_input, expected", [
        ("AAPL.US.US", "AAPL.US"),
        ("BTC-USD.CC-USD.CC", "BTC-USD.CC"),
        ("BTC-USD-USD.CC", "BTC-USD.CC"),
        ("XAUUSD.FOREX.FOREX", "XAUUSD.FOREX"),
    ])
    def test_duplicate_suffixes_collapse(self, user_input, expected):
        assert resolve(user_input).provider_symbol == expected

    @pytest.mark.parametrize("user_input", [
        "AAPL", "bitcoin", "gold", "BTC-USD.CC", "AAPL.US.US", "BTC-USD-USD.CC", "eur/usd",
    ])
    def test_exactly_one_provider_suffix(self, user_input):
        symbol = resolve(user_input).provider_symbol
        suffixes = [s for s in (".US", "-USD.CC", ".FOREX") if symbol.endswith(s)]
        assert len(suffixes) == 1
        assert symbol.count(".US") + symbol.count("-USD.CC") + symbol.count(".FOREX") == 1

    @pytest.mark.parametrize("user_input", ["", "   ", None, 42, ["AAPL"]])
    def test_invalid_input(self, user_input):
        out = resolve(user_input)
        assert isinstance(out, SymbolError)
        assert out.reason == "Invalid symbol input"
        assert not out

    @pytest.mark.parametrize("user_input", ["$$$", "TOOLONGTICKER1", "hello world!", ".US", "1ABC"])
    def test_unsupported_input(self, user_input):
        out = resolve(user_input)
        assert isinstance(out, SymbolError)
        assert out.reason == "Unsupported symbol"

    def test_original_input_is_kept(self):
        out = resolve("  bitcoin ")
        assert out.user_input == "  bitcoin "
        assert out.base == "BTC"

    def test_is_supported(self):
        assert is_supported("AAPL")
        assert not is_supported("")
        assert not is_supported("$$$")


class TestSearchSuggestion:

    def test_us_stock(self):
        s = suggestion_from_search_hit({"Code": "AAPL", "Exchange": "US", "Name": "Apple Inc", "Type": "Common Stock"})
        assert s.provider_symbol == "AAPL.US"
        assert s.type == "stock"
        assert s.display == "Apple Inc (AAPL)"

    def test_etf_on_nyse(self):
        s = suggestion_from_search_hit({"Code": "SPY", "Exchange": "NYSE", "Name": "SPDR S&P 500", "Type": "ETF"})
        assert s.provider_symbol == "SPY.US"
        assert s.type == "etf"

    def test_crypto(self):
        assert suggestion_from_search_hit({"Code": "BTC", "Exchange": "CC"}).provider_symbol == "BTC-USD.CC"
        assert suggestion_from_search_hit({"Code": "ETH-USD", "Exchange": "CC"}).provider_symbol == "ETH-USD.CC"

    def test_forex(self):
        s = suggestion_from_search_hit({"Code": "EURUSD", "Exchange": "FOREX", "Name": "EUR/USD"})
        assert s.provider_symbol == "EURUSD.FOREX"
        assert s.type == "forex"

    def test_other_exchange_keeps_exchange_suffix(self):
        s = suggestion_from_search_hit({"Code": "VOD", "Exchange": "LSE", "Name": "Vodafone"})
        assert s.provider_symbol == "VOD.LSE"

    def test_incomplete_hit_is_skipped(self):
        assert suggestion_from_search_hit({"Code": "AAPL"}) is None
        assert suggestion_from_search_hit({"Exchange": "US"}) is None


def test_payloads():
    assert resolve("btc").to_dict() == {"providerSymbol": "BTC-USD.CC", "assetClass": "crypto"}
    assert resolve("").to_dict() == {"error": "Invalid symbol input"}
