"""Resolution of user-typed symbols to provider symbols.

A provider symbol always ends in exactly one of ``.US`` (equity),
``-USD.CC`` (crypto) or ``.FOREX`` (forex and metals). Resolving an already
resolved symbol returns it unchanged.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


log = logging.getLogger(__name__)


__all__ = [
    "AssetClass",
    "ResolvedSymbol",
    "SearchSuggestion",
    "SymbolError",
    "is_supported",
    "resolve",
    "suggestion_from_search_hit",
]


class AssetClass(str, Enum):
    EQUITY = "equity"
    CRYPTO = "crypto"
    FOREX = "forex"


EQUITY_SUFFIX = ".US"
CRYPTO_SUFFIX = "-USD.CC"
FOREX_SUFFIX = ".FOREX"

_SUFFIXES: tuple[tuple[str, AssetClass], ...] = (
    (CRYPTO_SUFFIX, AssetClass.CRYPTO),
    (FOREX_SUFFIX, AssetClass.FOREX),
    (EQUITY_SUFFIX, AssetClass.EQUITY),
)

INVALID_INPUT = "Invalid symbol input"
UNSUPPORTED = "Unsupported symbol"


@dataclass(frozen=True)
class ResolvedSymbol:
    """A user input mapped onto the provider's symbol format."""

    user_input: str
    provider_symbol: str
    asset_class: AssetClass

    @property
    def base(self) -> str:
        """Provider symbol without its asset-class suffix (e.g. ``BTC`` for ``BTC-USD.CC``)."""
        for suffix, _ in _SUFFIXES:
            if self.provider_symbol.endswith(suffix):
                return self.provider_symbol[: -len(suffix)]
        return self.provider_symbol

    def to_dict(self) -> dict[str, str]:
        return {"providerSymbol": self.provider_symbol, "assetClass": self.asset_class.value}

    def __str__(self) -> str:
        return self.provider_symbol


@dataclass(frozen=True)
class SymbolError:
    """Returned instead of a :class:`ResolvedSymbol` when input cannot be mapped."""

    user_input: Any
    reason: str

    def __bool__(self) -> bool:
        return False

    def to_dict(self) -> dict[str, str]:
        return {"error": self.reason}


# ---------------------------------------------------------------------------
# Alias tables
# ---------------------------------------------------------------------------

# Keys are upper-cased with separators removed; values are crypto base tickers.
_CRYPTO_ALIASES: dict[str, str] = {
    # English names
    "BITCOIN": "BTC",
    "ETHEREUM": "ETH",
    "SOLANA": "SOL",
    "RIPPLE": "XRP",
    "CARDANO": "ADA",
    "POLKADOT": "DOT",
    "CHAINLINK": "LINK",
    "AVALANCHE": "AVAX",
    "POLYGON": "MATIC",
    "UNISWAP": "UNI",
    "DOGECOIN": "DOGE",
    "LITECOIN": "LTC",
    "BINANCE": "BNB",
    "BINANCECOIN": "BNB",
    "BITCOINCASH": "BCH",
    # Arabic names
    "بيتكوين": "BTC",
    "إيثريوم": "ETH",
    "ريبل": "XRP",
    "لايتكوين": "LTC",
    "دوجكوين": "DOGE",
    # Common misspellings
    "ETHERIUM": "ETH",
    "ETHERUM": "ETH",
}

_CRYPTO_TICKERS: frozenset[str] = frozenset({
    "BTC", "ETH", "SOL", "XRP", "ADA", "DOT", "LINK", "AVAX", "MATIC", "UNI",
    "DOGE", "LTC", "BNB", "BCH", "AXS", "SAND", "MANA", "ALGO", "ATOM", "NEAR",
    "FTM",
})

_FOREX_ALIASES: dict[str, str] = {
    "GOLD": "XAUUSD",
    "XAU": "XAUUSD",
    "XAUUSD": "XAUUSD",
    "SILVER": "XAGUSD",
    "XAG": "XAGUSD",
    "XAGUSD": "XAGUSD",
    "EURUSD": "EURUSD",
    "GBPUSD": "GBPUSD",
    "USDJPY": "USDJPY",
    "USDCHF": "USDCHF",
    "AUDUSD": "AUDUSD",
    "USDCAD": "USDCAD",
    "NZDUSD": "NZDUSD",
    "EURGBP": "EURGBP",
    "EURJPY": "EURJPY",
}

_BARE_TICKER = re.compile(r"^[A-Z][A-Z0-9.]{0,9}$")
_DUPLICATE_SUFFIX = re.compile(r"((?:-USD)?\.CC|\.FOREX|\.US)(?:\1)+$")
_SEPARATORS = re.compile(r"[\s/_\-.]")


def _alias_key(cleaned: str) -> str:
    return _SEPARATORS.sub("", cleaned)


def _lookup_alias(cleaned: str) -> Optional[tuple[str, AssetClass]]:
    key = _alias_key(cleaned)

    if key in _CRYPTO_ALIASES:
        return _CRYPTO_ALIASES[key] + CRYPTO_SUFFIX, AssetClass.CRYPTO

    if key in _CRYPTO_TICKERS:
        return key + CRYPTO_SUFFIX, AssetClass.CRYPTO

    # "BTCUSD" / "BTC-USD" / "btc/usd"
    if key.endswith("USD") and key[:-3] in _CRYPTO_TICKERS:
        return key[:-3] + CRYPTO_SUFFIX, AssetClass.CRYPTO

    if key in _FOREX_ALIASES:
        return _FOREX_ALIASES[key] + FOREX_SUFFIX, AssetClass.FOREX

    return None


def _split_suffix(cleaned: str) -> Optional[tuple[str, AssetClass]]:
    """Return (base, asset_class) if *cleaned* already carries a provider suffix."""
    # "BTC-USD.CC", "BTC-USD-USD.CC" and the bare "ETH.CC" all land here
    if cleaned.endswith(".CC"):
        base = cleaned[:-3]
        while base.endswith("-USD"):
            base = base[:-4]
        return base, AssetClass.CRYPTO
    for suffix, asset_class in _SUFFIXES:
        if cleaned.endswith(suffix):
            return cleaned[: -len(suffix)], asset_class
    return None


def _suffix_for(asset_class: AssetClass) -> str:
    if asset_class is AssetClass.CRYPTO:
        return CRYPTO_SUFFIX
    if asset_class is AssetClass.FOREX:
        return FOREX_SUFFIX
    return EQUITY_SUFFIX


def resolve(user_input: Any) -> Union[ResolvedSymbol, SymbolError]:
    """
    Map arbitrary user input to exactly one provider symbol.

    Precedence:
      1. Input already carrying a provider suffix is returned (cleaned) as-is.
      2. Alias table (names, misspellings, crypto tickers, metals, FX pairs).
      3. Bare ticker pattern defaults to a US equity.

    Never raises; returns :class:`SymbolError` for empty, non-string or
    unrecognisable input.
    """
    if not isinstance(user_input, str) or not user_input.strip():
        return SymbolError(user_input=user_input, reason=INVALID_INPUT)

    cleaned = user_input.strip().upper()
    cleaned = _DUPLICATE_SUFFIX.sub(r"\1", cleaned)

    split = _split_suffix(cleaned)
    if split is not None:
        base, asset_class = split
        if not base or _split_suffix(base) is not None:
            return SymbolError(user_input=user_input, reason=UNSUPPORTED)
        return ResolvedSymbol(
            user_input=user_input,
            provider_symbol=base + _suffix_for(asset_class),
            asset_class=asset_class,
        )

    alias = _lookup_alias(cleaned)
    if alias is not None:
        provider_symbol, asset_class = alias
        return ResolvedSymbol(user_input=user_input, provider_symbol=provider_symbol, asset_class=asset_class)

    if _BARE_TICKER.match(cleaned) and not cleaned.endswith("."):
        return ResolvedSymbol(
            user_input=user_input,
            provider_symbol=cleaned + EQUITY_SUFFIX,
            asset_class=AssetClass.EQUITY,
        )

    log.debug("Unsupported symbol input %r", user_input)
    return SymbolError(user_input=user_input, reason=UNSUPPORTED)


def is_supported(user_input: Any) -> bool:
    return isinstance(resolve(user_input), ResolvedSymbol)


# ---------------------------------------------------------------------------
# Search results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SearchSuggestion:
    """One symbol-search hit mapped onto the provider symbol format."""

    display: str
    provider_symbol: str
    type: str  # "stock", "etf", "forex" or "crypto"
    exchange: str


_US_EXCHANGES = frozenset({"US", "NYSE", "NASDAQ"})


def suggestion_from_search_hit(hit: dict[str, Any]) -> Optional[SearchSuggestion]:
    """Map one upstream search record (``Code``/``Exchange``/``Type``/``Name``)."""
    code = str(hit.get("Code") or "").strip().upper()
    exchange = str(hit.get("Exchange") or "").strip().upper()
    if not code or not exchange:
        return None

    is_etf = str(hit.get("Type") or "").upper() == "ETF"

    if exchange == "CC":
        provider_symbol = f"{code}.CC" if "-" in code else f"{code}{CRYPTO_SUFFIX}"
        kind = "crypto"
    elif exchange == "FOREX":
        provider_symbol = f"{code}{FOREX_SUFFIX}"
        kind = "forex"
    elif exchange in _US_EXCHANGES:
        provider_symbol = f"{code}{EQUITY_SUFFIX}"
        kind = "etf" if is_etf else "stock"
    else:
        provider_symbol = f"{code}.{exchange}"
        kind = "etf" if is_etf else "stock"

    name = str(hit.get("Name") or "").strip() or code
    return SearchSuggestion(
        display=f"{name} ({code})",
        provider_symbol=provider_symbol,
        type=kind,
        exchange=exchange,
    )
