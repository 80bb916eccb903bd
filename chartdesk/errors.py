"""Exception taxonomy for the market data layer.

Callers map :attr:`FetchError.http_status` onto their own responses and show
:attr:`FetchError.public_message`; the ``detail`` may contain provider text
and is only meant for logs.
"""

from enum import Enum
from typing import Optional


__all__ = [
    "ChartDeskError",
    "FetchError",
    "FetchErrorKind",
    "InvalidResponseError",
    "NoDataError",
    "UnsupportedSymbolError",
    "UpstreamUnavailableError",
]


class ChartDeskError(Exception):
    """Base class for all chartdesk errors."""
    pass


class FetchErrorKind(str, Enum):
    UNSUPPORTED = "unsupported"
    NO_DATA = "no_data"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    INVALID_RESPONSE = "invalid_response"


class FetchError(ChartDeskError):
    """A candle or quote request could not be satisfied."""

    kind: FetchErrorKind = FetchErrorKind.UPSTREAM_UNAVAILABLE
    http_status: int = 503
    public_message: str = "Market data service temporarily unavailable"

    def __init__(
        self,
        detail: str = "",
        *,
        symbol: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(detail or self.public_message)
        self.detail = detail
        self.symbol = symbol
        self.status_code = status_code

    def to_dict(self) -> dict[str, object]:
        """Caller-safe representation (no provider text)."""
        return {
            "error": self.public_message,
            "kind": self.kind.value,
            "symbol": self.symbol,
        }


class UnsupportedSymbolError(FetchError):
    """The symbol could not be resolved; upstream was not contacted."""

    kind = FetchErrorKind.UNSUPPORTED
    http_status = 400
    public_message = "Symbol not understood"


class NoDataError(FetchError):
    """Upstream answered but nothing usable remained after validation."""

    kind = FetchErrorKind.NO_DATA
    http_status = 404
    public_message = "No data available for this symbol"


class UpstreamUnavailableError(FetchError):
    """Transport failure, timeout or non-2xx status from upstream."""

    kind = FetchErrorKind.UPSTREAM_UNAVAILABLE
    http_status = 503
    public_message = "Market data service temporarily unavailable"


class InvalidResponseError(FetchError):
    """Upstream returned a body that is not the expected JSON shape."""

    kind = FetchErrorKind.INVALID_RESPONSE
    http_status = 502
    public_message = "Market data service returned an invalid response"
