from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional


DEFAULT_BASE_URL = "https://eodhd.com/api"


@dataclass(frozen=True)
class Settings:
    """Runtime settings, normally read from the environment."""

    api_token: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    http_timeout: float = 10.0
    cache_max_size: int = 1000
    batch_width: int = 5
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """Build settings from environment variables.

        Raises ``ValueError`` naming the variable when a numeric value is
        malformed, instead of letting a bare conversion error propagate.
        """
        env = os.environ if environ is None else environ

        token = env.get("EODHD_API_TOKEN") or env.get("EODHD_API_KEY") or None

        return cls(
            api_token=token,
            base_url=env.get("CHARTDESK_BASE_URL", DEFAULT_BASE_URL),
            http_timeout=_parse(env, "CHARTDESK_HTTP_TIMEOUT", float, 10.0),
            cache_max_size=_parse(env, "CHARTDESK_CACHE_MAX_SIZE", int, 1000),
            batch_width=_parse(env, "CHARTDESK_BATCH_WIDTH", int, 5),
            log_level=env.get("CHARTDESK_LOG_LEVEL", "INFO").upper(),
        )

    def validate(self, require_token: bool = False) -> None:
        if require_token and not self.api_token:
            raise ValueError("EODHD_API_TOKEN is not set")
        if self.http_timeout <= 0:
            raise ValueError("CHARTDESK_HTTP_TIMEOUT must be > 0")
        if self.cache_max_size <= 0:
            raise ValueError("CHARTDESK_CACHE_MAX_SIZE must be > 0")
        if self.batch_width <= 0:
            raise ValueError("CHARTDESK_BATCH_WIDTH must be > 0")


def _parse(env: Mapping[str, str], name: str, kind: type, default):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return kind(raw.strip())
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} is not a valid {kind.__name__}: {raw!r}") from exc
