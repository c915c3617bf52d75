from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from stock_data.errors import (
    UpstreamMalformedError,
    UpstreamProviderError,
    UpstreamRateLimitedError,
)

_RATE_LIMIT_MARKERS = ("call frequency", "rate limit")


def is_rate_limited(payload: Dict[str, Any]) -> bool:
    """Whether a parsed provider body is a rate-limit advisory instead of data."""
    if payload.get("Note"):
        return True
    info = payload.get("Information")
    if isinstance(info, str):
        lowered = info.lower()
        return any(marker in lowered for marker in _RATE_LIMIT_MARKERS)
    return False


class AlphaVantageClient:
    """Alpha Vantage query client. One HTTP call per method, no retries."""

    DEFAULT_BASE_URL = "https://www.alphavantage.co/query"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 5.0,
        session: Optional[Any] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url or self.DEFAULT_BASE_URL
        self.timeout = timeout
        self.session = session or requests

    def query(self, function: str, symbol: str, **params: str) -> Dict[str, Any]:
        response = self.session.get(
            self.base_url,
            params={"function": function, "symbol": symbol, **params, "apikey": self.api_key},
            timeout=self.timeout,
        )
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamMalformedError(f"{function}: response is not valid JSON") from exc

        if not isinstance(payload, dict):
            raise UpstreamMalformedError(f"{function}: response must be an object")
        if is_rate_limited(payload):
            raise UpstreamRateLimitedError(str(payload.get("Note") or payload.get("Information")))
        if payload.get("Error Message"):
            raise UpstreamProviderError(str(payload["Error Message"]))
        return payload

    def get_intraday(self, symbol: str, interval: str = "5min") -> Dict[str, Any]:
        return self.query("TIME_SERIES_INTRADAY", symbol, interval=interval)

    def get_daily_adjusted(self, symbol: str) -> Dict[str, Any]:
        return self.query("TIME_SERIES_DAILY_ADJUSTED", symbol)

    def get_global_quote(self, symbol: str) -> Dict[str, Any]:
        return self.query("GLOBAL_QUOTE", symbol)

    def get_monthly(self, symbol: str) -> Dict[str, Any]:
        return self.query("TIME_SERIES_MONTHLY", symbol)
