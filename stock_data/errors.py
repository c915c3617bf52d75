from __future__ import annotations

UNAVAILABLE_MESSAGE = "Data temporarily unavailable due to provider rate limits. Please retry shortly."


class InputError(ValueError):
    """Request did not carry a usable symbol."""


class UpstreamError(Exception):
    """A single provider call could not be used. Absorbed per tier."""


class UpstreamRateLimitedError(UpstreamError):
    pass


class UpstreamMalformedError(UpstreamError):
    pass


class UpstreamProviderError(UpstreamError):
    pass


class QuoteUnavailableError(Exception):
    def __init__(self, symbol: str) -> None:
        super().__init__(UNAVAILABLE_MESSAGE)
        self.symbol = symbol
