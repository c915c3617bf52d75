from __future__ import annotations

import re

_QUOTE_CHARS = re.compile(r"[\"'`]")
_WHITESPACE = re.compile(r"\s+")
_DISPLAY_SUFFIX = re.compile(r"\.(NSE|BSE|NS|BO)$")

# user-facing exchange suffix -> provider suffix
SUFFIX_ALIASES = {
    ".NSE": ".NS",
    ".BSE": ".BO",
}


def normalize_symbol(raw: str) -> str:
    """Canonical provider symbol, also used as the cache key."""
    value = str(raw).strip().upper()
    value = _QUOTE_CHARS.sub("", value)
    value = _WHITESPACE.sub(" ", value).strip()

    for alias, provider_suffix in SUFFIX_ALIASES.items():
        if value.endswith(alias):
            return value[: -len(alias)] + provider_suffix
    return value


def display_symbol(symbol: str) -> str:
    return _DISPLAY_SUFFIX.sub("", symbol)


def display_name(symbol: str) -> str:
    return f"{display_symbol(symbol)} Limited"
