from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Sequence

from stock_data.config.settings import Settings
from stock_data.errors import InputError, QuoteUnavailableError
from stock_data.integrations.alpha_vantage import AlphaVantageClient
from stock_data.schemas.quote import HistoricalPoint, Quote, QuoteFragment
from stock_data.services.quote_cache import QuoteCacheProtocol, is_fresh
from stock_data.services.quote_tiers import QuoteTier, build_default_tiers, fetch_monthly_history
from stock_data.services.symbols import display_name, display_symbol, normalize_symbol


class QuoteResolver:
    """Fresh cache first, then the tier cascade, then stale cache or unavailable."""

    def __init__(
        self,
        *,
        quote_cache: QuoteCacheProtocol,
        tiers: Sequence[QuoteTier],
        history_fetcher: Callable[[str], list[HistoricalPoint]] | None = None,
        cache_ttl_sec: float = 300,
    ) -> None:
        self.quote_cache = quote_cache
        self.tiers = list(tiers)
        self.history_fetcher = history_fetcher
        self.cache_ttl_sec = cache_ttl_sec

        self._metrics_lock = threading.Lock()
        self.requests = 0
        self.cache_hits = 0
        self.tier_hits: dict[str, int] = {tier.name: 0 for tier in self.tiers}
        self.tier_failures = 0
        self.stale_served = 0
        self.unavailable = 0
        self.history_fetches = 0

    def _bump(self, counter: str) -> None:
        with self._metrics_lock:
            setattr(self, counter, getattr(self, counter) + 1)

    def _attempt_tiers(self, symbol: str) -> QuoteFragment | None:
        for tier in self.tiers:
            try:
                fragment = tier.attempt(symbol)
            except Exception as exc:
                self._bump("tier_failures")
                print(
                    f"[QUOTE][tier_failed] symbol={symbol} tier={tier.name} "
                    f"error={type(exc).__name__}:{exc}",
                    flush=True,
                )
                continue
            with self._metrics_lock:
                self.tier_hits[tier.name] = self.tier_hits.get(tier.name, 0) + 1
            return fragment
        return None

    def _history(self, symbol: str, cached: list[HistoricalPoint]) -> list[HistoricalPoint]:
        if cached:
            return list(cached)
        if self.history_fetcher is None:
            return []
        self._bump("history_fetches")
        try:
            return self.history_fetcher(symbol)
        except Exception as exc:
            print(
                f"[QUOTE][history_failed] symbol={symbol} error={type(exc).__name__}:{exc}",
                flush=True,
            )
            return []

    def resolve(self, raw_symbol: str | None) -> Quote:
        key = normalize_symbol(raw_symbol) if raw_symbol is not None else ""
        if not key:
            raise InputError("Symbol is required")

        self._bump("requests")
        now = time.time()

        cached = self.quote_cache.get(key)
        if cached is not None and is_fresh(cached, now, self.cache_ttl_sec):
            self._bump("cache_hits")
            print(f"[QUOTE][cache_hit] symbol={key}", flush=True)
            return cached.quote

        fragment = self._attempt_tiers(key)
        if fragment is None:
            if cached is not None:
                self._bump("stale_served")
                print(f"[QUOTE][stale_served] symbol={key} last_update={cached.quote.last_update.isoformat()}", flush=True)
                return cached.quote.model_copy(update={"stale": True})
            self._bump("unavailable")
            print(f"[QUOTE][unavailable] symbol={key}", flush=True)
            raise QuoteUnavailableError(key)

        history = self._history(key, cached.quote.historical_data if cached is not None else [])
        quote = Quote(
            symbol=display_symbol(key),
            name=display_name(key),
            price=fragment.price,
            previous_close=fragment.previous_close,
            change=fragment.change,
            change_percent=fragment.change_percent,
            high=fragment.high,
            low=fragment.low,
            historical_data=history,
            source=fragment.source,
            stale=False,
            last_update=datetime.fromtimestamp(now, tz=timezone.utc),
        )
        self.quote_cache.put(key, quote, now)
        print(f"[QUOTE][resolved] symbol={key} source={fragment.source}", flush=True)
        return quote

    def metrics(self) -> dict[str, int | dict[str, int]]:
        with self._metrics_lock:
            return self._metrics_snapshot()

    def _metrics_snapshot(self) -> dict[str, int | dict[str, int]]:
        return {
            "requests": self.requests,
            "cache_hits": self.cache_hits,
            "tier_hits": dict(self.tier_hits),
            "tier_failures": self.tier_failures,
            "stale_served": self.stale_served,
            "unavailable": self.unavailable,
            "history_fetches": self.history_fetches,
        }


def build_quote_resolver(settings: Settings, quote_cache: QuoteCacheProtocol) -> QuoteResolver:
    client = AlphaVantageClient(
        api_key=settings.ALPHA_VANTAGE_API_KEY,
        base_url=settings.ALPHA_VANTAGE_BASE_URL,
        timeout=settings.UPSTREAM_TIMEOUT_SEC,
    )
    return QuoteResolver(
        quote_cache=quote_cache,
        tiers=build_default_tiers(client, interval=settings.INTRADAY_INTERVAL),
        history_fetcher=partial(fetch_monthly_history, client),
        cache_ttl_sec=settings.QUOTE_CACHE_TTL_SEC,
    )
