from __future__ import annotations

import threading
from typing import Protocol

from pydantic import BaseModel

from stock_data.schemas.quote import Quote


class CacheEntry(BaseModel):
    quote: Quote
    inserted_at: float


def is_fresh(entry: CacheEntry, now: float, ttl: float) -> bool:
    return now - entry.inserted_at < ttl


class QuoteCacheProtocol(Protocol):
    def get(self, key: str) -> CacheEntry | None: ...

    def put(self, key: str, quote: Quote, timestamp: float) -> None: ...


class QuoteCache:
    """Process-wide quote store. Entries are only superseded, never evicted."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[str, CacheEntry] = {}

    def put(self, key: str, quote: Quote, timestamp: float) -> None:
        entry = CacheEntry(quote=quote, inserted_at=timestamp)
        with self._lock:
            self._rows[key] = entry

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._rows.get(key)

    def list_all(self) -> list[CacheEntry]:
        with self._lock:
            return list(self._rows.values())

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()


quote_cache = QuoteCache()
