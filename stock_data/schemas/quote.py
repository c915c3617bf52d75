from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel


def _fmt(value: float) -> str:
    return f"{value:.2f}"


def format_timestamp(value: datetime) -> str:
    utc = value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class QuoteRequest(BaseModel):
    symbol: str | None = None


class HistoricalPoint(BaseModel):
    month: str
    value: float


class QuoteFragment(BaseModel):
    """Price fields produced by one upstream tier."""

    price: float
    previous_close: float
    change: float
    change_percent: float
    high: float
    low: float
    source: str


class Quote(BaseModel):
    symbol: str
    name: str
    price: float = 0.0
    previous_close: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    high: float = 0.0
    low: float = 0.0
    historical_data: list[HistoricalPoint] = []
    source: str = ""
    stale: bool = False
    last_update: datetime

    def to_response(self) -> dict:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "price": _fmt(self.price),
            "change": _fmt(self.change),
            "changePercent": _fmt(self.change_percent),
            "high": _fmt(self.high),
            "low": _fmt(self.low),
            "previousClose": _fmt(self.previous_close),
            "historicalData": [p.model_dump() for p in self.historical_data],
            "lastUpdate": format_timestamp(self.last_update),
            "source": self.source,
            "stale": self.stale,
        }
