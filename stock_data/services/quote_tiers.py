from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, List, Protocol

from stock_data.errors import UpstreamMalformedError
from stock_data.integrations.alpha_vantage import AlphaVantageClient
from stock_data.schemas.quote import HistoricalPoint, QuoteFragment

HISTORY_MONTHS = 5

# fixed English labels, independent of LC_TIME
MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _to_float(value: Any, *, field_name: str) -> float:
    try:
        if value is None or value == "":
            raise ValueError(f"missing value for {field_name}")
        parsed = float(str(value).strip().rstrip("%"))
    except (TypeError, ValueError) as exc:
        raise UpstreamMalformedError(f"invalid numeric value for {field_name}: {value!r}") from exc
    if not math.isfinite(parsed):
        raise UpstreamMalformedError(f"non-finite value for {field_name}: {value!r}")
    return parsed


def _to_float_default(value: Any, default: float) -> float:
    try:
        return _to_float(value, field_name="optional")
    except UpstreamMalformedError:
        return default


def derive_change(price: float, previous_close: float) -> tuple[float, float]:
    change = price - previous_close
    change_percent = (change / previous_close) * 100 if previous_close else 0.0
    return change, change_percent


def _find_series(payload: Dict[str, Any], prefix: str) -> Dict[str, Any]:
    for key, value in payload.items():
        if key.startswith(prefix) and isinstance(value, dict):
            return value
    raise UpstreamMalformedError(f"missing '{prefix}' block")


def _latest_observations(series: Dict[str, Any], count: int) -> List[tuple[str, Dict[str, Any]]]:
    rows = [(stamp, row) for stamp, row in series.items() if isinstance(row, dict)]
    rows.sort(key=lambda item: item[0], reverse=True)
    return rows[:count]


def _require_usable(fragment: QuoteFragment) -> QuoteFragment:
    if fragment.price == 0:
        raise UpstreamMalformedError(f"{fragment.source}: zero price")
    return fragment


class QuoteTier(Protocol):
    name: str

    def attempt(self, symbol: str) -> QuoteFragment: ...


class _SeriesTier:
    """Two most recent observations of a provider time series."""

    name = ""
    series_prefix = ""

    def __init__(self, client: AlphaVantageClient) -> None:
        self.client = client

    def fetch(self, symbol: str) -> Dict[str, Any]:
        raise NotImplementedError

    def attempt(self, symbol: str) -> QuoteFragment:
        series = _find_series(self.fetch(symbol), self.series_prefix)
        observations = _latest_observations(series, 2)
        if not observations:
            raise UpstreamMalformedError(f"{self.name}: empty series")

        _, latest = observations[0]
        _, previous = observations[1] if len(observations) > 1 else observations[0]

        price = _to_float(latest.get("4. close"), field_name="4. close")
        previous_close = _to_float(previous.get("4. close"), field_name="4. close")
        change, change_percent = derive_change(price, previous_close)
        return _require_usable(
            QuoteFragment(
                price=price,
                previous_close=previous_close,
                change=change,
                change_percent=change_percent,
                high=_to_float_default(latest.get("2. high"), price),
                low=_to_float_default(latest.get("3. low"), price),
                source=self.name,
            )
        )


class IntradayTier(_SeriesTier):
    name = "intraday"

    def __init__(self, client: AlphaVantageClient, interval: str = "5min") -> None:
        super().__init__(client)
        self.interval = interval
        self.series_prefix = f"Time Series ({interval})"

    def fetch(self, symbol: str) -> Dict[str, Any]:
        return self.client.get_intraday(symbol, interval=self.interval)


class DailyAdjustedTier(_SeriesTier):
    name = "daily"
    series_prefix = "Time Series (Daily)"

    def fetch(self, symbol: str) -> Dict[str, Any]:
        return self.client.get_daily_adjusted(symbol)


class GlobalQuoteTier:
    name = "quote"

    def __init__(self, client: AlphaVantageClient) -> None:
        self.client = client

    def attempt(self, symbol: str) -> QuoteFragment:
        quote = self.client.get_global_quote(symbol).get("Global Quote")
        if not isinstance(quote, dict) or not quote:
            raise UpstreamMalformedError("quote: missing 'Global Quote' block")

        price = _to_float(quote.get("05. price"), field_name="05. price")
        previous_close = _to_float_default(quote.get("08. previous close"), price)
        derived_change, derived_percent = derive_change(price, previous_close)
        return _require_usable(
            QuoteFragment(
                price=price,
                previous_close=previous_close,
                change=_to_float_default(quote.get("09. change"), derived_change),
                change_percent=_to_float_default(quote.get("10. change percent"), derived_percent),
                high=_to_float_default(quote.get("03. high"), price),
                low=_to_float_default(quote.get("04. low"), price),
                source=self.name,
            )
        )


def build_default_tiers(client: AlphaVantageClient, interval: str = "5min") -> list[QuoteTier]:
    return [
        IntradayTier(client, interval=interval),
        DailyAdjustedTier(client),
        GlobalQuoteTier(client),
    ]


def _month_label(stamp: str) -> str:
    try:
        parsed = datetime.strptime(stamp[:10], "%Y-%m-%d")
    except ValueError:
        return stamp
    return f"{MONTH_ABBR[parsed.month - 1]} {parsed.year}"


def fetch_monthly_history(
    client: AlphaVantageClient, symbol: str, months: int = HISTORY_MONTHS
) -> list[HistoricalPoint]:
    """Latest monthly closes, oldest first. Unparseable months are skipped."""
    series = _find_series(client.get_monthly(symbol), "Monthly Time Series")
    points: list[HistoricalPoint] = []
    for stamp, row in _latest_observations(series, months):
        try:
            value = _to_float(row.get("4. close"), field_name="4. close")
        except UpstreamMalformedError:
            continue
        points.append(HistoricalPoint(month=_month_label(stamp), value=value))
    points.reverse()
    return points
