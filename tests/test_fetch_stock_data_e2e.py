import unittest
from functools import partial
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from stock_data.integrations.alpha_vantage import AlphaVantageClient
from stock_data.main import app
from stock_data.services.quote_cache import CacheEntry, quote_cache
from stock_data.services.quote_resolver import QuoteResolver
from stock_data.services.quote_tiers import build_default_tiers, fetch_monthly_history

RATE_LIMIT = {"Note": "Thank you for using Alpha Vantage! Our standard API call frequency is 5 calls per minute."}
UNAVAILABLE = {"error": "Data temporarily unavailable due to provider rate limits. Please retry shortly."}

INTRADAY_TCS = {
    "Meta Data": {"2. Symbol": "TCS.NS"},
    "Time Series (5min)": {
        "2026-01-02 15:25:00": {"2. high": "4105.00", "3. low": "4095.00", "4. close": "4100.00"},
        "2026-01-02 15:20:00": {"2. high": "4085.00", "3. low": "4075.00", "4. close": "4080.00"},
    },
}
MONTHLY_TCS = {
    "Monthly Time Series": {
        "2025-11-28": {"4. close": "3950.00"},
        "2025-12-31": {"4. close": "4010.50"},
    }
}


class FakeSession:
    """Serves canned provider payloads keyed by the query function."""

    def __init__(self, payloads: dict) -> None:
        self.payloads = payloads
        self.calls: list[str] = []

    def get(self, url, params=None, timeout=None):
        function = params["function"]
        self.calls.append(function)
        response = MagicMock()
        response.raise_for_status.return_value = None
        response.json.return_value = self.payloads.get(function, RATE_LIMIT)
        return response


class FetchStockDataE2ETest(unittest.TestCase):
    def setUp(self):
        quote_cache.clear()
        self.session = FakeSession({})
        client = AlphaVantageClient(api_key="test-key", session=self.session, timeout=2.0)
        app.state.quote_resolver = QuoteResolver(
            quote_cache=quote_cache,
            tiers=build_default_tiers(client),
            history_fetcher=partial(fetch_monthly_history, client),
            cache_ttl_sec=300,
        )
        self.client = TestClient(app)

    def tearDown(self):
        app.state.quote_resolver = None
        quote_cache.clear()

    def test_intraday_scenario_returns_formatted_quote(self):
        self.session.payloads = {
            "TIME_SERIES_INTRADAY": INTRADAY_TCS,
            "TIME_SERIES_MONTHLY": MONTHLY_TCS,
        }

        response = self.client.post("/v1/fetch-stock-data", json={"symbol": "TCS.NSE"})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["symbol"], "TCS")
        self.assertEqual(payload["name"], "TCS Limited")
        self.assertEqual(payload["price"], "4100.00")
        self.assertEqual(payload["previousClose"], "4080.00")
        self.assertEqual(payload["change"], "20.00")
        self.assertEqual(payload["changePercent"], "0.49")
        self.assertEqual(payload["high"], "4105.00")
        self.assertEqual(payload["low"], "4095.00")
        self.assertEqual(payload["source"], "intraday")
        self.assertFalse(payload["stale"])
        self.assertEqual(
            payload["historicalData"],
            [{"month": "Nov 2025", "value": 3950.0}, {"month": "Dec 2025", "value": 4010.5}],
        )
        self.assertTrue(payload["lastUpdate"].endswith("Z"))
        self.assertEqual(self.session.calls, ["TIME_SERIES_INTRADAY", "TIME_SERIES_MONTHLY"])

    def test_all_tiers_rate_limited_without_cache_returns_503(self):
        response = self.client.post("/v1/fetch-stock-data", json={"symbol": "RELIANCE.BSE"})

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json(), UNAVAILABLE)
        self.assertNotIn("price", response.json())
        self.assertEqual(
            self.session.calls,
            ["TIME_SERIES_INTRADAY", "TIME_SERIES_DAILY_ADJUSTED", "GLOBAL_QUOTE"],
        )
        self.assertEqual(response.headers["access-control-allow-origin"], "*")

    def test_second_request_within_ttl_is_byte_identical(self):
        self.session.payloads = {
            "TIME_SERIES_INTRADAY": INTRADAY_TCS,
            "TIME_SERIES_MONTHLY": MONTHLY_TCS,
        }
        with patch("stock_data.services.quote_resolver.time.time", return_value=1700000000.0):
            first = self.client.post("/v1/fetch-stock-data", json={"symbol": "TCS.NSE"})
        self.session.payloads = {}
        calls_after_first = len(self.session.calls)
        with patch("stock_data.services.quote_resolver.time.time", return_value=1700000100.0):
            second = self.client.post("/v1/fetch-stock-data", json={"symbol": "tcs.nse"})

        self.assertEqual(second.status_code, 200)
        self.assertEqual(first.content, second.content)
        self.assertEqual(len(self.session.calls), calls_after_first)

    def test_stale_quote_served_after_ttl_when_provider_fails(self):
        self.session.payloads = {"GLOBAL_QUOTE": {"Global Quote": {"05. price": "250.00", "08. previous close": "245.00"}}}
        with patch("stock_data.services.quote_resolver.time.time", return_value=1700000000.0):
            first = self.client.post("/v1/fetch-stock-data", json={"symbol": "RELIANCE.BSE"})
        self.session.payloads = {}
        with patch("stock_data.services.quote_resolver.time.time", return_value=1700000600.0):
            second = self.client.post("/v1/fetch-stock-data", json={"symbol": "RELIANCE.BSE"})

        self.assertEqual(first.json()["source"], "quote")
        self.assertEqual(first.json()["historicalData"], [])
        self.assertEqual(second.status_code, 200)
        body = second.json()
        self.assertTrue(body["stale"])
        self.assertEqual(body["symbol"], "RELIANCE")
        self.assertEqual(body["price"], "250.00")
        self.assertEqual(body["lastUpdate"], first.json()["lastUpdate"])

    def test_daily_fallback_sets_source(self):
        self.session.payloads = {
            "TIME_SERIES_DAILY_ADJUSTED": {
                "Time Series (Daily)": {
                    "2026-01-02": {"2. high": "12.00", "3. low": "9.00", "4. close": "11.00"},
                    "2026-01-01": {"4. close": "10.00"},
                }
            },
        }

        response = self.client.post("/v1/fetch-stock-data", json={"symbol": "infy.nse"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["source"], "daily")
        self.assertEqual(response.json()["changePercent"], "10.00")
        self.assertNotIn("GLOBAL_QUOTE", self.session.calls)

    def test_missing_symbol_returns_500_without_upstream_calls(self):
        response = self.client.post("/v1/fetch-stock-data", json={})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Symbol is required"})
        self.assertEqual(self.session.calls, [])

    def test_malformed_body_returns_500(self):
        response = self.client.post(
            "/v1/fetch-stock-data",
            content=b"not-json",
            headers={"content-type": "application/json"},
        )

        self.assertEqual(response.status_code, 500)
        self.assertIn("error", response.json())
        self.assertEqual(
            response.headers["access-control-allow-headers"],
            "authorization, x-client-info, apikey, content-type",
        )

    def test_options_preflight_returns_empty_200_with_cors(self):
        response = self.client.options("/v1/fetch-stock-data")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"")
        self.assertEqual(response.headers["access-control-allow-origin"], "*")
        self.assertEqual(self.session.calls, [])

    def test_other_verbs_are_processed_as_quote_requests(self):
        self.session.payloads = {"TIME_SERIES_INTRADAY": INTRADAY_TCS}

        response = self.client.request("PUT", "/v1/fetch-stock-data", json={"symbol": "TCS.NSE"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["price"], "4100.00")

    def test_unexpected_exception_returns_500_with_message(self):
        resolver = MagicMock()
        resolver.resolve.side_effect = RuntimeError("boom")
        app.state.quote_resolver = resolver

        response = self.client.post("/v1/fetch-stock-data", json={"symbol": "TCS.NSE"})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "boom"})

    def test_quote_path_and_metrics(self):
        self.session.payloads = {"TIME_SERIES_INTRADAY": INTRADAY_TCS}

        response = self.client.get("/v1/quotes/tcs.nse")
        metrics = self.client.get("/v1/metrics/quote").json()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["symbol"], "TCS")
        self.assertEqual(metrics["cached_symbols"], 1)
        self.assertEqual(metrics["requests"], 1)
        self.assertEqual(metrics["tier_hits"]["intraday"], 1)
        self.assertEqual(metrics["history_fetches"], 1)

    def test_symbol_of_only_quote_characters_returns_500_without_upstream_calls(self):
        for raw in ['""', "''"]:
            response = self.client.post("/v1/fetch-stock-data", json={"symbol": raw})

            self.assertEqual(response.status_code, 500)
            self.assertEqual(response.json(), {"error": "Symbol is required"})
        self.assertEqual(self.session.calls, [])

    def test_head_is_processed_as_quote_request(self):
        self.session.payloads = {"TIME_SERIES_INTRADAY": INTRADAY_TCS}

        response = self.client.request("HEAD", "/v1/fetch-stock-data", json={"symbol": "TCS.NSE"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["access-control-allow-origin"], "*")
        self.assertEqual(self.session.calls[0], "TIME_SERIES_INTRADAY")

    def test_metrics_with_cache_exposing_only_get_and_put(self):
        class MinimalCache:
            def __init__(self):
                self.rows = {}

            def get(self, key):
                return self.rows.get(key)

            def put(self, key, quote, timestamp):
                self.rows[key] = CacheEntry(quote=quote, inserted_at=timestamp)

        self.session.payloads = {"TIME_SERIES_INTRADAY": INTRADAY_TCS}
        resolver = app.state.quote_resolver
        resolver.quote_cache = MinimalCache()

        self.assertEqual(self.client.get("/v1/quotes/TCS.NSE").status_code, 200)
        response = self.client.get("/v1/metrics/quote")

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["cached_symbols"])
        self.assertEqual(response.json()["requests"], 1)


if __name__ == "__main__":
    unittest.main()
