"""CoinGecko client tests against an in-process httpx transport."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

import httpx
import pytest

from forecastlens.data.coingecko_client import CoinGeckoClient, nearest_price
from forecastlens.models.result import Err, FetchErrorKind, Ok

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)
PAST = NOW - timedelta(hours=2)
PAST_MS = int(PAST.timestamp() * 1000)

CURRENT = {"bitcoin": {"usd": 91234.5}}


def _client(handler, **kwargs) -> CoinGeckoClient:
    return CoinGeckoClient(http=httpx.Client(transport=httpx.MockTransport(handler)), **kwargs)


class Router:
    """Serves canned responses per path and records every request."""

    def __init__(self, current=None, history=None) -> None:
        self.current = current or [httpx.Response(200, json=CURRENT)]
        self.history = history or []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.current if request.url.path.endswith("/simple/price") else self.history
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def paths(self) -> list[str]:
        return [r.url.path.rsplit("/", 1)[-1] for r in self.requests]


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("forecastlens.data.coingecko_client.time.sleep") as sleep:
        yield sleep


class TestNearestPrice:
    def test_picks_closest(self) -> None:
        points = [[1000, 1.0], [2000, 2.0], [3000, 3.0]]
        assert nearest_price(points, 2400) == Decimal("2.0")

    def test_tie_goes_to_first(self) -> None:
        assert nearest_price([[1000, 1.0], [3000, 3.0]], 2000) == Decimal("1.0")

    def test_empty_raises(self) -> None:
        with pytest.raises(ValueError):
            nearest_price([], 0)


class TestCurrentPrice:
    def test_parses_price_and_sends_key(self) -> None:
        router = Router()
        result = _client(router, api_key="CG-1").get_current_price()
        assert result == Ok(Decimal("91234.5"))
        req = router.requests[0]
        assert req.headers["x-cg-pro-api-key"] == "CG-1"
        assert req.url.params["ids"] == "bitcoin"
        assert req.url.params["vs_currencies"] == "usd"

    def test_no_key_header_without_key(self) -> None:
        router = Router()
        _client(router).get_current_price()
        assert "x-cg-pro-api-key" not in router.requests[0].headers

    def test_malformed(self) -> None:
        router = Router(current=[httpx.Response(200, json={"ethereum": {}})])
        result = _client(router).get_current_price()
        assert isinstance(result, Err)
        assert result.kind == FetchErrorKind.MALFORMED_RESPONSE

    def test_server_error(self) -> None:
        router = Router(current=[httpx.Response(503)])
        result = _client(router).get_current_price()
        assert result.kind == FetchErrorKind.UPSTREAM_UNAVAILABLE


class TestRetry:
    def test_429_retried_then_succeeds(self, no_sleep) -> None:
        router = Router(current=[httpx.Response(429), httpx.Response(429), httpx.Response(200, json=CURRENT)])
        result = _client(router).get_current_price()
        assert isinstance(result, Ok)
        assert len(router.requests) == 3
        assert no_sleep.call_count == 2

    def test_429_gives_up_after_three_retries(self, no_sleep) -> None:
        router = Router(current=[httpx.Response(429)])
        result = _client(router).get_current_price()
        assert result.kind == FetchErrorKind.UPSTREAM_UNAVAILABLE
        assert len(router.requests) == 4
        assert no_sleep.call_count == 3
        no_sleep.assert_called_with(1.0)

    def test_transport_error_retried(self) -> None:
        router = Router(current=[httpx.ConnectError("down"), httpx.Response(200, json=CURRENT)])
        assert isinstance(_client(router).get_current_price(), Ok)
        assert len(router.requests) == 2

    def test_transport_error_exhausted(self) -> None:
        router = Router(current=[httpx.ConnectError("down")])
        result = _client(router, max_retries=1).get_current_price()
        assert result.kind == FetchErrorKind.UPSTREAM_UNAVAILABLE
        assert len(router.requests) == 2

    def test_other_errors_not_retried(self) -> None:
        router = Router(current=[httpx.Response(500)])
        _client(router).get_current_price()
        assert len(router.requests) == 1


class TestFetchPriceAt:
    def test_near_present_uses_current_price(self) -> None:
        router = Router()
        result = _client(router).fetch_price_at(NOW - timedelta(seconds=30), now=NOW)
        assert result == Ok(Decimal("91234.5"))
        assert router.paths() == ["price"]

    def test_future_target_uses_current_price(self) -> None:
        router = Router()
        _client(router).fetch_price_at(NOW + timedelta(minutes=5), now=NOW)
        assert router.paths() == ["price"]

    def test_historical_nearest_point(self) -> None:
        history = {"prices": [[PAST_MS - 40_000, 90000.0], [PAST_MS + 5_000, 90100.0], [PAST_MS + 50_000, 90200.0]]}
        router = Router(history=[httpx.Response(200, json=history)])
        result = _client(router).fetch_price_at(PAST, now=NOW)
        assert result == Ok(Decimal("90100.0"))

        params = router.requests[0].url.params
        assert router.paths() == ["range"]
        assert params["vs_currency"] == "usd"
        assert int(params["from"]) == int(PAST.timestamp()) - 60
        assert int(params["to"]) == int(PAST.timestamp()) + 60

    def test_empty_range_falls_back_to_current(self) -> None:
        router = Router(history=[httpx.Response(200, json={"prices": []})])
        result = _client(router).fetch_price_at(PAST, now=NOW)
        assert result == Ok(Decimal("91234.5"))
        assert router.paths() == ["range", "price"]

    def test_empty_range_and_failed_fallback_is_no_data(self) -> None:
        router = Router(
            current=[httpx.Response(500)],
            history=[httpx.Response(200, json={"prices": []})],
        )
        result = _client(router).fetch_price_at(PAST, now=NOW)
        assert result.kind == FetchErrorKind.NO_DATA

    def test_client_error_falls_back_to_current(self) -> None:
        router = Router(history=[httpx.Response(400, json={"error": "range too old"})])
        result = _client(router).fetch_price_at(PAST, now=NOW)
        assert result == Ok(Decimal("91234.5"))

    def test_non_finite_point_is_malformed(self) -> None:
        body = b'{"prices": [[' + str(PAST_MS).encode() + b', NaN]]}'
        router = Router(history=[httpx.Response(200, content=body, headers={"Content-Type": "application/json"})])
        result = _client(router).fetch_price_at(PAST, now=NOW)
        assert isinstance(result, Err)
        assert result.kind == FetchErrorKind.MALFORMED_RESPONSE
        assert "Non-finite" in result.message

    def test_missing_prices_key_is_malformed(self) -> None:
        router = Router(history=[httpx.Response(200, json={"market_caps": []})])
        result = _client(router).fetch_price_at(PAST, now=NOW)
        assert result.kind == FetchErrorKind.MALFORMED_RESPONSE

    def test_rate_limited_history_is_unavailable(self) -> None:
        router = Router(history=[httpx.Response(429)])
        result = _client(router).fetch_price_at(PAST, now=NOW)
        assert result.kind == FetchErrorKind.UPSTREAM_UNAVAILABLE
        assert router.paths() == ["range"] * 4

    def test_naive_target_treated_as_utc(self) -> None:
        router = Router(history=[httpx.Response(200, json={"prices": [[PAST_MS, 1.5]]})])
        result = _client(router).fetch_price_at(PAST.replace(tzinfo=None), now=NOW)
        assert result == Ok(Decimal("1.5"))
