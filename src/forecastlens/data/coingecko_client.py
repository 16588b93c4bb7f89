"""CoinGecko ground-truth provider for realized BTC/USD prices.

Historical prices come from ``/coins/{id}/market_chart/range`` over a
+/-60 second window around the target instant; the closest point wins.
Targets within a minute of now (or in the future) go straight to
``/simple/price`` because range queries near the present come back empty.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation

import httpx

from forecastlens.config import AppConfig
from forecastlens.models.result import Err, FetchErrorKind, Ok

logger = logging.getLogger(__name__)

COINGECKO_BASE = "https://api.coingecko.com/api/v3"
COIN_ID = "bitcoin"
VS_CURRENCY = "usd"

NEAR_PRESENT = timedelta(seconds=60)
RANGE_HALF_WIDTH = timedelta(seconds=60)
MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 1.0


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def nearest_price(points: list, target_ms: int) -> Decimal:
    """Return the price whose timestamp is closest to ``target_ms``.

    ``points`` is CoinGecko's ``[[timestamp_ms, price], ...]`` list. Ties go
    to the first point encountered. Raises ValueError on an empty list and
    TypeError/ValueError/InvalidOperation on malformed points.
    """
    if not points:
        raise ValueError("no price points")

    closest = None
    smallest_diff: float | None = None
    for point in points:
        ts_ms, price = point[0], point[1]
        diff = abs(float(ts_ms) - target_ms)
        if smallest_diff is None or diff < smallest_diff:
            smallest_diff = diff
            closest = price

    return Decimal(str(closest))


class CoinGeckoClient:
    """Fetches realized BTC prices with bounded retry and current-price fallback."""

    def __init__(
        self,
        api_key: str = "",
        base_url: str = COINGECKO_BASE,
        timeout: float = 30.0,
        http: httpx.Client | None = None,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["x-cg-pro-api-key"] = api_key
        self._base_url = base_url.rstrip("/")
        self._headers = headers
        self._http = http or httpx.Client(timeout=timeout)
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    @classmethod
    def from_config(cls, config: AppConfig) -> CoinGeckoClient:
        return cls(
            api_key=config.coingecko_api_key,
            base_url=config.coingecko_base_url,
            timeout=config.http_timeout_seconds,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> CoinGeckoClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _get(self, path: str, params: dict) -> httpx.Response:
        """GET with retry on HTTP 429 and transport failures.

        Makes at most ``1 + max_retries`` attempts with a fixed delay between
        them. Returns the last response (possibly a 429) or re-raises the last
        transport error once retries are exhausted.
        """
        url = f"{self._base_url}{path}"
        for attempt in range(self._max_retries + 1):
            retries_left = self._max_retries - attempt
            try:
                response = self._http.get(url, params=params, headers=self._headers)
            except httpx.TransportError as e:
                if retries_left <= 0:
                    raise
                logger.warning(
                    "CoinGecko request failed (%s). Retrying in %.1fs (%d retries left)",
                    e, self._retry_delay, retries_left,
                )
                time.sleep(self._retry_delay)
                continue

            if response.status_code == 429 and retries_left > 0:
                logger.warning(
                    "CoinGecko rate limit exceeded. Retrying in %.1fs (%d retries left)",
                    self._retry_delay, retries_left,
                )
                time.sleep(self._retry_delay)
                continue
            return response

        raise AssertionError("unreachable")  # pragma: no cover

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def get_current_price(self) -> Ok[Decimal] | Err:
        """Current BTC/USD price from ``/simple/price``."""
        try:
            response = self._get(
                "/simple/price", {"ids": COIN_ID, "vs_currencies": VS_CURRENCY}
            )
        except httpx.TransportError as e:
            return Err(
                FetchErrorKind.UPSTREAM_UNAVAILABLE,
                f"Current price request failed after {self._max_retries} retries: {e}",
            )

        if response.status_code == 429:
            return Err(
                FetchErrorKind.UPSTREAM_UNAVAILABLE,
                f"CoinGecko rate limit exceeded after {self._max_retries} retries",
            )
        if not response.is_success:
            return Err(
                FetchErrorKind.UPSTREAM_UNAVAILABLE,
                f"Failed to fetch current price. Status: {response.status_code}",
            )

        try:
            price = Decimal(str(response.json()[COIN_ID][VS_CURRENCY]))
        except (ValueError, KeyError, TypeError, InvalidOperation) as e:
            return Err(
                FetchErrorKind.MALFORMED_RESPONSE,
                f"Unexpected current price payload: {e!r}",
            )
        if not price.is_finite():
            return Err(FetchErrorKind.MALFORMED_RESPONSE, f"Non-finite current price: {price}")
        return Ok(price)

    def fetch_price_at(
        self, target: datetime, now: datetime | None = None
    ) -> Ok[Decimal] | Err:
        """Realized price at ``target``.

        Uses the current price when ``target`` is within a minute of ``now`` or
        later; otherwise the nearest point of a +/-60s historical range, falling
        back to the current price when the range query is rejected or empty.
        """
        target = _as_utc(target)
        now = _as_utc(now) if now is not None else datetime.now(UTC)

        if target > now - NEAR_PRESENT:
            logger.info("Using current price for near-present target %s", target.isoformat())
            return self.get_current_price()

        return self._fetch_historical(target)

    def _fetch_historical(self, target: datetime) -> Ok[Decimal] | Err:
        start = target - RANGE_HALF_WIDTH
        end = target + RANGE_HALF_WIDTH
        params = {
            "vs_currency": VS_CURRENCY,
            "from": int(start.timestamp()),
            "to": int(end.timestamp()),
        }
        logger.debug("Fetching historical BTC price around %s", target.isoformat())

        try:
            response = self._get(f"/coins/{COIN_ID}/market_chart/range", params)
        except httpx.TransportError as e:
            return Err(
                FetchErrorKind.UPSTREAM_UNAVAILABLE,
                f"Historical price request failed after {self._max_retries} retries: {e}",
            )

        if response.status_code == 429:
            return Err(
                FetchErrorKind.UPSTREAM_UNAVAILABLE,
                f"CoinGecko rate limit exceeded after {self._max_retries} retries",
            )
        if response.is_client_error:
            logger.info(
                "Historical range rejected (status %d) for %s, falling back to current price",
                response.status_code, target.isoformat(),
            )
            return self.get_current_price()
        if not response.is_success:
            return Err(
                FetchErrorKind.UPSTREAM_UNAVAILABLE,
                f"CoinGecko range request failed with status {response.status_code}",
            )

        try:
            data = response.json()
            points = data["prices"]
        except (ValueError, KeyError, TypeError) as e:
            return Err(
                FetchErrorKind.MALFORMED_RESPONSE,
                f"Unexpected market chart payload: {e!r}",
            )
        if not isinstance(points, list):
            return Err(FetchErrorKind.MALFORMED_RESPONSE, "market chart 'prices' is not a list")

        if not points:
            logger.info(
                "No price points around %s, falling back to current price", target.isoformat()
            )
            fallback = self.get_current_price()
            if isinstance(fallback, Err):
                return Err(
                    FetchErrorKind.NO_DATA,
                    f"No price data in range for {target.isoformat()} "
                    f"and current price fallback failed: {fallback.message}",
                )
            return fallback

        target_ms = int(target.timestamp() * 1000)
        try:
            price = nearest_price(points, target_ms)
        except (ValueError, TypeError, IndexError, InvalidOperation) as e:
            return Err(FetchErrorKind.MALFORMED_RESPONSE, f"Malformed price point: {e!r}")
        if not price.is_finite():
            return Err(FetchErrorKind.MALFORMED_RESPONSE, f"Non-finite historical price: {price}")

        logger.debug("Closest BTC price to %s: %s", target.isoformat(), price)
        return Ok(price)
