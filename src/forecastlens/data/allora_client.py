"""Allora network client for BTC price inferences.

One request per horizon against the consumer price endpoint. Upstream values
arrive either as decimal strings ("103677.444932") or as fixed-point integers
scaled by 1e8; both are normalized to a two-place decimal string.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import httpx

from forecastlens.config import AppConfig
from forecastlens.errors import ConfigurationError
from forecastlens.models.prediction import Horizon, Inference
from forecastlens.models.result import Err, FetchErrorKind, Ok

logger = logging.getLogger(__name__)

ALLORA_BASE = "https://api.allora.network/v2"
ASSET = "BTC"
SIGNATURE_FORMAT = "ethereum-11155111"

CHAIN_IDS = {
    "testnet": "allora-testnet-1",
    "mainnet": "allora-mainnet-1",
}

FIXED_POINT_SCALE = Decimal(10) ** 8
CENT = Decimal("0.01")


def normalize_value(value: str | int | float) -> str:
    """Normalize an upstream numeric value to a two-place decimal string.

    A value whose text contains a decimal point is taken as already scaled;
    anything else is a fixed-point integer divided by 1e8. The check is a
    heuristic on the textual form, not a contract published upstream.
    Raises InvalidOperation for non-numeric input.
    """
    text = str(value).strip()
    amount = Decimal(text)
    if "." not in text:
        amount = amount / FIXED_POINT_SCALE
    if not amount.is_finite():
        raise InvalidOperation(f"non-finite value {text!r}")
    return str(amount.quantize(CENT, rounding=ROUND_HALF_UP))


class AlloraClient:
    """Fetches the latest network inference for each forecast horizon."""

    def __init__(
        self,
        api_key: str,
        chain_slug: str,
        base_url: str = ALLORA_BASE,
        timeout: float = 30.0,
        http: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("Allora API key (ALLORA_API_KEY) is not configured")
        slug = (chain_slug or "").strip().lower()
        if slug not in CHAIN_IDS:
            raise ConfigurationError(
                f"ALLORA_CHAIN_SLUG must be one of {sorted(CHAIN_IDS)}, got {chain_slug!r}"
            )
        self._api_key = api_key
        self._chain_id = CHAIN_IDS[slug]
        self._base_url = base_url.rstrip("/")
        self._http = http or httpx.Client(timeout=timeout)

    @classmethod
    def from_config(cls, config: AppConfig) -> AlloraClient:
        return cls(
            api_key=config.allora_api_key,
            chain_slug=config.allora_chain_slug,
            base_url=config.allora_base_url,
            timeout=config.http_timeout_seconds,
        )

    @property
    def chain_id(self) -> str:
        return self._chain_id

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> AlloraClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _url(self, horizon: Horizon) -> str:
        return (
            f"{self._base_url}/allora/{self._chain_id}/consumer/price/"
            f"{SIGNATURE_FORMAT}/{ASSET}/{horizon.timeframe}"
        )

    def get_inference(self, horizon: Horizon) -> Ok[Inference] | Err:
        """Latest BTC price inference for ``horizon``."""
        logger.info("Fetching BTC price inference for timeframe %s", horizon.timeframe)
        try:
            response = self._http.get(
                self._url(horizon),
                headers={"x-api-key": self._api_key, "Accept": "application/json"},
            )
        except httpx.TransportError as e:
            return Err(
                FetchErrorKind.UPSTREAM_UNAVAILABLE,
                f"Allora request failed for {horizon.timeframe}: {e}",
            )

        if not response.is_success:
            return Err(
                FetchErrorKind.UPSTREAM_UNAVAILABLE,
                f"Allora returned {response.status_code} for {horizon.timeframe}: "
                f"{response.text[:200]}",
            )

        try:
            body = response.json()
        except ValueError as e:
            return Err(FetchErrorKind.MALFORMED_RESPONSE, f"Allora body is not JSON: {e}")

        data = body.get("data") if isinstance(body, dict) else None
        inference_data = data.get("inference_data") if isinstance(data, dict) else None
        if not inference_data:
            logger.warning("No inference data received for timeframe %s", horizon.timeframe)
            return Err(
                FetchErrorKind.NO_DATA,
                f"No inference data for timeframe {horizon.timeframe}",
            )

        return self._parse_inference(inference_data, horizon)

    @staticmethod
    def _parse_inference(inference_data: dict, horizon: Horizon) -> Ok[Inference] | Err:
        raw_estimate = inference_data.get("network_inference")
        if raw_estimate is None:
            return Err(
                FetchErrorKind.MALFORMED_RESPONSE,
                f"Inference for {horizon.timeframe} has no network_inference",
            )

        ci_values = inference_data.get("confidence_interval_values") or []
        try:
            point_estimate = normalize_value(raw_estimate)
            lower = normalize_value(ci_values[0]) if ci_values else None
            upper = normalize_value(ci_values[-1]) if ci_values else None
        except (InvalidOperation, ValueError, TypeError) as e:
            return Err(
                FetchErrorKind.MALFORMED_RESPONSE,
                f"Unparsable inference value for {horizon.timeframe}: {e!r}",
            )

        logger.debug(
            "Normalized prediction value: %s (original: %s)", point_estimate, raw_estimate
        )
        timestamp = inference_data.get("timestamp")
        return Ok(
            Inference(
                point_estimate=point_estimate,
                confidence_lower=lower,
                confidence_upper=upper,
                raw_payload=dict(inference_data),
                timestamp=int(timestamp) if isinstance(timestamp, (int, float)) else None,
            )
        )
