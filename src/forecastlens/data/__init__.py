from __future__ import annotations

from forecastlens.data.allora_client import AlloraClient, normalize_value
from forecastlens.data.coingecko_client import CoinGeckoClient, nearest_price

__all__ = [
    "AlloraClient",
    "CoinGeckoClient",
    "nearest_price",
    "normalize_value",
]
