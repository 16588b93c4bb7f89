"""Dependency injection for the FastAPI application."""

from __future__ import annotations

from forecastlens.config import AppConfig
from forecastlens.data.allora_client import AlloraClient
from forecastlens.data.coingecko_client import CoinGeckoClient
from forecastlens.errors import ConfigurationError
from forecastlens.jobs.ingestion import IngestionJob
from forecastlens.jobs.metrics import MetricsAggregator
from forecastlens.jobs.scoring import ScoringJob
from forecastlens.registry.db import Database
from forecastlens.registry.queries import PredictionStore


class AppState:
    """Holds shared application state initialised during lifespan."""

    def __init__(self) -> None:
        self.config: AppConfig | None = None
        self.db: Database | None = None
        self.store: PredictionStore | None = None
        self.allora: AlloraClient | None = None
        self.allora_error: str | None = None
        self.coingecko: CoinGeckoClient | None = None

    def reset(self) -> None:
        self.__init__()


app_state = AppState()


def get_config() -> AppConfig:
    if app_state.config is None:
        raise RuntimeError("Config not initialised")
    return app_state.config


def get_store() -> PredictionStore:
    if app_state.store is None:
        raise RuntimeError("PredictionStore not initialised")
    return app_state.store


def get_allora_client() -> AlloraClient:
    if app_state.allora is None:
        raise ConfigurationError(app_state.allora_error or "Allora client not configured")
    return app_state.allora


def get_coingecko_client() -> CoinGeckoClient:
    if app_state.coingecko is None:
        raise RuntimeError("CoinGeckoClient not initialised")
    return app_state.coingecko


def get_ingestion_job() -> IngestionJob:
    return IngestionJob(get_store(), get_allora_client())


def get_scoring_job() -> ScoringJob:
    return ScoringJob(get_store(), get_coingecko_client())


def get_metrics_aggregator() -> MetricsAggregator:
    return MetricsAggregator(get_store())
