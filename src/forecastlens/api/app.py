"""FastAPI application factory with CORS, error mapping, and lifespan management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from forecastlens.api.deps import app_state
from forecastlens.config import load_config
from forecastlens.data.allora_client import AlloraClient
from forecastlens.data.coingecko_client import CoinGeckoClient
from forecastlens.errors import ConfigurationError
from forecastlens.models.result import JobStatus
from forecastlens.registry.db import Database
from forecastlens.registry.queries import PredictionStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup/shutdown of the database and upstream HTTP clients."""
    config = load_config()

    # Database
    db = Database(config.db_dsn)
    db.connect()
    store = PredictionStore(db)

    # Upstream clients. A misconfigured forecast source must not take down
    # the read endpoints; the trigger reports it as a 500 instead.
    allora: AlloraClient | None = None
    try:
        allora = AlloraClient.from_config(config)
    except ConfigurationError as e:
        logger.error("Forecast source not configured: %s", e)
        app_state.allora_error = str(e)
    coingecko = CoinGeckoClient.from_config(config)

    app_state.config = config
    app_state.db = db
    app_state.store = store
    app_state.allora = allora
    app_state.coingecko = coingecko

    logger.info("API started (env=%s)", config.app_env)
    yield

    if allora is not None:
        allora.close()
    coingecko.close()
    db.close()
    app_state.reset()
    logger.info("API shutdown complete")


async def _configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"status": JobStatus.FAILED.value, "message": f"Configuration error: {exc}"},
    )


def create_app(*, use_lifespan: bool = True, allowed_origins: list[str] | None = None) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        use_lifespan: If False, skip the production lifespan (useful for testing
            where deps are injected via app_state directly).
        allowed_origins: CORS origins. Defaults to ``ALLOWED_ORIGINS`` from the
            environment.
    """
    app = FastAPI(
        title="ForecastLens API",
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )

    if allowed_origins is None:
        allowed_origins = list(load_config().allowed_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ConfigurationError, _configuration_error_handler)

    # Import and mount route modules
    from forecastlens.api.routes import cron, dev, metrics, predictions, system

    prefix = "/api/forecast"
    app.include_router(cron.router, prefix=prefix, tags=["cron"])
    app.include_router(metrics.router, prefix=prefix, tags=["metrics"])
    app.include_router(predictions.router, prefix=prefix, tags=["predictions"])
    app.include_router(system.router, prefix=prefix, tags=["system"])
    app.include_router(dev.router, prefix=prefix, tags=["dev"])

    return app
