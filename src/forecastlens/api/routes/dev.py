"""Development-only inspection and maintenance endpoints.

Every route here answers 403 when ``APP_ENV`` is ``production``.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException

from forecastlens.api.deps import get_coingecko_client, get_config, get_ingestion_job, get_store
from forecastlens.api.routes.cron import summary_response
from forecastlens.config import AppConfig
from forecastlens.data.coingecko_client import CoinGeckoClient
from forecastlens.jobs.ingestion import IngestionJob
from forecastlens.models.result import Err
from forecastlens.registry.queries import PredictionStore

logger = logging.getLogger(__name__)


def require_development(config: AppConfig = Depends(get_config)) -> None:
    if config.is_production:
        raise HTTPException(status_code=403, detail="Not available in production")


router = APIRouter(prefix="/dev", dependencies=[Depends(require_development)])


@router.get("/check-predictions")
def check_predictions(store: PredictionStore = Depends(get_store)) -> dict:
    """The five most recently created predictions."""
    recent = store.get_recent(limit=5)
    return {"count": len(recent), "predictions": [p.to_dict() for p in recent]}


@router.post("/clear-predictions")
def clear_predictions(store: PredictionStore = Depends(get_store)) -> dict:
    deleted = store.purge_all()
    logger.warning("Development purge removed %d predictions", deleted)
    return {"deleted": deleted}


@router.post("/trigger-prediction-fetch")
def trigger_prediction_fetch(job: IngestionJob = Depends(get_ingestion_job)):
    """Run ingestion immediately, bypassing trigger authentication."""
    return summary_response(job.run())


@router.get("/test-ground-truth")
def test_ground_truth(client: CoinGeckoClient = Depends(get_coingecko_client)) -> dict:
    """Fetch the BTC/USD price one hour ago to exercise the ground-truth path."""
    now = datetime.now(UTC).replace(microsecond=0)
    target = now - timedelta(hours=1)
    result = client.fetch_price_at(target, now=now)
    if isinstance(result, Err):
        raise HTTPException(
            status_code=502, detail=f"{result.kind.value}: {result.message}",
        )
    return {"targetTime": target.isoformat(), "price": float(result.value)}
