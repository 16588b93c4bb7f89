"""Prediction read endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from forecastlens.api.deps import get_store
from forecastlens.models.prediction import HORIZONS
from forecastlens.registry.queries import PredictionStore

router = APIRouter()


@router.get("/predictions/latest")
def get_latest_predictions(store: PredictionStore = Depends(get_store)) -> dict:
    """Most recently created prediction for each horizon, keyed by horizon class."""
    latest = {}
    for horizon in HORIZONS:
        prediction = store.find_latest_by_type(horizon.horizon_class)
        latest[horizon.horizon_class.value] = prediction.to_dict() if prediction else None
    return {"predictions": latest}
