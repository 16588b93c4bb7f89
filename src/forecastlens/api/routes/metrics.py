"""Accuracy metrics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from forecastlens.api.deps import get_metrics_aggregator
from forecastlens.jobs.metrics import MetricsAggregator

router = APIRouter()


@router.get("/metrics/accuracy")
def get_accuracy_metrics(aggregator: MetricsAggregator = Depends(get_metrics_aggregator)) -> dict:
    """Rolling 24h / 7d / 30d accuracy KPIs plus the 30-day daily trend.

    KPIs with no scored predictions in their window are null.
    """
    return aggregator.compute().to_dict()
