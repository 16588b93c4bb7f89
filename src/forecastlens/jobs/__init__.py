from __future__ import annotations

from forecastlens.jobs.ingestion import (
    HorizonOutcome,
    HorizonStatus,
    IngestionJob,
    IngestionSummary,
)
from forecastlens.jobs.metrics import AccuracyMetrics, MetricsAggregator, TrendPoint
from forecastlens.jobs.scoring import RowError, RowOutcome, ScoringJob, ScoringSummary

__all__ = [
    # ingestion
    "IngestionJob",
    "IngestionSummary",
    "HorizonOutcome",
    "HorizonStatus",
    # scoring
    "ScoringJob",
    "ScoringSummary",
    "RowError",
    "RowOutcome",
    # metrics
    "MetricsAggregator",
    "AccuracyMetrics",
    "TrendPoint",
]
