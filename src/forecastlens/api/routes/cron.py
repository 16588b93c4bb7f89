"""Scheduled trigger endpoints for ingestion and scoring."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from forecastlens.api.auth import require_trigger_auth
from forecastlens.api.deps import get_ingestion_job, get_scoring_job
from forecastlens.jobs.ingestion import IngestionJob
from forecastlens.jobs.scoring import ScoringJob
from forecastlens.models.result import JobStatus

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_trigger_auth)])

STATUS_CODES = {
    JobStatus.SUCCESS: 200,
    JobStatus.PARTIAL: 207,
    JobStatus.FAILED: 500,
}


def summary_response(summary) -> JSONResponse:
    """Map a job summary onto 200 / 207 / 500 with the summary as body."""
    return JSONResponse(status_code=STATUS_CODES[summary.status], content=summary.to_dict())


@router.post("/cron/update-predictions")
def update_predictions(job: IngestionJob = Depends(get_ingestion_job)) -> JSONResponse:
    """Fetch the latest inference per horizon and persist new predictions."""
    summary = job.run()
    return summary_response(summary)


@router.post("/cron/update-accuracy")
def update_accuracy(job: ScoringJob = Depends(get_scoring_job)) -> JSONResponse:
    """Score every mature, unscored prediction against the realized price."""
    try:
        summary = job.run()
    except Exception as e:
        logger.exception("Scoring run failed before processing any rows")
        return JSONResponse(
            status_code=500,
            content={
                "status": JobStatus.FAILED.value,
                "message": f"Error processing accuracy updates: {type(e).__name__}: {e}",
            },
        )
    return summary_response(summary)
