from __future__ import annotations

from forecastlens.models.prediction import (
    HORIZONS,
    Horizon,
    HorizonClass,
    Inference,
    Prediction,
)
from forecastlens.models.result import Err, FetchErrorKind, JobStatus, Ok, job_status

__all__ = [
    # prediction
    "HorizonClass",
    "Horizon",
    "HORIZONS",
    "Inference",
    "Prediction",
    # result
    "Ok",
    "Err",
    "FetchErrorKind",
    "JobStatus",
    "job_status",
]
