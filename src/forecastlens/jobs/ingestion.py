"""Ingestion job: fetch the latest inference per horizon and store it once.

A run takes a single UTC "now" (whole seconds) and derives every maturity time
from it, so horizons processed a few hundred milliseconds apart still land on
consistent instants and a rerun within the same second is a dedup no-op.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from forecastlens.data.allora_client import AlloraClient
from forecastlens.errors import ConfigurationError
from forecastlens.models.prediction import HORIZONS, Horizon, HorizonClass, Prediction
from forecastlens.models.result import Err, JobStatus, job_status
from forecastlens.registry.queries import PredictionStore

logger = logging.getLogger(__name__)


class HorizonStatus(StrEnum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass
class HorizonOutcome:
    horizon_class: HorizonClass
    status: HorizonStatus
    message: str = ""
    prediction_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status != HorizonStatus.FAILED


@dataclass
class IngestionSummary:
    run_at: datetime
    outcomes: list[HorizonOutcome] = field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(1 for o in self.outcomes if o.status == HorizonStatus.CREATED)

    @property
    def duplicates(self) -> int:
        return sum(1 for o in self.outcomes if o.status == HorizonStatus.DUPLICATE)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == HorizonStatus.FAILED)

    @property
    def status(self) -> JobStatus:
        if not self.outcomes:
            return JobStatus.FAILED
        return job_status(self.created + self.duplicates, self.failed)

    @property
    def message(self) -> str:
        if not self.outcomes:
            return "No forecast horizons configured or processed."
        if self.failed == 0:
            return (
                f"All predictions fetched and stored successfully "
                f"(created={self.created}, duplicates={self.duplicates})."
            )
        errors = "; ".join(o.message for o in self.outcomes if not o.succeeded)
        return f"Some predictions failed: {errors}"

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "message": self.message,
            "runAt": self.run_at.isoformat(),
            "created": self.created,
            "duplicates": self.duplicates,
            "failed": self.failed,
            "horizons": [
                {
                    "horizonClass": o.horizon_class.value,
                    "status": o.status.value,
                    "message": o.message,
                    "predictionId": o.prediction_id,
                }
                for o in self.outcomes
            ],
        }


def snapshot_now(value: datetime | None = None) -> datetime:
    """UTC instant truncated to whole seconds."""
    value = value or datetime.now(UTC)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).replace(microsecond=0)


class IngestionJob:
    """Fetches one inference per horizon and persists new unscored predictions."""

    def __init__(
        self,
        store: PredictionStore,
        client: AlloraClient,
        horizons: Iterable[Horizon] = HORIZONS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._horizons = tuple(horizons)
        self._clock = clock or (lambda: datetime.now(UTC))

    def run(self, now: datetime | None = None) -> IngestionSummary:
        run_at = snapshot_now(now or self._clock())
        summary = IngestionSummary(run_at=run_at)

        for horizon in self._horizons:
            try:
                outcome = self._process(horizon, run_at)
            except ConfigurationError:
                raise
            except Exception as e:
                logger.exception(
                    "Error fetching or storing %s prediction", horizon.horizon_class.value
                )
                outcome = HorizonOutcome(
                    horizon.horizon_class,
                    HorizonStatus.FAILED,
                    f"{horizon.horizon_class.value}: {type(e).__name__}: {e}",
                )
            summary.outcomes.append(outcome)

        log = logger.info if summary.status == JobStatus.SUCCESS else logger.warning
        log("Ingestion run %s: %s", run_at.isoformat(), summary.message)
        return summary

    def _process(self, horizon: Horizon, run_at: datetime) -> HorizonOutcome:
        label = horizon.horizon_class.value
        result = self._client.get_inference(horizon)
        if isinstance(result, Err):
            logger.warning("Inference fetch failed for %s: %s", label, result.message)
            return HorizonOutcome(
                horizon.horizon_class,
                HorizonStatus.FAILED,
                f"{label}: {result.kind.value}: {result.message}",
            )
        inference = result.value

        maturity_time = run_at + horizon.duration
        existing = self._store.find_by_horizon_and_maturity(horizon.horizon_class, maturity_time)
        if existing is not None:
            logger.info(
                "Prediction already exists for %s maturing at %s", label, maturity_time.isoformat()
            )
            return HorizonOutcome(
                horizon.horizon_class, HorizonStatus.DUPLICATE,
                f"{label}: already stored", existing.id,
            )

        payload = dict(inference.raw_payload)
        payload["timestamp"] = int(run_at.timestamp())

        stored = self._store.insert(
            Prediction(
                horizon_class=horizon.horizon_class,
                predicted_value=inference.point_estimate,
                confidence_lower=inference.confidence_lower,
                confidence_upper=inference.confidence_upper,
                maturity_time=maturity_time,
                raw_source_payload=payload,
                created_at=run_at,
            )
        )
        if stored is None:
            return HorizonOutcome(
                horizon.horizon_class, HorizonStatus.DUPLICATE, f"{label}: stored concurrently"
            )

        logger.info(
            "Stored %s prediction %s: %s maturing at %s",
            label, stored.id, stored.predicted_value, maturity_time.isoformat(),
        )
        return HorizonOutcome(horizon.horizon_class, HorizonStatus.CREATED, "", stored.id)
