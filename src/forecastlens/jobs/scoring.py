from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import StrEnum

from forecastlens.accuracy import accuracy_score
from forecastlens.data.coingecko_client import CoinGeckoClient
from forecastlens.models.prediction import Prediction
from forecastlens.models.result import Err, JobStatus, job_status
from forecastlens.registry.queries import PredictionStore

logger = logging.getLogger(__name__)


class RowOutcome(StrEnum):
    SCORED = "scored"
    ALREADY_SCORED = "already_scored"


@dataclass
class RowError:
    prediction_id: str
    message: str


@dataclass
class ScoringSummary:
    run_at: datetime
    candidates: int = 0
    updated: int = 0
    already_scored: int = 0
    errors: list[RowError] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def status(self) -> JobStatus:
        return job_status(self.updated + self.already_scored, self.failed)

    @property
    def message(self) -> str:
        if self.candidates == 0:
            return "No mature predictions to update."
        message = (
            f"Accuracy update processing completed. "
            f"Predictions updated: {self.updated}, Predictions failed: {self.failed}."
        )
        if self.already_scored:
            message += f" Already scored by another run: {self.already_scored}."
        return message

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "message": self.message,
            "runAt": self.run_at.isoformat(),
            "candidates": self.candidates,
            "updated": self.updated,
            "alreadyScored": self.already_scored,
            "failed": self.failed,
            "errors": [
                {"predictionId": e.prediction_id, "error": e.message} for e in self.errors
            ],
        }


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ScoringJob:
    """Scores mature predictions against realized prices.

    Each row is handled in isolation: a failure is recorded in the summary
    and the batch moves on. Rows left unscored by a failed or interrupted
    run are picked up by the next one.
    """

    def __init__(
        self,
        store: PredictionStore,
        fetcher: CoinGeckoClient,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._clock = clock or (lambda: datetime.now(UTC))

    def run(self, now: datetime | None = None) -> ScoringSummary:
        """Find mature unscored predictions and score them.

        A failure of the candidate query itself propagates; it is a job-level
        store error, not a per-row one.
        """
        run_at = _as_utc(now or self._clock())
        candidates = self._store.find_mature_unscored(run_at)
        if candidates:
            logger.info("Found %d mature predictions to score", len(candidates))
        return self.score(candidates, run_at)

    def score(self, candidates: Iterable[Prediction], now: datetime) -> ScoringSummary:
        now = _as_utc(now)
        summary = ScoringSummary(run_at=now)

        for prediction in candidates:
            summary.candidates += 1
            pid = prediction.id or "<unsaved>"
            try:
                outcome = self._score_one(prediction, now)
            except Exception as e:
                logger.exception("Unexpected error scoring prediction %s", pid)
                outcome = RowError(
                    pid, f"Unexpected error processing prediction ID {pid}: {type(e).__name__}: {e}"
                )

            if isinstance(outcome, RowError):
                logger.warning("Scoring skipped: %s", outcome.message)
                summary.errors.append(outcome)
            elif outcome == RowOutcome.ALREADY_SCORED:
                summary.already_scored += 1
            else:
                summary.updated += 1

        log = logger.info if summary.status == JobStatus.SUCCESS else logger.warning
        log("Scoring run %s: %s", now.isoformat(), summary.message)
        return summary

    def _score_one(self, prediction: Prediction, now: datetime) -> RowOutcome | RowError:
        """Score a single row.

        A row that another run scored first is reported as ALREADY_SCORED, not
        as an error: overlapping runs are idempotent.
        """
        pid = prediction.id
        maturity = _as_utc(prediction.maturity_time)

        if maturity > now:
            return RowError(
                pid,
                f"Prediction ID {pid} has a future maturity time ({maturity.isoformat()}) "
                f"and was skipped",
            )

        price = self._fetcher.fetch_price_at(maturity, now=now)
        if isinstance(price, Err):
            return RowError(
                pid,
                f"Failed to fetch price for prediction ID {pid} "
                f"(maturity {maturity.isoformat()}): {price.kind.value}: {price.message}",
            )
        actual = price.value

        try:
            predicted = Decimal(str(prediction.predicted_value))
        except (InvalidOperation, ValueError):
            predicted = None
        if predicted is None or not predicted.is_finite():
            return RowError(
                pid,
                f"Invalid predicted_value for prediction ID {pid}: {prediction.predicted_value!r}",
            )

        score = accuracy_score(actual, predicted)

        try:
            updated = self._store.update_score(pid, actual, score)
        except Exception as e:
            logger.exception("Store update failed for prediction %s", pid)
            return RowError(
                pid, f"Failed to update accuracy for prediction ID {pid}: {type(e).__name__}: {e}"
            )
        if updated is None:
            return self._explain_missed_update(prediction)

        logger.info(
            "Scored prediction %s: actual=%s predicted=%s accuracy=%s%%",
            pid, actual, predicted, score,
        )
        return RowOutcome.SCORED

    def _explain_missed_update(self, prediction: Prediction) -> RowOutcome | RowError:
        # The guarded UPDATE matched nothing: either the row is gone or it is
        # already scored. (horizon_class, maturity_time) is unique, so this
        # lookup finds the same row.
        pid = prediction.id
        current = self._store.find_by_horizon_and_maturity(
            prediction.horizon_class, prediction.maturity_time
        )
        if current is None or current.id != pid:
            return RowError(pid, f"Failed to update prediction ID {pid}: record not found")
        if current.is_scored:
            logger.info("Prediction %s already scored by another run", pid)
            return RowOutcome.ALREADY_SCORED
        return RowError(pid, f"Failed to update prediction ID {pid}: update did not apply")
