from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal

from forecastlens.models.prediction import HorizonClass, Prediction
from forecastlens.registry.db import Database

logger = logging.getLogger(__name__)

PREDICTION_COLUMNS = (
    "id, horizon_class, predicted_value, confidence_lower, confidence_upper, "
    "maturity_time, actual_value, accuracy_score, raw_source_payload, "
    "created_at, updated_at"
)


class PredictionStore:
    """Query layer over the predictions table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, prediction: Prediction) -> Prediction | None:
        """Insert an unscored prediction.

        Returns the stored row, or None when a row with the same
        (horizon_class, maturity_time) already exists.
        """
        rows = self._db.execute(
            "INSERT INTO predictions "
            "(horizon_class, predicted_value, confidence_lower, confidence_upper, "
            "maturity_time, raw_source_payload, created_at, updated_at) "
            "VALUES (%s, %s, %s, %s, %s, %s::jsonb, "
            "COALESCE(%s::timestamptz, NOW()), COALESCE(%s::timestamptz, NOW())) "
            "ON CONFLICT (horizon_class, maturity_time) DO NOTHING "
            f"RETURNING {PREDICTION_COLUMNS}",
            (
                prediction.horizon_class.value,
                prediction.predicted_value,
                prediction.confidence_lower,
                prediction.confidence_upper,
                prediction.maturity_time,
                json.dumps(prediction.raw_source_payload)
                if prediction.raw_source_payload is not None else None,
                prediction.created_at,
                prediction.created_at,
            ),
        )
        if not rows:
            logger.info(
                "Insert skipped: %s prediction maturing at %s already stored",
                prediction.horizon_class.value, prediction.maturity_time.isoformat(),
            )
            return None
        return self._row_to_prediction(rows[0])

    def update_score(
        self, prediction_id: str, actual_value: Decimal, accuracy_score: Decimal
    ) -> Prediction | None:
        """Set actual value and accuracy score together on an unscored row.

        Returns the updated row, or None if the row is missing or already scored.
        """
        rows = self._db.execute(
            "UPDATE predictions "
            "SET actual_value = %s, accuracy_score = %s, updated_at = NOW() "
            "WHERE id = %s AND accuracy_score IS NULL "
            f"RETURNING {PREDICTION_COLUMNS}",
            (actual_value, accuracy_score, prediction_id),
        )
        if not rows:
            return None
        return self._row_to_prediction(rows[0])

    def purge_all(self) -> int:
        """Delete every prediction. Development use only."""
        count = self._db.execute_rowcount("DELETE FROM predictions")
        logger.warning("Purged %d predictions", count)
        return count

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_horizon_and_maturity(
        self, horizon_class: HorizonClass, maturity_time: datetime
    ) -> Prediction | None:
        rows = self._db.execute(
            f"SELECT {PREDICTION_COLUMNS} FROM predictions "
            "WHERE horizon_class = %s AND maturity_time = %s LIMIT 1",
            (horizon_class.value, maturity_time),
        )
        return self._row_to_prediction(rows[0]) if rows else None

    def find_latest_by_type(self, horizon_class: HorizonClass) -> Prediction | None:
        """Most recently created prediction for a horizon."""
        rows = self._db.execute(
            f"SELECT {PREDICTION_COLUMNS} FROM predictions "
            "WHERE horizon_class = %s ORDER BY created_at DESC LIMIT 1",
            (horizon_class.value,),
        )
        return self._row_to_prediction(rows[0]) if rows else None

    def find_mature_unscored(self, now: datetime) -> list[Prediction]:
        """Predictions whose maturity time has passed and that have no score yet."""
        rows = self._db.execute(
            f"SELECT {PREDICTION_COLUMNS} FROM predictions "
            "WHERE maturity_time <= %s AND accuracy_score IS NULL "
            "ORDER BY maturity_time",
            (now,),
        )
        return [self._row_to_prediction(r) for r in rows]

    def count_unscored(self) -> int:
        rows = self._db.execute(
            "SELECT COUNT(*) AS pending FROM predictions WHERE accuracy_score IS NULL"
        )
        return int(rows[0]["pending"]) if rows else 0

    def get_recent(self, limit: int = 5) -> list[Prediction]:
        rows = self._db.execute(
            f"SELECT {PREDICTION_COLUMNS} FROM predictions "
            "ORDER BY created_at DESC LIMIT %s",
            (limit,),
        )
        return [self._row_to_prediction(r) for r in rows]

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def aggregate_average(self, start: datetime, end: datetime) -> Decimal | None:
        """Mean accuracy of scored rows maturing in [start, end), or None."""
        rows = self._db.execute(
            "SELECT AVG(accuracy_score) AS avg_accuracy FROM predictions "
            "WHERE accuracy_score IS NOT NULL "
            "AND maturity_time >= %s AND maturity_time < %s",
            (start, end),
        )
        if not rows or rows[0]["avg_accuracy"] is None:
            return None
        return Decimal(str(rows[0]["avg_accuracy"]))

    def aggregate_grouped_by_day(
        self, start: datetime, end: datetime
    ) -> list[tuple[date, Decimal]]:
        """Mean accuracy per UTC calendar day of maturity, ascending.

        Days without scored rows are absent from the result.
        """
        rows = self._db.execute(
            "SELECT (maturity_time AT TIME ZONE 'UTC')::date AS day, "
            "AVG(accuracy_score) AS avg_accuracy "
            "FROM predictions "
            "WHERE accuracy_score IS NOT NULL "
            "AND maturity_time >= %s AND maturity_time < %s "
            "GROUP BY day ORDER BY day",
            (start, end),
        )
        return [
            (r["day"], Decimal(str(r["avg_accuracy"])))
            for r in rows
            if r["avg_accuracy"] is not None
        ]

    # ------------------------------------------------------------------
    # Cron audit
    # ------------------------------------------------------------------

    def log_cron_start(self, job_name: str) -> int:
        """Record the start of a scheduled job. Returns the cron_run id."""
        rows = self._db.execute(
            "INSERT INTO cron_runs (job_name, started_at, status) "
            "VALUES (%s, NOW(), 'running') RETURNING id",
            (job_name,),
        )
        return rows[0]["id"]

    def log_cron_finish(self, cron_id: int, status: str, error: str | None = None) -> None:
        self._db.execute(
            "UPDATE cron_runs SET finished_at = NOW(), status = %s, error = %s WHERE id = %s",
            (status, error, cron_id),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_prediction(r: dict) -> Prediction:
        payload = r.get("raw_source_payload")
        if isinstance(payload, str):
            payload = json.loads(payload)
        return Prediction(
            id=str(r["id"]),
            horizon_class=HorizonClass(r["horizon_class"]),
            predicted_value=str(r["predicted_value"]),
            confidence_lower=str(r["confidence_lower"]) if r["confidence_lower"] is not None else None,
            confidence_upper=str(r["confidence_upper"]) if r["confidence_upper"] is not None else None,
            maturity_time=r["maturity_time"],
            actual_value=Decimal(str(r["actual_value"])) if r["actual_value"] is not None else None,
            accuracy_score=Decimal(str(r["accuracy_score"])) if r["accuracy_score"] is not None else None,
            raw_source_payload=payload,
            created_at=r.get("created_at"),
            updated_at=r.get("updated_at"),
        )
