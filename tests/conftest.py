"""Shared in-memory doubles for job and API tests."""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from forecastlens.models.prediction import Horizon, HorizonClass, Inference, Prediction
from forecastlens.models.result import Err, FetchErrorKind, Ok


class FakeStore:
    """Dict-backed stand-in for PredictionStore with the same method surface."""

    def __init__(self) -> None:
        self.rows: dict[str, Prediction] = {}
        self.cron_runs: list[dict] = []
        self.fail_update = False

    # writes

    def insert(self, prediction: Prediction) -> Prediction | None:
        if self.find_by_horizon_and_maturity(prediction.horizon_class, prediction.maturity_time):
            return None
        stored = replace(
            prediction,
            id=str(uuid.uuid4()),
            created_at=prediction.created_at or datetime.now(UTC),
            updated_at=prediction.created_at or datetime.now(UTC),
        )
        self.rows[stored.id] = stored
        return stored

    def update_score(self, prediction_id, actual_value, accuracy_score):
        if self.fail_update:
            raise RuntimeError("connection lost")
        row = self.rows.get(prediction_id)
        if row is None or row.accuracy_score is not None:
            return None
        row.actual_value = actual_value
        row.accuracy_score = accuracy_score
        return row

    def purge_all(self) -> int:
        count = len(self.rows)
        self.rows.clear()
        return count

    # reads

    def find_by_horizon_and_maturity(self, horizon_class, maturity_time):
        for row in self.rows.values():
            if row.horizon_class == horizon_class and row.maturity_time == maturity_time:
                return row
        return None

    def find_latest_by_type(self, horizon_class):
        matches = [r for r in self.rows.values() if r.horizon_class == horizon_class]
        return max(matches, key=lambda r: r.created_at) if matches else None

    def find_mature_unscored(self, now):
        return sorted(
            (r for r in self.rows.values()
             if r.maturity_time <= now and r.accuracy_score is None),
            key=lambda r: r.maturity_time,
        )

    def count_unscored(self) -> int:
        return sum(1 for r in self.rows.values() if r.accuracy_score is None)

    def get_recent(self, limit: int = 5):
        return sorted(self.rows.values(), key=lambda r: r.created_at, reverse=True)[:limit]

    # aggregates

    def _scored_in(self, start, end):
        return [
            r for r in self.rows.values()
            if r.accuracy_score is not None and start <= r.maturity_time < end
        ]

    def aggregate_average(self, start, end):
        scored = self._scored_in(start, end)
        if not scored:
            return None
        return sum(r.accuracy_score for r in scored) / len(scored)

    def aggregate_grouped_by_day(self, start, end):
        by_day: dict[date, list[Decimal]] = {}
        for r in self._scored_in(start, end):
            by_day.setdefault(r.maturity_time.astimezone(UTC).date(), []).append(r.accuracy_score)
        return [(d, sum(v) / len(v)) for d, v in sorted(by_day.items())]

    # cron audit

    def log_cron_start(self, job_name: str) -> int:
        self.cron_runs.append({"job_name": job_name, "status": "running", "error": None})
        return len(self.cron_runs)

    def log_cron_finish(self, cron_id, status, error=None) -> None:
        self.cron_runs[cron_id - 1].update(status=status, error=error)

    # helpers

    def add(self, **kwargs) -> Prediction:
        kwargs.setdefault("horizon_class", HorizonClass.FIVE_MIN)
        kwargs.setdefault("predicted_value", "100000.00")
        kwargs.setdefault("created_at", datetime(2025, 1, 1, tzinfo=UTC))
        prediction = Prediction(id=str(uuid.uuid4()), **kwargs)
        self.rows[prediction.id] = prediction
        return prediction


class FakeAllora:
    """Returns a canned inference (or error) per horizon class."""

    def __init__(self, results: dict | None = None) -> None:
        self.results = results or {}
        self.calls: list[Horizon] = []

    def get_inference(self, horizon: Horizon):
        self.calls.append(horizon)
        if horizon.horizon_class in self.results:
            return self.results[horizon.horizon_class]
        return Ok(
            Inference(
                point_estimate="103677.44",
                confidence_lower="103000.00",
                confidence_upper="104500.00",
                raw_payload={"network_inference": "103677.444932", "timestamp": 1},
                timestamp=1,
            )
        )


class FakeFetcher:
    """Ground-truth double recording every target it is asked for."""

    def __init__(self, price: Decimal | Err = Decimal("100")) -> None:
        self.price = price
        self.targets: list[datetime] = []

    def fetch_price_at(self, target, now=None):
        self.targets.append(target)
        if isinstance(self.price, Err):
            return self.price
        return Ok(self.price)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def allora() -> FakeAllora:
    return FakeAllora()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def unavailable() -> Err:
    return Err(FetchErrorKind.UPSTREAM_UNAVAILABLE, "boom")
