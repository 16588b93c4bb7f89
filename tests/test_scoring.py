from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from forecastlens.jobs.scoring import ScoringJob
from forecastlens.models.result import Err, FetchErrorKind, JobStatus

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)


class TestScoringRun:
    def test_scores_mature_row(self, store, fetcher) -> None:
        row = store.add(predicted_value="110", maturity_time=NOW - timedelta(hours=1))
        assert store.find_mature_unscored(NOW) == [row]

        summary = ScoringJob(store, fetcher).run(now=NOW)

        assert summary.status == JobStatus.SUCCESS
        assert summary.updated == 1
        assert row.actual_value == Decimal("100")
        assert row.accuracy_score == Decimal("90.00")
        assert store.find_mature_unscored(NOW) == []
        assert fetcher.targets == [row.maturity_time]

    def test_maturity_equal_to_now_is_mature(self, store, fetcher) -> None:
        store.add(maturity_time=NOW)
        assert ScoringJob(store, fetcher).run(now=NOW).updated == 1

    def test_nothing_to_do(self, store, fetcher) -> None:
        store.add(maturity_time=NOW + timedelta(minutes=5))
        summary = ScoringJob(store, fetcher).run(now=NOW)
        assert summary.status == JobStatus.SUCCESS
        assert summary.message == "No mature predictions to update."
        assert fetcher.targets == []

    def test_future_row_never_reaches_fetcher(self, store, fetcher) -> None:
        future = store.add(maturity_time=NOW + timedelta(minutes=5))
        mature = store.add(maturity_time=NOW - timedelta(minutes=5))

        summary = ScoringJob(store, fetcher).score([future, mature], NOW)

        assert fetcher.targets == [mature.maturity_time]
        assert summary.status == JobStatus.PARTIAL
        assert summary.errors[0].prediction_id == future.id
        assert "future maturity" in summary.errors[0].message
        assert future.accuracy_score is None

    def test_fetch_failure_leaves_row_unscored(self, store, fetcher) -> None:
        fetcher.price = Err(FetchErrorKind.UPSTREAM_UNAVAILABLE, "rate limited")
        row = store.add(maturity_time=NOW - timedelta(hours=1))

        summary = ScoringJob(store, fetcher).run(now=NOW)

        assert summary.status == JobStatus.FAILED
        assert row.accuracy_score is None
        assert row.actual_value is None
        assert "rate limited" in summary.errors[0].message

    def test_bad_predicted_value_is_skipped(self, store, fetcher) -> None:
        bad = store.add(predicted_value="n/a", maturity_time=NOW - timedelta(hours=2))
        good = store.add(predicted_value="95", maturity_time=NOW - timedelta(hours=1))

        summary = ScoringJob(store, fetcher).run(now=NOW)

        assert summary.status == JobStatus.PARTIAL
        assert summary.updated == 1
        assert bad.accuracy_score is None
        assert good.accuracy_score == Decimal("95.00")
        assert summary.message == (
            "Accuracy update processing completed. Predictions updated: 1, Predictions failed: 1."
        )

    def test_store_failure_is_per_row(self, store, fetcher) -> None:
        store.add(maturity_time=NOW - timedelta(hours=1))
        store.fail_update = True
        summary = ScoringJob(store, fetcher).run(now=NOW)
        assert summary.status == JobStatus.FAILED
        assert "connection lost" in summary.errors[0].message

    def test_already_scored_concurrently(self, store, fetcher, monkeypatch) -> None:
        row = store.add(predicted_value="110", maturity_time=NOW - timedelta(hours=1))
        original = store.update_score

        def overlapping(prediction_id, actual, score):
            # another run wins the guarded UPDATE first
            original(prediction_id, Decimal("101"), Decimal("99.00"))
            return original(prediction_id, actual, score)

        monkeypatch.setattr(store, "update_score", overlapping)
        summary = ScoringJob(store, fetcher).run(now=NOW)

        assert summary.status == JobStatus.SUCCESS
        assert summary.already_scored == 1
        assert summary.updated == 0
        assert summary.failed == 0
        assert row.accuracy_score == Decimal("99.00")
        assert summary.to_dict()["alreadyScored"] == 1

    def test_rescoring_same_candidates_is_idempotent(self, store, fetcher) -> None:
        store.add(predicted_value="110", maturity_time=NOW - timedelta(hours=2))
        store.add(predicted_value="95", maturity_time=NOW - timedelta(hours=1))
        candidates = store.find_mature_unscored(NOW)
        job = ScoringJob(store, fetcher)

        first = job.score(candidates, NOW)
        second = job.score(candidates, NOW)

        assert first.updated == 2
        assert second.status == JobStatus.SUCCESS
        assert second.already_scored == 2
        assert second.errors == []
        assert "Already scored by another run: 2." in second.message
        assert sorted(r.accuracy_score for r in store.rows.values()) == [
            Decimal("90.00"), Decimal("95.00"),
        ]

    def test_deleted_row_is_an_error(self, store, fetcher) -> None:
        row = store.add(maturity_time=NOW - timedelta(hours=1))
        store.purge_all()
        summary = ScoringJob(store, fetcher).score([row], NOW)
        assert summary.status == JobStatus.FAILED
        assert summary.errors[0].message.endswith("record not found")

    def test_to_dict(self, store, fetcher) -> None:
        store.add(predicted_value="bad", maturity_time=NOW - timedelta(hours=1))
        data = ScoringJob(store, fetcher).run(now=NOW).to_dict()
        assert data["status"] == "failed"
        assert data["candidates"] == 1
        assert set(data["errors"][0]) == {"predictionId", "error"}
