"""CLI entry point for ForecastLens.

Provides commands for running the pipeline outside the HTTP API:
  - cron: Run the ingestion or scoring job with audit logging
  - metrics: Print accuracy KPIs and the daily trend
  - status: Show the latest prediction per horizon and the scoring backlog
  - migrate: Run database migrations
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from forecastlens.config import AppConfig, load_config
from forecastlens.data.allora_client import AlloraClient
from forecastlens.data.coingecko_client import CoinGeckoClient
from forecastlens.jobs.ingestion import IngestionJob
from forecastlens.jobs.metrics import MetricsAggregator
from forecastlens.jobs.scoring import ScoringJob
from forecastlens.models.prediction import HORIZONS
from forecastlens.models.result import JobStatus
from forecastlens.registry.db import Database
from forecastlens.registry.queries import PredictionStore

CRON_JOBS = {
    "ingest": "update-predictions",
    "score": "update-accuracy",
}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _connect(config: AppConfig) -> tuple[Database, PredictionStore]:
    db = Database(config.db_dsn)
    db.connect()
    return db, PredictionStore(db)


def _run_job(job: str, config: AppConfig, store: PredictionStore):
    if job == "ingest":
        with AlloraClient.from_config(config) as client:
            return IngestionJob(store, client).run()
    with CoinGeckoClient.from_config(config) as client:
        return ScoringJob(store, client).run()


def cmd_cron(args: argparse.Namespace) -> None:
    """Run a scheduled job with audit logging. Exits 1 when the job failed outright."""
    config = load_config()
    db, store = _connect(config)

    job_name = CRON_JOBS[args.job]
    cron_id = store.log_cron_start(job_name)
    logging.info("Cron job %s started (id=%d)", job_name, cron_id)

    try:
        summary = _run_job(args.job, config, store)
    except Exception as e:
        logging.exception("Cron job %s failed", job_name)
        store.log_cron_finish(cron_id, JobStatus.FAILED.value, str(e))
        db.close()
        raise

    error = None if summary.status == JobStatus.SUCCESS else summary.message
    store.log_cron_finish(cron_id, summary.status.value, error)
    db.close()

    print(json.dumps(summary.to_dict(), indent=2, default=str))
    logging.info("Cron job %s finished: %s", job_name, summary.status.value)
    if summary.status == JobStatus.FAILED:
        sys.exit(1)


def cmd_metrics(args: argparse.Namespace) -> None:
    """Print accuracy KPIs and the daily trend as JSON."""
    config = load_config()
    db, store = _connect(config)
    try:
        metrics = MetricsAggregator(store).compute()
    finally:
        db.close()
    print(json.dumps(metrics.to_dict(), indent=2))


def cmd_status(args: argparse.Namespace) -> None:
    """Show the latest prediction per horizon and how many await scoring."""
    config = load_config()
    db, store = _connect(config)
    try:
        print("Latest predictions:")
        for horizon in HORIZONS:
            p = store.find_latest_by_type(horizon.horizon_class)
            if p is None:
                print(f"  {horizon.horizon_class.value}: none")
                continue
            score = f"{p.accuracy_score}%" if p.is_scored else "pending"
            print(
                f"  {horizon.horizon_class.value}: {p.predicted_value} "
                f"(matures {p.maturity_time.isoformat()}, accuracy {score})"
            )

        print(f"\nUnscored predictions: {store.count_unscored()}")
    finally:
        db.close()


def cmd_migrate(args: argparse.Namespace) -> None:
    """Run database migrations."""
    config = load_config()
    with Database(config.db_dsn) as db:
        applied = db.run_migrations()
    if applied:
        print(f"Applied: {', '.join(applied)}")
    print("Migrations complete.")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="forecastlens",
        description="BTC/USD forecast ingestion, scoring, and accuracy metrics",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subs = parser.add_subparsers(dest="command", required=True)

    # cron
    p_cron = subs.add_parser("cron", help="Run a scheduled job")
    p_cron.add_argument("job", choices=sorted(CRON_JOBS), help="Job to run")

    # metrics
    subs.add_parser("metrics", help="Print accuracy metrics as JSON")

    # status
    subs.add_parser("status", help="Show latest predictions and scoring backlog")

    # migrate
    subs.add_parser("migrate", help="Run database migrations")

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    commands = {
        "cron": cmd_cron,
        "metrics": cmd_metrics,
        "status": cmd_status,
        "migrate": cmd_migrate,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
