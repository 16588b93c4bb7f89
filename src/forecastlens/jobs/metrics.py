from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from forecastlens.registry.queries import PredictionStore

logger = logging.getLogger(__name__)

KPI_WINDOWS: dict[str, timedelta] = {
    "daily": timedelta(hours=24),
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
}
TREND_WINDOW = timedelta(days=30)
CENT = Decimal("0.01")


def _round(value: Decimal | None) -> Decimal | None:
    if value is None:
        return None
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TrendPoint:
    day: date
    avg_accuracy: Decimal


@dataclass
class AccuracyMetrics:
    computed_at: datetime
    daily: Decimal | None = None
    weekly: Decimal | None = None
    monthly: Decimal | None = None
    daily_trend: list[TrendPoint] = field(default_factory=list)

    def to_dict(self) -> dict:
        def _num(v: Decimal | None) -> float | None:
            return float(v) if v is not None else None

        return {
            "computedAt": self.computed_at.isoformat(),
            "kpis": {
                "daily": _num(self.daily),
                "weekly": _num(self.weekly),
                "monthly": _num(self.monthly),
            },
            "dailyTrend": [
                {"date": p.day.isoformat(), "avgAccuracy": float(p.avg_accuracy)}
                for p in self.daily_trend
            ],
        }


class MetricsAggregator:
    """Rolling-window accuracy KPIs and a daily trend over scored predictions.

    Windows are half-open, ``[now - window, now)``, on maturity time. Empty
    windows yield None rather than zero, and days without scored rows are
    left out of the trend.
    """

    def __init__(
        self,
        store: PredictionStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))

    def compute(self, now: datetime | None = None) -> AccuracyMetrics:
        now = now or self._clock()
        now = now.replace(tzinfo=UTC) if now.tzinfo is None else now.astimezone(UTC)

        kpis = {
            name: _round(self._store.aggregate_average(now - window, now))
            for name, window in KPI_WINDOWS.items()
        }
        trend = [
            TrendPoint(day=day, avg_accuracy=_round(avg))
            for day, avg in self._store.aggregate_grouped_by_day(now - TREND_WINDOW, now)
        ]

        logger.debug("Accuracy KPIs at %s: %s (%d trend points)", now.isoformat(), kpis, len(trend))
        return AccuracyMetrics(
            computed_at=now,
            daily=kpis["daily"],
            weekly=kpis["weekly"],
            monthly=kpis["monthly"],
            daily_trend=trend,
        )
