from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import StrEnum


class HorizonClass(StrEnum):
    FIVE_MIN = "5-min"
    EIGHT_HOUR = "8-hour"


@dataclass(frozen=True)
class Horizon:
    """A forecast lead time and the upstream timeframe that serves it."""

    horizon_class: HorizonClass
    timeframe: str
    duration: timedelta


HORIZONS: tuple[Horizon, ...] = (
    Horizon(HorizonClass.FIVE_MIN, "5m", timedelta(minutes=5)),
    Horizon(HorizonClass.EIGHT_HOUR, "8h", timedelta(hours=8)),
)


@dataclass(frozen=True)
class Inference:
    """Normalized forecast returned by the forecast network for one horizon."""

    point_estimate: str
    confidence_lower: str | None
    confidence_upper: str | None
    raw_payload: dict = field(default_factory=dict)
    timestamp: int | None = None


@dataclass
class Prediction:
    horizon_class: HorizonClass
    predicted_value: str
    maturity_time: datetime
    confidence_lower: str | None = None
    confidence_upper: str | None = None
    raw_source_payload: dict | None = None
    actual_value: Decimal | None = None
    accuracy_score: Decimal | None = None
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_scored(self) -> bool:
        return self.accuracy_score is not None and self.actual_value is not None

    def to_dict(self) -> dict:
        def _num(value) -> float | None:
            return float(value) if value is not None else None

        def _ts(value: datetime | None) -> str | None:
            return value.isoformat() if value is not None else None

        return {
            "id": self.id,
            "horizonClass": self.horizon_class.value,
            "predictedValue": _num(self.predicted_value),
            "confidenceLower": _num(self.confidence_lower),
            "confidenceUpper": _num(self.confidence_upper),
            "maturityTime": _ts(self.maturity_time),
            "actualValue": _num(self.actual_value),
            "accuracyScore": _num(self.accuracy_score),
            "createdAt": _ts(self.created_at),
            "updatedAt": _ts(self.updated_at),
        }
