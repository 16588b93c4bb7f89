"""Forecast accuracy scoring.

Accuracy is ``(1 - |actual - predicted| / actual) * 100``, clamped to
[0, 100] and rounded half-up to two decimal places.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

HUNDRED = Decimal("100")
ZERO = Decimal("0")
CENT = Decimal("0.01")


def _to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def accuracy_score(
    actual: Decimal | int | float | str,
    predicted: Decimal | int | float | str,
) -> Decimal:
    """Score a prediction against the realized value.

    A zero actual value cannot be divided by: an exact zero prediction scores
    100, anything else scores 0.
    """
    actual_d = _to_decimal(actual)
    predicted_d = _to_decimal(predicted)

    if actual_d == 0:
        raw = HUNDRED if predicted_d == 0 else ZERO
    else:
        relative_error = abs(actual_d - predicted_d) / actual_d
        raw = (1 - relative_error) * HUNDRED

    bounded = max(ZERO, min(raw, HUNDRED))
    return bounded.quantize(CENT, rounding=ROUND_HALF_UP)
