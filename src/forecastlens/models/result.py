"""Explicit success/failure values for expected per-item outcomes.

Upstream clients return ``Ok`` or ``Err`` instead of raising, so a failed
horizon or row can be recorded in a batch summary without unwinding the batch.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

T = TypeVar("T")


class FetchErrorKind(StrEnum):
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    NO_DATA = "no_data"
    MALFORMED_RESPONSE = "malformed_response"


class JobStatus(StrEnum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: FetchErrorKind
    message: str

    @property
    def is_ok(self) -> bool:
        return False


def job_status(succeeded: int, failed: int) -> JobStatus:
    """Collapse per-item counts into the tri-state outcome reported to callers."""
    if failed == 0:
        return JobStatus.SUCCESS
    if succeeded > 0:
        return JobStatus.PARTIAL
    return JobStatus.FAILED
