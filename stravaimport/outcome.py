"""Result types for a single activity import.

An import never raises to its caller; it returns an ``ImportOutcome`` that
says what happened overall and, step by step, how far the pipeline got.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from stravaimport.activity_id import ActivityId
    from stravaimport.filters import FilterRejection


class OutcomeStatus(Enum):
    IMPORTED = "imported"
    SKIPPED_FILTERED = "skipped_filtered"
    SKIPPED_NOT_FOUND = "skipped_not_found"
    FAILED = "failed"


class FailureKind(Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    DECODE = "decode"
    PERSISTENCE = "persistence"
    BUSY = "busy"
    UNEXPECTED = "unexpected"


class Step(Enum):
    FETCH_ACTIVITY = "fetch_activity"
    FILTERS = "filters"
    INVALIDATE_SEGMENT_EFFORTS = "invalidate_segment_efforts"
    SAVE_ACTIVITY = "save_activity"
    STREAMS = "streams"
    LAPS = "laps"
    SEGMENT_EFFORTS = "segment_efforts"
    PHOTOS = "photos"


class StepStatus(Enum):
    OK = "ok"
    FAILED = "failed"


class StepResult(NamedTuple):
    step: Step
    status: StepStatus
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == StepStatus.OK


class ImportOutcome(NamedTuple):
    status: OutcomeStatus
    activity_id: ActivityId
    steps: tuple[StepResult, ...] = ()
    rejection: FilterRejection | None = None
    kind: FailureKind | None = None
    cause: str | None = None

    @classmethod
    def imported(cls, activity_id: ActivityId, steps) -> ImportOutcome:
        return cls(OutcomeStatus.IMPORTED, activity_id, tuple(steps))

    @classmethod
    def skipped_filtered(cls, activity_id: ActivityId, rejection: FilterRejection, steps) -> ImportOutcome:
        return cls(OutcomeStatus.SKIPPED_FILTERED, activity_id, tuple(steps), rejection=rejection)

    @classmethod
    def skipped_not_found(cls, activity_id: ActivityId, kind: FailureKind, cause: str, steps) -> ImportOutcome:
        return cls(OutcomeStatus.SKIPPED_NOT_FOUND, activity_id, tuple(steps), kind=kind, cause=cause)

    @classmethod
    def failed(cls, activity_id: ActivityId, kind: FailureKind, cause: str, steps) -> ImportOutcome:
        return cls(OutcomeStatus.FAILED, activity_id, tuple(steps), kind=kind, cause=cause)

    @property
    def completed_steps(self) -> list[Step]:
        return [s.step for s in self.steps if s.ok]

    @property
    def failed_steps(self) -> list[Step]:
        return [s.step for s in self.steps if not s.ok]

    def __str__(self) -> str:
        if self.status == OutcomeStatus.IMPORTED:
            if self.failed_steps:
                failed = ", ".join(s.value for s in self.failed_steps)
                return f"Imported {self.activity_id} (with failed steps: {failed})"
            return f"Imported {self.activity_id}"
        if self.status == OutcomeStatus.SKIPPED_FILTERED and self.rejection is not None:
            return f"Skipped {self.activity_id}: {self.rejection.message}"
        if self.status == OutcomeStatus.SKIPPED_NOT_FOUND:
            return f"Skipped {self.activity_id}: not found or private ({self.cause})"
        return f"Failed to import {self.activity_id} [{self.kind.value if self.kind else '?'}]: {self.cause}"

    def to_dict(self) -> dict:
        """JSON-friendly summary, used as the Celery task result."""
        return {
            "status": self.status.value,
            "activity_id": str(self.activity_id),
            "kind": self.kind.value if self.kind else None,
            "cause": self.cause,
            "rejection": self.rejection.reason if self.rejection else None,
            "steps": [{"step": s.step.value, "status": s.status.value, "detail": s.detail} for s in self.steps],
        }
