"""Result values returned by each webhook processing stage."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    RECOVERED = "recovered"  # partial result after a tolerated failure
    SKIPPED = "skipped"
    FATAL = "fatal"


@dataclass
class StageOutcome:
    """What one stage (verify, audit, reconcile) did with an event."""

    stage: str
    status: OutcomeStatus
    reason: Optional[str] = None
    household_id: Optional[str] = None
    updates: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status in {OutcomeStatus.SUCCESS, OutcomeStatus.SKIPPED}

    @classmethod
    def success(cls, stage: str, **kwargs: Any) -> "StageOutcome":
        return cls(stage=stage, status=OutcomeStatus.SUCCESS, **kwargs)

    @classmethod
    def recovered(cls, stage: str, reason: str, **kwargs: Any) -> "StageOutcome":
        return cls(stage=stage, status=OutcomeStatus.RECOVERED, reason=reason, **kwargs)

    @classmethod
    def skipped(cls, stage: str, reason: str, **kwargs: Any) -> "StageOutcome":
        return cls(stage=stage, status=OutcomeStatus.SKIPPED, reason=reason, **kwargs)

    @classmethod
    def fatal(cls, stage: str, reason: str, **kwargs: Any) -> "StageOutcome":
        return cls(stage=stage, status=OutcomeStatus.FATAL, reason=reason, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "status": self.status.value,
            "reason": self.reason,
            "household_id": self.household_id,
            "updates": dict(self.updates),
        }


__all__ = ["OutcomeStatus", "StageOutcome"]
