"""Append-only audit trail of received billing events."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from .events import event_subject, household_id_from, subject_metadata
from .outcomes import StageOutcome
from .sanitizer import sanitize_payload

logger = logging.getLogger(__name__)

STAGE = "audit"


def fallback_payload(subject: Dict[str, Any]) -> Dict[str, Any]:
    """Minimal record kept when the full subject cannot be stored."""

    try:
        metadata = json.loads(json.dumps(subject_metadata(subject), default=str))
    except (TypeError, ValueError):
        metadata = {}
    return {
        "id": subject.get("id") if isinstance(subject.get("id"), str) else None,
        "object": subject.get("object") if isinstance(subject.get("object"), str) else None,
        "metadata": metadata,
        "sanitization_failed": True,
    }


def storable_payload(subject: Any) -> Dict[str, Any]:
    """Sanitize ``subject`` and prove it encodes as strict JSON."""

    if not isinstance(subject, dict):
        subject = {}
    try:
        sanitized = sanitize_payload(subject)
        json.dumps(sanitized, allow_nan=False)
    except (TypeError, ValueError, RecursionError) as exc:
        logger.warning("Audit payload for %s is not storable, keeping fallback: %s", subject.get("id"), exc)
        return fallback_payload(subject)
    return sanitized


class EventAuditor:
    """Writes every received event for a known household to ``subscription_events``."""

    def __init__(self, db: Any):
        self._db = db

    def record(self, event: Dict[str, Any]) -> StageOutcome:
        subject = event_subject(event)
        household_id = household_id_from(subject)
        if not household_id:
            return StageOutcome.skipped(STAGE, "no_household_id")
        return self._insert(event, household_id, storable_payload(subject))

    def record_note(self, event: Dict[str, Any], household_id: str, data: Dict[str, Any]) -> StageOutcome:
        """Store an audit-only row with handler-chosen ``data`` instead of the subject."""

        return self._insert(event, household_id, storable_payload(data))

    def _insert(self, event: Dict[str, Any], household_id: Optional[str], data: Dict[str, Any]) -> StageOutcome:
        event_id = event.get("id")
        event_type = str(event.get("type") or "unknown")
        try:
            self._db.record_subscription_event(
                household_id=household_id,
                stripe_event_id=event_id,
                event_type=event_type,
                data=data,
            )
        except Exception as exc:
            logger.error("Failed to record %s event %s for household %s: %s", event_type, event_id, household_id, exc)
            return StageOutcome.recovered(STAGE, "persistence_failed", household_id=household_id)
        return StageOutcome.success(STAGE, household_id=household_id)


__all__ = ["EventAuditor", "fallback_payload", "storable_payload"]
