"""Webhook processing pipeline: verify, audit, reconcile, respond.

Once the signature has been verified the sender always receives
``200 {"received": true}``, whatever happened downstream. Stripe retries any
other answer, and a retry cannot fix a database outage or a malformed payload;
it only duplicates side effects. Downstream failures are logged and kept in
the returned :class:`WebhookResult` instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

from helpy.logger import log

from .auditor import EventAuditor
from .events import event_subject, household_id_from
from .outcomes import OutcomeStatus, StageOutcome
from .reconciler import SubscriptionReconciler
from .stripe_service import WebhookVerificationError

logger = logging.getLogger(__name__)

ACKNOWLEDGEMENT: Mapping[str, Any] = MappingProxyType({"received": True})
VERIFICATION_FAILURE_STATUS = 400

# HTTP status answered for each downstream outcome after verification passed.
RESPONSE_POLICY: Mapping[OutcomeStatus, int] = MappingProxyType(
    {
        OutcomeStatus.SUCCESS: 200,
        OutcomeStatus.RECOVERED: 200,
        OutcomeStatus.SKIPPED: 200,
        OutcomeStatus.FATAL: 200,
    }
)

_TIME_VALUE_ERRORS = (OverflowError, OSError, ValueError)


@dataclass
class WebhookResult:
    status_code: int
    body: Dict[str, Any]
    verification: StageOutcome
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    stages: Dict[str, StageOutcome] = field(default_factory=dict)


def decide_response(verification: StageOutcome, downstream: Sequence[StageOutcome]) -> Tuple[int, Dict[str, Any]]:
    """Apply the response policy to a set of stage outcomes."""

    if verification.status is not OutcomeStatus.SUCCESS:
        return VERIFICATION_FAILURE_STATUS, {"detail": verification.reason or "Invalid webhook"}
    status_code = max((RESPONSE_POLICY[outcome.status] for outcome in downstream), default=200)
    return status_code, dict(ACKNOWLEDGEMENT)


def classify_failure(exc: BaseException) -> str:
    if isinstance(exc, _TIME_VALUE_ERRORS):
        return "invalid_time_value"
    return "unexpected_error"


class WebhookProcessor:
    """Composes provider verification, the auditor and the reconciler."""

    def __init__(self, provider: Any, reconciler: SubscriptionReconciler, auditor: EventAuditor):
        self._provider = provider
        self._reconciler = reconciler
        self._auditor = auditor

    @classmethod
    def from_collaborators(
        cls,
        provider: Any,
        db: Any,
        *,
        price_ids: Optional[Mapping[str, Mapping[str, str]]] = None,
    ) -> "WebhookProcessor":
        auditor = EventAuditor(db)
        reconciler = SubscriptionReconciler(provider, db, auditor=auditor, price_ids=price_ids)
        return cls(provider, reconciler, auditor)

    def process(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        verification, event = self._verify(payload, signature)
        if event is None:
            status_code, body = decide_response(verification, ())
            return WebhookResult(status_code=status_code, body=body, verification=verification)

        event_id = event.get("id")
        event_type = str(event.get("type") or "unknown")
        household_id = household_id_from(event_subject(event))
        log("[billing] received webhook event", event_type, event_id=event_id, household_id=household_id)

        stages: Dict[str, StageOutcome] = {}
        if household_id:
            stages["audit"] = self._run_stage("audit", self._auditor.record, event)
        else:
            stages["audit"] = StageOutcome.skipped("audit", "no_household_id")
        stages["reconcile"] = self._run_stage("reconcile", self._reconciler.reconcile, event)

        for outcome in stages.values():
            if outcome.status in {OutcomeStatus.RECOVERED, OutcomeStatus.FATAL}:
                logger.warning(
                    "Event %s (%s) %s stage %s: %s",
                    event_id,
                    event_type,
                    outcome.stage,
                    outcome.status.value,
                    outcome.reason,
                )

        status_code, body = decide_response(verification, tuple(stages.values()))
        return WebhookResult(
            status_code=status_code,
            body=body,
            verification=verification,
            event_id=event_id,
            event_type=event_type,
            stages=stages,
        )

    def _verify(self, payload: bytes, signature: Optional[str]) -> Tuple[StageOutcome, Optional[Dict[str, Any]]]:
        if not signature:
            logger.warning("Rejecting webhook without stripe-signature header")
            return StageOutcome.fatal("verify", "Missing stripe-signature header"), None
        try:
            event = self._provider.parse_event(payload, signature)
        except WebhookVerificationError as exc:
            logger.warning("Webhook signature verification failed: %s", exc)
            return StageOutcome.fatal("verify", f"Webhook Error: {exc}"), None
        except Exception as exc:
            logger.exception("Webhook could not be verified")
            return StageOutcome.fatal("verify", f"Webhook Error: {exc}"), None
        return StageOutcome.success("verify"), event

    @staticmethod
    def _run_stage(
        stage: str,
        func: Callable[[Dict[str, Any]], StageOutcome],
        event: Dict[str, Any],
    ) -> StageOutcome:
        try:
            return func(event)
        except Exception as exc:
            reason = classify_failure(exc)
            logger.exception("Unhandled %s failure in %s stage for event %s", reason, stage, event.get("id"))
            return StageOutcome.fatal(stage, reason)


__all__ = [
    "ACKNOWLEDGEMENT",
    "RESPONSE_POLICY",
    "VERIFICATION_FAILURE_STATUS",
    "WebhookProcessor",
    "WebhookResult",
    "classify_failure",
    "decide_response",
]
