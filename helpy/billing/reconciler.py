"""Map verified Stripe events onto household subscription state.

Each supported event type has one handler. Handlers receive the event and its
subject object, write at most one partial update to ``households`` and return
a :class:`StageOutcome` describing what happened. Failures talking to Stripe
or Supabase are logged and reported as ``recovered`` outcomes; nothing here
raises into the webhook endpoint.

Deliveries are at-least-once and unordered. Every handler overwrites fields
with values derived from the event, so replaying an event converges to the
same row. There is no sequence check: an older ``customer.subscription.updated``
arriving after a newer one wins (last write wins at the database).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from .auditor import EventAuditor
from .events import event_subject, household_id_from, invoice_subscription_id, object_id, subject_metadata
from .outcomes import StageOutcome
from .plans import (
    TERMINAL_STATUSES,
    PlanKey,
    SubscriptionStatus,
    coerce_plan,
    entitlement_fields,
    plan_for_price,
)
from .timestamps import normalize_timestamp, timestamp_to_iso

logger = logging.getLogger(__name__)

STAGE = "reconcile"

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
SUBSCRIPTION_TRIAL_WILL_END = "customer.subscription.trial_will_end"
INVOICE_PAID = "invoice.paid"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
INVOICE_FINALIZATION_FAILED = "invoice.finalization_failed"

Handler = Callable[[Dict[str, Any], Dict[str, Any]], StageOutcome]


def _first_subscription_item(subscription: Dict[str, Any]) -> Dict[str, Any]:
    items = subscription.get("items")
    if isinstance(items, dict):
        data = items.get("data") or []
        if isinstance(data, list) and data and isinstance(data[0], dict):
            return data[0]
    return {}


def resolve_period_end(subscription: Dict[str, Any]) -> Optional[str]:
    """ISO period end of a subscription, or None when Stripe gave nothing usable.

    Newer API versions report the period on subscription items instead of the
    subscription itself.
    """

    period_end = timestamp_to_iso(subscription.get("current_period_end"))
    if period_end is None:
        period_end = timestamp_to_iso(_first_subscription_item(subscription).get("current_period_end"))
    return period_end


def subscription_price_id(subscription: Dict[str, Any]) -> Optional[str]:
    first_item = _first_subscription_item(subscription)
    price_obj = first_item.get("price") or first_item.get("plan") or {}
    return object_id(price_obj)


def is_cancellation_scheduled(subscription: Dict[str, Any]) -> bool:
    if subscription.get("cancel_at_period_end"):
        return True
    return normalize_timestamp(subscription.get("cancel_at")) is not None


class SubscriptionReconciler:
    """State machine applying billing events to a household's entitlement record."""

    def __init__(
        self,
        provider: Any,
        db: Any,
        *,
        auditor: Optional[EventAuditor] = None,
        price_ids: Optional[Mapping[str, Mapping[str, str]]] = None,
    ):
        self._provider = provider
        self._db = db
        self._auditor = auditor or EventAuditor(db)
        self._price_ids = price_ids
        self._handlers: Dict[str, Handler] = {
            CHECKOUT_SESSION_COMPLETED: self._on_checkout_completed,
            SUBSCRIPTION_CREATED: self._on_subscription_created,
            SUBSCRIPTION_UPDATED: self._on_subscription_updated,
            SUBSCRIPTION_DELETED: self._on_subscription_deleted,
            SUBSCRIPTION_TRIAL_WILL_END: self._on_trial_will_end,
            INVOICE_PAID: self._on_invoice_paid,
            INVOICE_PAYMENT_FAILED: self._on_invoice_payment_failed,
            INVOICE_FINALIZATION_FAILED: self._on_invoice_finalization_failed,
        }

    @property
    def handled_event_types(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def reconcile(self, event: Dict[str, Any]) -> StageOutcome:
        event_type = str(event.get("type") or "unknown")
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Ignoring unhandled event type %s (%s)", event_type, event.get("id"))
            return StageOutcome.skipped(STAGE, "unhandled_event_type")
        return handler(event, event_subject(event))

    # ------------------------------------------------------------------
    # Collaborator calls
    # ------------------------------------------------------------------
    def _fetch_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        try:
            subscription = self._provider.retrieve_subscription(subscription_id)
        except Exception as exc:
            logger.warning("Could not retrieve subscription %s: %s", subscription_id, exc)
            return None
        return subscription if isinstance(subscription, dict) else None

    def _apply(
        self,
        household_id: str,
        updates: Dict[str, Any],
        *,
        degraded_reason: Optional[str] = None,
    ) -> StageOutcome:
        try:
            self._db.update_household(household_id, updates)
        except Exception as exc:
            logger.error("Failed to update household %s with %s: %s", household_id, sorted(updates), exc)
            return StageOutcome.recovered(STAGE, "persistence_failed", household_id=household_id, updates=updates)

        logger.info("Updated household %s: %s", household_id, sorted(updates))
        if degraded_reason:
            return StageOutcome.recovered(STAGE, degraded_reason, household_id=household_id, updates=updates)
        return StageOutcome.success(STAGE, household_id=household_id, updates=updates)

    def _note(self, event: Dict[str, Any], household_id: str, data: Dict[str, Any]) -> StageOutcome:
        outcome = self._auditor.record_note(event, household_id, data)
        if outcome.ok:
            return StageOutcome.success(STAGE, reason="audit_only", household_id=household_id)
        return StageOutcome.recovered(STAGE, outcome.reason or "persistence_failed", household_id=household_id)

    def _household_for_invoice(self, invoice: Dict[str, Any]) -> tuple[Optional[str], Optional[Dict[str, Any]], Optional[StageOutcome]]:
        """Resolve ``(household_id, subscription)`` for an invoice, or an early outcome."""

        subscription_id = invoice_subscription_id(invoice)
        if not subscription_id:
            return None, None, StageOutcome.skipped(STAGE, "no_subscription_reference")
        subscription = self._fetch_subscription(subscription_id)
        if subscription is None:
            return None, None, StageOutcome.recovered(STAGE, "subscription_unavailable")
        household_id = household_id_from(subscription)
        if not household_id:
            return None, subscription, StageOutcome.skipped(STAGE, "no_household_id")
        return household_id, subscription, None

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------
    def _on_checkout_completed(self, event: Dict[str, Any], session: Dict[str, Any]) -> StageOutcome:
        metadata = subject_metadata(session)
        household_id = household_id_from(session)
        plan = coerce_plan(metadata.get("plan"))
        subscription_id = object_id(session.get("subscription"))
        if not household_id or plan in (None, PlanKey.FREE) or not subscription_id:
            return StageOutcome.skipped(STAGE, "missing_checkout_metadata", household_id=household_id)

        updates: Dict[str, Any] = {
            "stripe_subscription_id": subscription_id,
            "subscription_status": SubscriptionStatus.ACTIVE.value,
            **entitlement_fields(plan),
        }
        customer_id = object_id(session.get("customer"))
        if customer_id:
            updates["stripe_customer_id"] = customer_id
        period = metadata.get("period")
        if isinstance(period, str) and period.strip():
            updates["subscription_period"] = period.strip().lower()

        subscription = self._fetch_subscription(subscription_id)
        if subscription is None:
            # A later invoice.paid or subscription event fills in the period end.
            return self._apply(household_id, updates, degraded_reason="subscription_unavailable")

        period_end = resolve_period_end(subscription)
        if period_end is not None:
            updates["subscription_current_period_end"] = period_end
        return self._apply(household_id, updates)

    def _on_subscription_created(self, event: Dict[str, Any], subscription: Dict[str, Any]) -> StageOutcome:
        household_id = household_id_from(subscription)
        if not household_id:
            return StageOutcome.skipped(STAGE, "no_household_id")

        household = self._db.get_household(household_id)
        if not household:
            return StageOutcome.skipped(STAGE, "household_not_found", household_id=household_id)
        # checkout.session.completed may already have activated the household.
        if household.get("subscription_status") == SubscriptionStatus.ACTIVE.value:
            return StageOutcome.skipped(STAGE, "already_active", household_id=household_id)

        updates: Dict[str, Any] = {}
        if subscription.get("id"):
            updates["stripe_subscription_id"] = subscription["id"]
        if subscription.get("status"):
            updates["subscription_status"] = subscription["status"]
        period_end = resolve_period_end(subscription)
        if period_end is not None:
            updates["subscription_current_period_end"] = period_end
        if not updates:
            return StageOutcome.skipped(STAGE, "nothing_to_update", household_id=household_id)
        return self._apply(household_id, updates)

    def _on_subscription_updated(self, event: Dict[str, Any], subscription: Dict[str, Any]) -> StageOutcome:
        household_id = household_id_from(subscription)
        if not household_id:
            return StageOutcome.skipped(STAGE, "no_household_id")

        status_value = subscription.get("status")
        updates: Dict[str, Any] = {}
        if status_value:
            updates["subscription_status"] = status_value
        period_end = resolve_period_end(subscription)
        if period_end is not None:
            updates["subscription_current_period_end"] = period_end

        if status_value in TERMINAL_STATUSES:
            updates.update(entitlement_fields(PlanKey.FREE))
            updates["stripe_subscription_id"] = None
        elif not is_cancellation_scheduled(subscription):
            # Scheduled cancellations keep their plan until customer.subscription.deleted.
            plan = plan_for_price(subscription_price_id(subscription), self._price_ids)
            if plan is not None:
                updates.update(entitlement_fields(plan))

        if not updates:
            return StageOutcome.skipped(STAGE, "nothing_to_update", household_id=household_id)
        return self._apply(household_id, updates)

    def _on_subscription_deleted(self, event: Dict[str, Any], subscription: Dict[str, Any]) -> StageOutcome:
        household_id = household_id_from(subscription)
        if not household_id:
            return StageOutcome.skipped(STAGE, "no_household_id")

        updates: Dict[str, Any] = {
            "subscription_status": SubscriptionStatus.CANCELED.value,
            "stripe_subscription_id": None,
            **entitlement_fields(PlanKey.FREE),
        }
        return self._apply(household_id, updates)

    def _on_trial_will_end(self, event: Dict[str, Any], subscription: Dict[str, Any]) -> StageOutcome:
        household_id = household_id_from(subscription)
        if not household_id:
            return StageOutcome.skipped(STAGE, "no_household_id")
        return self._note(event, household_id, {"trial_end": timestamp_to_iso(subscription.get("trial_end"))})

    def _on_invoice_paid(self, event: Dict[str, Any], invoice: Dict[str, Any]) -> StageOutcome:
        household_id, subscription, early = self._household_for_invoice(invoice)
        if early is not None:
            return early

        updates: Dict[str, Any] = {"subscription_status": SubscriptionStatus.ACTIVE.value}
        period_end = resolve_period_end(subscription)
        if period_end is not None:
            updates["subscription_current_period_end"] = period_end
        return self._apply(household_id, updates)

    def _on_invoice_payment_failed(self, event: Dict[str, Any], invoice: Dict[str, Any]) -> StageOutcome:
        household_id, _, early = self._household_for_invoice(invoice)
        if early is not None:
            return early
        return self._apply(household_id, {"subscription_status": SubscriptionStatus.PAST_DUE.value})

    def _on_invoice_finalization_failed(self, event: Dict[str, Any], invoice: Dict[str, Any]) -> StageOutcome:
        logger.error(
            "Invoice %s could not be finalized: %s",
            invoice.get("id"),
            invoice.get("last_finalization_error"),
        )
        household_id, _, early = self._household_for_invoice(invoice)
        if early is not None:
            return early
        return self._note(
            event,
            household_id,
            {
                "invoice_id": invoice.get("id"),
                "error": invoice.get("last_finalization_error"),
            },
        )


__all__ = [
    "CHECKOUT_SESSION_COMPLETED",
    "INVOICE_FINALIZATION_FAILED",
    "INVOICE_PAID",
    "INVOICE_PAYMENT_FAILED",
    "SUBSCRIPTION_CREATED",
    "SUBSCRIPTION_DELETED",
    "SUBSCRIPTION_TRIAL_WILL_END",
    "SUBSCRIPTION_UPDATED",
    "SubscriptionReconciler",
    "is_cancellation_scheduled",
    "resolve_period_end",
    "subscription_price_id",
]
