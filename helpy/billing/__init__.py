"""Household billing: Stripe webhook reconciliation and entitlement limits."""

from .auditor import EventAuditor
from .outcomes import OutcomeStatus, StageOutcome
from .plans import PLAN_LIMITS, PlanKey, PlanLimits, SubscriptionStatus, entitlement_fields, limits_for
from .reconciler import SubscriptionReconciler
from .sanitizer import sanitize_payload
from .stripe_service import BillingPortalNotConfiguredError, StripeBillingService, WebhookVerificationError
from .timestamps import normalize_timestamp, timestamp_to_iso
from .webhook import RESPONSE_POLICY, WebhookProcessor, WebhookResult
from .providers import (
    BillingProvider,
    ProviderNotConfiguredError,
    get_billing_provider,
)

__all__ = [
    "EventAuditor",
    "OutcomeStatus",
    "StageOutcome",
    "PLAN_LIMITS",
    "PlanKey",
    "PlanLimits",
    "SubscriptionStatus",
    "entitlement_fields",
    "limits_for",
    "SubscriptionReconciler",
    "sanitize_payload",
    "BillingPortalNotConfiguredError",
    "StripeBillingService",
    "WebhookVerificationError",
    "normalize_timestamp",
    "timestamp_to_iso",
    "RESPONSE_POLICY",
    "WebhookProcessor",
    "WebhookResult",
    "BillingProvider",
    "ProviderNotConfiguredError",
    "get_billing_provider",
]
