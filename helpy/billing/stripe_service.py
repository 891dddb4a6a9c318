"""Thin wrapper around the Stripe SDK used for household subscriptions."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import stripe

InvalidRequestError = getattr(stripe, "InvalidRequestError", None) or getattr(
    getattr(stripe, "error", object), "InvalidRequestError", Exception
)
SignatureVerificationError = getattr(stripe, "SignatureVerificationError", None) or getattr(
    getattr(stripe, "error", object), "SignatureVerificationError", Exception
)


class BillingPortalNotConfiguredError(RuntimeError):
    """Raised when the Stripe billing portal is not configured for the environment."""


class WebhookVerificationError(ValueError):
    """Raised when a webhook body cannot be authenticated or decoded."""


def to_plain_dict(obj: Any) -> Dict[str, Any]:
    """Convert a StripeObject (or plain mapping) into nested builtin dicts."""

    if obj is None:
        return {}
    for attr in ("to_dict_recursive", "to_dict"):
        converter = getattr(obj, attr, None)
        if callable(converter):
            converted = converter()
            if isinstance(converted, dict):
                return converted
    if isinstance(obj, dict):
        return dict(obj)
    return json.loads(str(obj))


class StripeBillingService:
    """Handles Stripe interactions required for hosted billing.

    The secret key is passed on every request instead of being assigned to
    ``stripe.api_key``, so several services can coexist in one process.
    """

    def __init__(
        self,
        secret_key: str,
        *,
        webhook_secret: Optional[str] = None,
        webhook_tolerance: int = 300,
    ):
        if not secret_key:
            raise ValueError("Stripe secret key is required")
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._webhook_tolerance = webhook_tolerance

    # ------------------------------------------------------------------
    # Checkout & Portal
    # ------------------------------------------------------------------
    def create_customer(self, *, email: Optional[str], metadata: Dict[str, str]) -> Dict[str, Any]:
        customer = stripe.Customer.create(email=email, metadata=metadata, api_key=self._secret_key)
        return to_plain_dict(customer)

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        subscription_metadata: Dict[str, str],
        quantity: int = 1,
    ) -> Dict[str, Any]:
        """Create a hosted payment page for a subscription purchase."""

        session = stripe.checkout.Session.create(
            mode="subscription",
            customer=customer_id,
            line_items=[
                {
                    "price": price_id,
                    "quantity": quantity,
                }
            ],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={
                "metadata": subscription_metadata,
            },
            api_key=self._secret_key,
        )
        return to_plain_dict(session)

    def create_billing_portal_session(self, *, customer_id: str, return_url: str) -> Dict[str, Any]:
        if not customer_id:
            raise ValueError("Billing portal requires an existing Stripe customer id")
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
                api_key=self._secret_key,
            )
        except InvalidRequestError as exc:  # pragma: no cover - requires live Stripe API
            error_message = (str(exc) or "").lower()
            if "portal" in error_message and "configuration" in error_message:
                raise BillingPortalNotConfiguredError("Stripe billing portal configuration is missing") from exc
            raise
        return to_plain_dict(session)

    # ------------------------------------------------------------------
    # Webhooks & subscriptions
    # ------------------------------------------------------------------
    def parse_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Verify the signature over the raw body and decode the event envelope."""

        if not self._webhook_secret:
            raise RuntimeError("Stripe webhook secret is not configured; cannot verify signatures")
        if not signature:
            raise WebhookVerificationError("Missing stripe-signature header")
        try:
            body = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else str(payload)
            stripe.WebhookSignature.verify_header(body, signature, self._webhook_secret, self._webhook_tolerance)
        except SignatureVerificationError as exc:
            raise WebhookVerificationError(str(exc) or "Invalid signature") from exc
        except UnicodeDecodeError as exc:
            raise WebhookVerificationError("Webhook body is not valid UTF-8") from exc

        try:
            event = json.loads(body)
        except json.JSONDecodeError as exc:
            raise WebhookVerificationError(f"Invalid payload: {exc}") from exc
        if not isinstance(event, dict):
            raise WebhookVerificationError("Invalid payload: expected a JSON object")
        return event

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        subscription = stripe.Subscription.retrieve(subscription_id, api_key=self._secret_key)
        return to_plain_dict(subscription)
