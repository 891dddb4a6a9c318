"""Stripe implementation of the billing provider interface."""

from __future__ import annotations

from typing import Any, Dict, Optional

from helpy.config import CONFIG

from ..stripe_service import BillingPortalNotConfiguredError, StripeBillingService
from .base import BillingProvider, ProviderNotConfiguredError


class StripeBillingProvider(BillingProvider):
    key = "stripe"

    def __init__(self, service: Optional[StripeBillingService] = None) -> None:
        self._service = service

    def is_configured(self) -> bool:
        return self._service is not None or bool(getattr(CONFIG, "stripe_secret_key", None))

    def _ensure_service(self) -> StripeBillingService:
        if not self.is_configured():
            raise ProviderNotConfiguredError("Stripe billing is not configured")
        if self._service is None:
            self._service = StripeBillingService(
                getattr(CONFIG, "stripe_secret_key", None),
                webhook_secret=getattr(CONFIG, "stripe_webhook_secret", None),
                webhook_tolerance=int(getattr(CONFIG, "stripe_webhook_tolerance", 300)),
            )
        return self._service

    def create_customer(self, *, email: Optional[str], metadata: Dict[str, str]) -> Dict[str, Any]:
        service = self._ensure_service()
        return service.create_customer(email=email, metadata=metadata)

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        subscription_metadata: Dict[str, str],
    ) -> Dict[str, Any]:
        service = self._ensure_service()
        return service.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_metadata=subscription_metadata,
        )

    def create_billing_portal_session(
        self,
        *,
        customer_id: str,
        return_url: str,
    ) -> Dict[str, Any]:
        service = self._ensure_service()
        return service.create_billing_portal_session(customer_id=customer_id, return_url=return_url)

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        service = self._ensure_service()
        return service.retrieve_subscription(subscription_id)

    def parse_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        service = self._ensure_service()
        return service.parse_event(payload, signature)


__all__ = [
    "StripeBillingProvider",
    "BillingPortalNotConfiguredError",
]
