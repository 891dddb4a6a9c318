"""Provider abstraction for handling billing operations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class ProviderNotConfiguredError(RuntimeError):
    """Raised when a billing provider is missing required configuration."""


class BillingProvider(ABC):
    """Interface for payment providers consumed by the billing routes and the reconciler."""

    key: str

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True when the provider has the secrets it needs."""

    @abstractmethod
    def create_customer(self, *, email: Optional[str], metadata: Dict[str, str]) -> Dict[str, Any]:
        """Create a customer record that future sessions are billed to."""

    @abstractmethod
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
        """Create a hosted purchase session for a subscription price."""

    @abstractmethod
    def create_billing_portal_session(
        self,
        *,
        customer_id: str,
        return_url: str,
    ) -> Dict[str, Any]:
        """Return a portal URL for managing the subscription."""

    @abstractmethod
    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """Fetch the latest subscription object from the provider."""

    @abstractmethod
    def parse_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Validate and decode webhook payloads for the provider."""
