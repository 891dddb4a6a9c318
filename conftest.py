"""Repository-wide pytest fixtures."""

from __future__ import annotations

import copy
import hashlib
import hmac
import json
import time
from collections.abc import Callable, Generator
from typing import Any, Dict, List, Optional

import pytest

from helpy.billing.providers import clear_provider_cache
from helpy.billing.stripe_service import StripeBillingService
from helpy.config import reload_config

WEBHOOK_SECRET = "whsec_test_secret"
PRICE_IDS = {
    "core": {"monthly": "price_core_monthly", "yearly": "price_core_yearly"},
    "pro": {"monthly": "price_pro_monthly", "yearly": "price_pro_yearly"},
}
PERIOD_END = 1700000000
PERIOD_END_ISO = "2023-11-14T22:13:20+00:00"


@pytest.fixture(autouse=True)
def _set_default_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Give every test the same billing configuration."""

    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("APP_URL", "https://app.example.com")
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("STRIPE_CORE_MONTHLY_PRICE_ID", PRICE_IDS["core"]["monthly"])
    monkeypatch.setenv("STRIPE_CORE_YEARLY_PRICE_ID", PRICE_IDS["core"]["yearly"])
    monkeypatch.setenv("STRIPE_PRO_MONTHLY_PRICE_ID", PRICE_IDS["pro"]["monthly"])
    monkeypatch.setenv("STRIPE_PRO_YEARLY_PRICE_ID", PRICE_IDS["pro"]["yearly"])
    monkeypatch.delenv("STRIPE_PRICE_OVERRIDES", raising=False)
    reload_config()
    clear_provider_cache()
    yield
    clear_provider_cache()


class StubDatabase:
    """In-memory stand-in for the Supabase client."""

    def __init__(self, households: Optional[Dict[str, Dict[str, Any]]] = None):
        self.households: Dict[str, Dict[str, Any]] = {
            household_id: {"id": household_id, **row} for household_id, row in (households or {}).items()
        }
        self.updates: List[tuple[str, Dict[str, Any]]] = []
        self.events: List[Dict[str, Any]] = []
        self.fail_updates = False
        self.fail_events = False

    def get_household(self, household_id: str) -> Optional[Dict[str, Any]]:
        row = self.households.get(household_id)
        return dict(row) if row else None

    def update_household(self, household_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self.fail_updates:
            raise RuntimeError("database unavailable")
        self.updates.append((household_id, dict(updates)))
        row = self.households.get(household_id)
        if row is None:
            return None
        row.update(updates)
        return dict(row)

    def record_subscription_event(
        self,
        *,
        household_id: Optional[str],
        stripe_event_id: Optional[str],
        event_type: str,
        data: Dict[str, Any],
    ) -> None:
        if self.fail_events:
            raise RuntimeError("database unavailable")
        # Mirror the JSON round trip Supabase performs on insert.
        self.events.append(
            {
                "household_id": household_id,
                "stripe_event_id": stripe_event_id,
                "event_type": event_type,
                "data": json.loads(json.dumps(data, allow_nan=False)),
            }
        )


class StubProvider:
    """Billing provider double: real signature checks, canned subscriptions."""

    key = "stripe"

    def __init__(self, subscriptions: Optional[Dict[str, Dict[str, Any]]] = None):
        self.subscriptions: Dict[str, Dict[str, Any]] = subscriptions or {}
        self.retrieve_calls: List[str] = []
        self.fail_retrieve = False
        self.customers: List[Dict[str, Any]] = []
        self.checkout_sessions: List[Dict[str, Any]] = []
        self.portal_sessions: List[Dict[str, Any]] = []
        self._service = StripeBillingService("sk_test_123", webhook_secret=WEBHOOK_SECRET)

    def is_configured(self) -> bool:
        return True

    def parse_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        return self._service.parse_event(payload, signature)

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        self.retrieve_calls.append(subscription_id)
        if self.fail_retrieve:
            raise RuntimeError("stripe unavailable")
        if subscription_id not in self.subscriptions:
            error = LookupError(f"No such subscription: '{subscription_id}'")
            error.code = "resource_missing"  # type: ignore[attr-defined]
            raise error
        return copy.deepcopy(self.subscriptions[subscription_id])

    def create_customer(self, *, email: Optional[str], metadata: Dict[str, str]) -> Dict[str, Any]:
        customer = {"id": f"cus_{len(self.customers) + 1}", "email": email, "metadata": dict(metadata)}
        self.customers.append(customer)
        return customer

    def create_checkout_session(self, **kwargs: Any) -> Dict[str, Any]:
        self.checkout_sessions.append(kwargs)
        return {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}

    def create_billing_portal_session(self, *, customer_id: str, return_url: str) -> Dict[str, Any]:
        self.portal_sessions.append({"customer_id": customer_id, "return_url": return_url})
        return {"id": "bps_1", "url": "https://billing.stripe.test/bps_1"}


def sign_payload(payload: bytes, *, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a ``stripe-signature`` header the same way Stripe does."""

    signed_at = int(time.time()) if timestamp is None else timestamp
    signed_payload = f"{signed_at}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={signed_at},v1={digest}"


def make_subscription(
    subscription_id: str = "sub_1",
    *,
    household_id: Optional[str] = "H1",
    status: str = "active",
    price_id: Optional[str] = PRICE_IDS["core"]["monthly"],
    current_period_end: Any = PERIOD_END,
    **extra: Any,
) -> Dict[str, Any]:
    items: List[Dict[str, Any]] = []
    if price_id:
        items.append({"id": "si_1", "price": {"id": price_id, "recurring": {"interval": "month"}}})
    subscription: Dict[str, Any] = {
        "id": subscription_id,
        "object": "subscription",
        "customer": "cus_1",
        "status": status,
        "current_period_end": current_period_end,
        "cancel_at_period_end": False,
        "items": {"object": "list", "data": items},
        "metadata": {"household_id": household_id} if household_id else {},
    }
    subscription.update(extra)
    return subscription


def make_event(event_type: str, subject: Dict[str, Any], *, event_id: str = "evt_1") -> Dict[str, Any]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": subject},
    }


@pytest.fixture
def db() -> StubDatabase:
    return StubDatabase({"H1": {"name": "Lee family", "subscription_status": None, "subscription_plan": "free"}})


@pytest.fixture
def provider() -> StubProvider:
    return StubProvider({"sub_1": make_subscription()})


@pytest.fixture
def event_factory() -> Callable[..., Dict[str, Any]]:
    return make_event


@pytest.fixture
def subscription_factory() -> Callable[..., Dict[str, Any]]:
    return make_subscription


@pytest.fixture
def signer() -> Callable[..., str]:
    return sign_payload
