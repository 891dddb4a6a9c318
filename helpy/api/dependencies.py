"""FastAPI dependencies shared across the billing API.

Routes never reach for module-level clients directly; everything they talk to
comes through these functions so tests can swap them with
``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, status

from ..billing import BillingProvider, WebhookProcessor, get_billing_provider
from ..config import CONFIG
from ..db import DatabaseClient, get_database_client


def get_database() -> DatabaseClient:
    """Return the shared database client instance."""

    return get_database_client()


def get_provider() -> BillingProvider:
    """Return the configured billing provider or answer 503."""

    try:
        provider = get_billing_provider()
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Billing provider is not available") from exc
    if not provider.is_configured():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Billing provider is not configured")
    return provider


def get_webhook_processor(
    provider: BillingProvider = Depends(get_provider),
    db: DatabaseClient = Depends(get_database),
) -> WebhookProcessor:
    """Build the webhook pipeline from the injected provider and database."""

    return WebhookProcessor.from_collaborators(
        provider,
        db,
        price_ids=getattr(CONFIG, "stripe_price_ids", None),
    )
