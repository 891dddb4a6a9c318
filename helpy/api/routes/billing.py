"""Billing-related API endpoints (Stripe checkout, portal, webhook)."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from helpy.api.dependencies import get_database, get_provider, get_webhook_processor
from helpy.api.schemas import (
    BillingPortalRequest,
    BillingPortalResponse,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    WebhookAcknowledgement,
)
from helpy.billing import (
    BillingPortalNotConfiguredError,
    BillingProvider,
    ProviderNotConfiguredError,
    SubscriptionStatus,
    WebhookProcessor,
)
from helpy.billing.plans import parse_price_key, resolve_price_id
from helpy.billing.webhook import ACKNOWLEDGEMENT
from helpy.config import CONFIG
from helpy.db import DatabaseClient

logger = logging.getLogger(__name__)

router = APIRouter()

ACTIVE_SUBSCRIPTION_MESSAGE = (
    "You already have an active subscription. Please manage your existing subscription instead."
)


def _app_url() -> str:
    return str(getattr(CONFIG, "app_url", "") or "").rstrip("/")


def _has_active_subscription(provider: BillingProvider, household: Dict[str, Any]) -> bool:
    """Guard against buying a second subscription for the same household."""

    subscription_id = household.get("stripe_subscription_id")
    if not subscription_id or household.get("subscription_status") != SubscriptionStatus.ACTIVE.value:
        return False
    try:
        existing = provider.retrieve_subscription(subscription_id)
    except Exception as exc:
        # A subscription Stripe no longer knows about does not block checkout.
        if getattr(exc, "code", None) != "resource_missing":
            logger.error("Error checking existing subscription %s: %s", subscription_id, exc)
        return False
    return (existing or {}).get("status") in {SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value}


@router.post("/billing/checkout", response_model=CheckoutSessionResponse, status_code=status.HTTP_200_OK)
def create_checkout_session(
    request: CheckoutSessionRequest,
    db: DatabaseClient = Depends(get_database),
    provider: BillingProvider = Depends(get_provider),
) -> CheckoutSessionResponse:
    plan, period = parse_price_key(request.price_key)
    price_id = resolve_price_id(plan, period)
    if not price_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid parameters")

    household = db.get_household(request.household_id)
    if not household:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Household not found")

    if _has_active_subscription(provider, household):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=ACTIVE_SUBSCRIPTION_MESSAGE)

    metadata = {"household_id": request.household_id}
    try:
        customer_id = household.get("stripe_customer_id")
        if not customer_id:
            customer = provider.create_customer(email=request.user_email, metadata=metadata)
            customer_id = customer["id"]
            try:
                db.update_household(request.household_id, {"stripe_customer_id": customer_id})
            except Exception as exc:
                logger.error("Could not store customer %s on household %s: %s", customer_id, request.household_id, exc)

        app_url = _app_url()
        session = provider.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            success_url=f"{app_url}/?session_id={{CHECKOUT_SESSION_ID}}&success=true",
            cancel_url=f"{app_url}/?canceled=true",
            metadata={**metadata, "plan": plan.value, "period": period},
            subscription_metadata=metadata,
        )
    except ProviderNotConfiguredError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return CheckoutSessionResponse(url=session["url"])


@router.post("/billing/portal", response_model=BillingPortalResponse, status_code=status.HTTP_200_OK)
def create_billing_portal_session(
    request: BillingPortalRequest,
    db: DatabaseClient = Depends(get_database),
    provider: BillingProvider = Depends(get_provider),
) -> BillingPortalResponse:
    household = db.get_household(request.household_id) or {}
    customer_id = household.get("stripe_customer_id")
    if not customer_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No subscription found")

    try:
        portal_session = provider.create_billing_portal_session(
            customer_id=customer_id,
            return_url=f"{_app_url()}?portal_return=true",
        )
    except (ProviderNotConfiguredError, BillingPortalNotConfiguredError) as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return BillingPortalResponse(url=portal_session["url"])


@router.post("/billing/webhook", response_model=WebhookAcknowledgement, status_code=status.HTTP_200_OK)
async def stripe_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> JSONResponse:
    # Signatures cover the exact bytes, so the body must not be parsed first.
    payload = await request.body()
    signature = request.headers.get(getattr(CONFIG, "stripe_signature_header", "stripe-signature"))

    try:
        result = await run_in_threadpool(processor.process, payload, signature)
    except Exception:
        # Verification never raises, so anything here happened after the event was authenticated.
        logger.exception("Webhook processing escaped the pipeline; acknowledging anyway")
        return JSONResponse(status_code=status.HTTP_200_OK, content=dict(ACKNOWLEDGEMENT))

    return JSONResponse(status_code=result.status_code, content=result.body)
