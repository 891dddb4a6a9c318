"""Pydantic schemas for the billing API."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from helpy.billing.plans import parse_price_key


class CheckoutSessionRequest(BaseModel):
    household_id: str = Field(..., min_length=1)
    price_key: str = Field(..., min_length=1)
    user_email: Optional[str] = None

    @field_validator("price_key", mode="before")
    @classmethod
    def normalize_price_key(cls, value: Optional[str]) -> str:
        candidate = str(value or "").strip().lower()
        parse_price_key(candidate)
        return candidate

    @field_validator("household_id", mode="before")
    @classmethod
    def strip_household_id(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if isinstance(value, str) else value


class CheckoutSessionResponse(BaseModel):
    url: str


class BillingPortalRequest(BaseModel):
    household_id: str = Field(..., min_length=1)


class BillingPortalResponse(BaseModel):
    url: str


class WebhookAcknowledgement(BaseModel):
    received: bool = True
