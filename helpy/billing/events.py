"""Accessors for Stripe event envelopes and their subject objects."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

HOUSEHOLD_METADATA_KEY = "household_id"


def event_subject(event: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``event.data.object`` or an empty dict."""

    data = event.get("data") if isinstance(event, dict) else None
    subject = data.get("object") if isinstance(data, dict) else None
    return subject if isinstance(subject, dict) else {}


def subject_metadata(subject: Any) -> Dict[str, Any]:
    if not isinstance(subject, dict):
        return {}
    metadata = subject.get("metadata") or {}
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except (ValueError, TypeError):
            metadata = {}
    return metadata if isinstance(metadata, dict) else {}


def household_id_from(subject: Any) -> Optional[str]:
    value = subject_metadata(subject).get(HOUSEHOLD_METADATA_KEY)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def object_id(value: Any) -> Optional[str]:
    """Stripe references are either an id string or an expanded object."""

    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        ref = value.get("id")
        return ref if isinstance(ref, str) and ref else None
    return None


def invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    subscription_id = object_id(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    # Newer API versions nest the reference under parent.subscription_details.
    parent = invoice.get("parent")
    if isinstance(parent, dict):
        details = parent.get("subscription_details")
        if isinstance(details, dict):
            return object_id(details.get("subscription"))
    return None


__all__ = [
    "HOUSEHOLD_METADATA_KEY",
    "event_subject",
    "household_id_from",
    "invoice_subscription_id",
    "object_id",
    "subject_metadata",
]
