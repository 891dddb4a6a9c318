"""Make webhook subjects safe to persist in the audit log.

Stripe payloads carry epoch-second timestamps under many keys. Before a
subject is written to ``subscription_events`` every timestamp-like field is
rewritten to an ISO-8601 string (or ``None`` when the value is unusable), so a
single malformed value cannot break the insert.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Optional

from .timestamps import timestamp_to_iso

logger = logging.getLogger(__name__)

TIMESTAMP_SUFFIXES = ("_end", "_at", "_start")
TIMESTAMP_FIELDS = frozenset({"created", "updated", "trial_end"})


def is_timestamp_field(name: Any) -> bool:
    if not isinstance(name, str):
        return False
    return name in TIMESTAMP_FIELDS or name.endswith(TIMESTAMP_SUFFIXES)


def _storable_timestamp(value: Any) -> Optional[str]:
    iso = timestamp_to_iso(value)
    if iso is not None or not isinstance(value, str):
        return iso
    # Audit notes carry values that were already converted to ISO strings.
    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text[:-1] + "+00:00" if text.endswith("Z") else text)
    except ValueError:
        return None
    return timestamp_to_iso(parsed)


def _as_mapping(value: Any) -> Mapping[str, Any] | None:
    if isinstance(value, Mapping):
        return value
    # StripeObject instances are not Mapping subclasses on every SDK release.
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict) and not isinstance(value, type):
        try:
            converted = to_dict()
        except Exception as exc:
            logger.debug("Could not convert %s to a mapping: %s", type(value).__name__, exc)
            return None
        if isinstance(converted, Mapping):
            return converted
    return None


def sanitize_payload(value: Any) -> Any:
    """Return a storable copy of ``value`` with timestamps normalized.

    Total: errors inside a mapping are contained to the offending key, which
    becomes ``None``. Objects that are neither JSON scalars, containers nor
    mappings are replaced by ``None`` as well.
    """

    if value is None:
        return None
    if isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, date):
        return timestamp_to_iso(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_sanitize_item(item) for item in value]

    mapping = _as_mapping(value)
    if mapping is None:
        logger.debug("Dropping unstorable %s value", type(value).__name__)
        return None

    sanitized: dict[Any, Any] = {}
    for key, item in mapping.items():
        try:
            if is_timestamp_field(key):
                sanitized[key] = _storable_timestamp(item)
            else:
                sanitized[key] = sanitize_payload(item)
        except Exception as exc:
            logger.debug("Dropping unsanitizable field %r: %s", key, exc)
            sanitized[key] = None
    return sanitized


def _sanitize_item(item: Any) -> Any:
    try:
        return sanitize_payload(item)
    except Exception as exc:
        logger.debug("Dropping unsanitizable list item: %s", exc)
        return None


__all__ = ["TIMESTAMP_FIELDS", "TIMESTAMP_SUFFIXES", "is_timestamp_field", "sanitize_payload"]
