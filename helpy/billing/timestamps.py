"""Normalization of Stripe epoch-second timestamps."""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# Largest instant a datetime can hold, expressed in epoch seconds.
MAX_EPOCH_SECONDS = (datetime.max.replace(tzinfo=timezone.utc) - _EPOCH).total_seconds()


def _epoch_seconds(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        aware = raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
        return (aware - _EPOCH).total_seconds()
    if isinstance(raw, date):
        return (datetime(raw.year, raw.month, raw.day, tzinfo=timezone.utc) - _EPOCH).total_seconds()
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        text = raw.strip()
        # float() also accepts digit separators, which Stripe never sends.
        if not text or "_" in text:
            return None
        try:
            return float(text)
        except ValueError:
            return None
    return None


def normalize_timestamp(raw: Any) -> Optional[datetime]:
    """Convert ``raw`` seconds-since-epoch into an aware UTC datetime.

    Returns ``None`` for anything that is not a finite, positive, representable
    instant. Never raises.
    """

    try:
        seconds = _epoch_seconds(raw)
        if seconds is None or not math.isfinite(seconds):
            return None
        if seconds <= 0 or seconds > MAX_EPOCH_SECONDS:
            return None
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except Exception as exc:
        logger.debug("Discarding invalid timestamp %r: %s", raw, exc)
        return None


def timestamp_to_iso(raw: Any) -> Optional[str]:
    """ISO-8601 form of :func:`normalize_timestamp`, suitable for storage."""

    normalized = normalize_timestamp(raw)
    if normalized is None:
        return None
    return normalized.isoformat()


__all__ = ["MAX_EPOCH_SECONDS", "normalize_timestamp", "timestamp_to_iso"]
