"""Lightweight logging helper for one-line service summaries."""

from __future__ import annotations

import logging
from typing import Any

from helpy.config import CONFIG

_LOGGER = logging.getLogger("helpy")


def _coerce(parts: tuple[object, ...]) -> str:
    rendered = " ".join(str(part) for part in parts if part is not None)
    return rendered.strip()


def log(*parts: object, **metadata: Any) -> None:
    """
    Emit an info-level log message.

    Keyword metadata (``event_id=...``, ``household_id=...``) is appended to the
    message so webhook summaries stay greppable in plain-text log sinks.
    """

    message = _coerce(parts)
    if metadata:
        message = f"{message} | {metadata}"

    if not _LOGGER.handlers:
        level = logging.DEBUG if getattr(CONFIG, "is_development", False) else logging.INFO
        logging.basicConfig(level=level)

    _LOGGER.info(message)


__all__ = ["log"]
