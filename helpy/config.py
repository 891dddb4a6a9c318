"""Environment-driven runtime settings for the billing service."""

from __future__ import annotations

import json
import os
from types import SimpleNamespace
from typing import Optional, Sequence, Tuple

DEFAULT_APP_URL = "https://helpyfam.com"


def _env_str(
    name: str,
    default: Optional[str] = None,
    *,
    alias: Optional[str] = None,
    empty_to_none: bool = True,
) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None and alias:
        raw = os.getenv(alias)
    if raw is None:
        return default
    value = raw.strip()
    if not value and empty_to_none:
        return None if default is None else default
    return value if value else default


def _env_bool(name: str, default: bool, *, alias: Optional[str] = None) -> bool:
    raw = os.getenv(name)
    if raw is None and alias:
        raw = os.getenv(alias)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_tuple(name: str, default: Sequence[str]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return tuple(default)
    items = tuple(part.strip() for part in raw.split(",") if part.strip())
    return items or tuple(default)


def _parse_price_overrides(raw_value: Optional[str]) -> dict[str, dict[str, str]]:
    """Parse ``{"core": {"monthly": "price_..."}}`` style JSON into a normalized map."""

    if not raw_value:
        return {}
    try:
        parsed = json.loads(raw_value)
    except json.JSONDecodeError:
        return {}
    if not isinstance(parsed, dict):
        return {}

    overrides: dict[str, dict[str, str]] = {}
    for plan_key, interval_map in parsed.items():
        if not isinstance(interval_map, dict):
            continue
        normalized: dict[str, str] = {}
        for interval_name, price_id in interval_map.items():
            if isinstance(interval_name, str) and isinstance(price_id, str) and price_id.strip():
                normalized[interval_name.strip().lower()] = price_id.strip()
        if normalized:
            overrides[str(plan_key).strip().lower()] = normalized
    return overrides


class Settings(SimpleNamespace):
    """Simple attribute container used throughout the codebase."""


CONFIG = Settings()


def _compute_values() -> dict[str, object]:
    # -----------------------------------------------------------------------
    # RUNTIME ENVIRONMENT
    # -----------------------------------------------------------------------
    environment = _env_str("ENV", "prod", empty_to_none=False).lower()
    if environment not in {"dev", "test", "prod"}:
        environment = "prod"
    is_development = environment == "dev"

    app_url = _env_str("APP_URL", None, alias="NEXT_PUBLIC_APP_URL") or DEFAULT_APP_URL

    # -----------------------------------------------------------------------
    # SUPABASE
    # -----------------------------------------------------------------------
    supabase_url = _env_str("SUPABASE_URL", None)
    supabase_anon_key = _env_str("SUPABASE_ANON_KEY", None)
    supabase_service_role_key = _env_str("SUPABASE_SERVICE_ROLE_KEY", None)
    supabase_configured = bool(supabase_url) and bool(supabase_service_role_key or supabase_anon_key)

    # -----------------------------------------------------------------------
    # BILLING / STRIPE
    # -----------------------------------------------------------------------
    stripe_secret_key = _env_str("STRIPE_SECRET_KEY", None)
    stripe_webhook_secret = _env_str("STRIPE_WEBHOOK_SECRET", None)
    stripe_webhook_tolerance = _env_int("STRIPE_WEBHOOK_TOLERANCE", 300)
    billing_default_provider = _env_str("BILLING_PROVIDER_DEFAULT", "stripe", empty_to_none=False).lower()

    stripe_price_ids: dict[str, dict[str, str]] = {}
    for plan_key in ("core", "pro"):
        for interval in ("monthly", "yearly"):
            price_id = _env_str(f"STRIPE_{plan_key.upper()}_{interval.upper()}_PRICE_ID", None)
            if price_id:
                stripe_price_ids.setdefault(plan_key, {})[interval] = price_id

    raw_price_overrides = _env_str("STRIPE_PRICE_OVERRIDES", None)
    for plan_key, interval_map in _parse_price_overrides(raw_price_overrides).items():
        stripe_price_ids.setdefault(plan_key, {}).update(interval_map)

    stripe_configured = bool(stripe_secret_key)

    # -----------------------------------------------------------------------
    # HTTP API
    # -----------------------------------------------------------------------
    api_title = _env_str("API_TITLE", "Helpy Billing API", empty_to_none=False)
    api_version = _env_str("API_VERSION", "1.0.0", empty_to_none=False)
    api_cors_origins = _env_tuple("API_CORS_ORIGINS", ())
    stripe_signature_header = _env_str("STRIPE_SIGNATURE_HEADER", "stripe-signature", empty_to_none=False).lower()

    return {
        "environment": environment,
        "is_development": is_development,
        "app_url": app_url.rstrip("/"),
        "supabase_url": supabase_url,
        "supabase_anon_key": supabase_anon_key,
        "supabase_service_role_key": supabase_service_role_key,
        "supabase_configured": supabase_configured,
        "stripe_secret_key": stripe_secret_key,
        "stripe_webhook_secret": stripe_webhook_secret,
        "stripe_webhook_tolerance": stripe_webhook_tolerance,
        "stripe_signature_header": stripe_signature_header,
        "stripe_price_ids": stripe_price_ids,
        "stripe_billing_configured": stripe_configured,
        "billing_default_provider": billing_default_provider,
        "api_title": api_title,
        "api_version": api_version,
        "api_cors_origins": api_cors_origins,
    }


def reload_config() -> None:
    CONFIG.__dict__.update(_compute_values())


def load_envs(global_dir: str) -> None:
    """Load a ``.env`` file from ``global_dir`` and refresh ``CONFIG``."""
    from dotenv import load_dotenv

    load_dotenv(os.path.join(global_dir, ".env"))
    reload_config()


# Load once on import so downstream modules can use CONFIG immediately.
reload_config()
