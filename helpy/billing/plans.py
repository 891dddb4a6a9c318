"""Plan vocabulary, subscription statuses, and household entitlement limits."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from helpy.config import CONFIG


class PlanKey(str, Enum):
    """Plan tiers a household can be on."""

    FREE = "free"
    CORE = "core"
    PRO = "pro"


class SubscriptionStatus(str, Enum):
    """Stripe subscription status codes.

    Upstream values outside this set are stored verbatim; the enum only exists
    for comparisons.
    """

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"


TERMINAL_STATUSES = frozenset({SubscriptionStatus.CANCELED.value, SubscriptionStatus.UNPAID.value})
BILLING_PERIODS = ("monthly", "yearly")


@dataclass(frozen=True)
class PlanLimits:
    """Account limits granted by a plan."""

    max_family_members: int
    max_helpers: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "max_family_members": self.max_family_members,
            "max_helpers": self.max_helpers,
        }


PLAN_LIMITS: Mapping[PlanKey, PlanLimits] = MappingProxyType(
    {
        PlanKey.FREE: PlanLimits(max_family_members=4, max_helpers=0),
        PlanKey.CORE: PlanLimits(max_family_members=6, max_helpers=2),
        PlanKey.PRO: PlanLimits(max_family_members=10, max_helpers=999),
    }
)


def coerce_plan(value: Any) -> Optional[PlanKey]:
    if isinstance(value, PlanKey):
        return value
    if not isinstance(value, str):
        return None
    try:
        return PlanKey(value.strip().lower())
    except ValueError:
        return None


def limits_for(plan: PlanKey | str) -> PlanLimits:
    key = coerce_plan(plan)
    if key is None:
        raise KeyError(f"Unknown plan: {plan!r}")
    return PLAN_LIMITS[key]


def entitlement_fields(plan: PlanKey | str) -> Dict[str, Any]:
    """Partial household update setting the plan and its limits."""

    key = coerce_plan(plan)
    if key is None:
        raise KeyError(f"Unknown plan: {plan!r}")
    return {"subscription_plan": key.value, **PLAN_LIMITS[key].to_dict()}


# ----------------------------------------------------------------------
# Stripe price mapping
# ----------------------------------------------------------------------
def _configured_prices(price_ids: Optional[Mapping[str, Mapping[str, str]]] = None) -> Mapping[str, Mapping[str, str]]:
    if price_ids is not None:
        return price_ids
    return getattr(CONFIG, "stripe_price_ids", {}) or {}


def parse_price_key(price_key: str) -> Tuple[PlanKey, str]:
    """Split ``core_monthly`` into ``(PlanKey.CORE, "monthly")``.

    Only paid plans can be purchased.
    """

    plan_part, _, period = (price_key or "").strip().lower().partition("_")
    plan = coerce_plan(plan_part)
    if plan is None or plan is PlanKey.FREE or period not in BILLING_PERIODS:
        raise ValueError(f"Unsupported price key: {price_key!r}")
    return plan, period


def resolve_price_id(
    plan: PlanKey | str,
    period: str,
    price_ids: Optional[Mapping[str, Mapping[str, str]]] = None,
) -> Optional[str]:
    key = coerce_plan(plan)
    if key is None:
        return None
    plan_prices = _configured_prices(price_ids).get(key.value) or {}
    price_id = plan_prices.get((period or "monthly").strip().lower())
    return price_id or None


def plan_for_price(
    price_id: Optional[str],
    price_ids: Optional[Mapping[str, Mapping[str, str]]] = None,
) -> Optional[PlanKey]:
    """Reverse lookup of a Stripe price id to the plan it sells."""

    if not price_id:
        return None
    for plan_value, interval_map in _configured_prices(price_ids).items():
        if not isinstance(interval_map, Mapping):
            continue
        if price_id in interval_map.values():
            return coerce_plan(plan_value)
    return None
