"""
Database client for household billing state.
Handles the households table and the subscription_events audit log.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from supabase import Client, create_client

from ..config import CONFIG

logger = logging.getLogger(__name__)

HOUSEHOLD_BILLING_COLUMNS = (
    "id",
    "name",
    "stripe_customer_id",
    "stripe_subscription_id",
    "subscription_status",
    "subscription_plan",
    "subscription_period",
    "subscription_current_period_end",
    "max_family_members",
    "max_helpers",
)


class SupabaseDatabaseClient:
    """Database client for Supabase operations."""

    def __init__(self, client: Optional[Client] = None):
        if client is not None:
            self.client = client
            self.using_service_role = True
            return

        self.supabase_url = getattr(CONFIG, "supabase_url", None)

        # Prefer service role key so webhook writes bypass RLS
        service_key = getattr(CONFIG, "supabase_service_role_key", None)
        anon_key = getattr(CONFIG, "supabase_anon_key", None)
        self.supabase_key = service_key or anon_key
        self.using_service_role = bool(service_key)

        if not self.supabase_url or not self.supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_ANON_KEY) environment variables are required")

        if not self.using_service_role:
            logger.warning("DatabaseClient: service role key missing; household updates may be blocked by RLS")

        self.client: Client = create_client(self.supabase_url, self.supabase_key)

    # ------------------------------------------------------------------
    # Households
    # ------------------------------------------------------------------
    def get_household(self, household_id: str) -> Optional[Dict[str, Any]]:
        """Return the billing columns of a household, or None when it cannot be read."""
        if not household_id:
            return None
        try:
            result = (
                self.client.table("households")
                .select(",".join(HOUSEHOLD_BILLING_COLUMNS))
                .eq("id", household_id)
                .limit(1)
                .execute()
            )
            return result.data[0] if result and result.data else None
        except Exception as exc:
            logger.error("Error fetching household %s: %s", household_id, exc)
            return None

    def update_household(self, household_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply a partial update to a household row.

        Errors propagate so callers can decide whether a failed write is fatal.
        """
        result = (
            self.client.table("households")
            .update(dict(updates))
            .eq("id", household_id)
            .execute()
        )
        return result.data[0] if result and result.data else None

    # ------------------------------------------------------------------
    # Subscription events (append-only audit log)
    # ------------------------------------------------------------------
    def record_subscription_event(
        self,
        *,
        household_id: Optional[str],
        stripe_event_id: Optional[str],
        event_type: str,
        data: Dict[str, Any],
    ) -> None:
        """Insert one audit row. Duplicate deliveries produce duplicate rows."""
        body = {
            "household_id": household_id,
            "stripe_event_id": stripe_event_id,
            "event_type": event_type,
            "data": data,
        }
        self.client.table("subscription_events").insert(body).execute()


# Global database client instance
_database_client: Optional[SupabaseDatabaseClient] = None


def get_database_client() -> SupabaseDatabaseClient:
    """Get the process-wide database client, creating it on first use."""
    global _database_client
    if _database_client is None:
        _database_client = SupabaseDatabaseClient()
    return _database_client


def reset_database_client() -> None:
    global _database_client
    _database_client = None


# Simple alias for readability
DatabaseClient = SupabaseDatabaseClient
