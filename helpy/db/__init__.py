"""
Database module for the billing service.

This module provides:
- Supabase client construction
- Household billing reads and partial updates
- The append-only subscription_events audit log
"""

from .client import DatabaseClient, get_database_client, reset_database_client

__all__ = [
    "DatabaseClient",
    "get_database_client",
    "reset_database_client",
]
