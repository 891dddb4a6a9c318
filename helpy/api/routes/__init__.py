"""Route modules for the billing API."""

from . import billing

__all__ = [
    "billing",
]
