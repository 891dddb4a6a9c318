"""HTTP surface of the billing service."""
