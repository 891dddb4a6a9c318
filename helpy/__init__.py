"""
Helpy Billing Package

This package contains the household billing backend:
- api: FastAPI application and billing routes
- billing: Stripe webhook reconciliation, entitlements and provider wrappers
- db: Supabase client for households and subscription events
- tests: Test suites
"""
