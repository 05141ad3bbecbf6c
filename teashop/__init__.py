"""
Tea Shop Core Module

This package contains the storefront core:
- services.pricing: unit price and line total rules
- cart: local cart store and remote cart sync client
- catalog: product reconciliation, tombstones and admin write path
- storage / db: durable key-value slots, Supabase and Redis clients
- routers: FastAPI endpoints for the cart, product and order service

Note: Imports are lazy to keep module loading cheap in serverless environments.
"""

__all__ = [
    "cart",
    "catalog",
    "services",
    "storage",
]
