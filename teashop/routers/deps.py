"""
Shared Dependencies for Routers

Lazy-loaded singletons to optimize cold start. Tests replace them through
``app.dependency_overrides``.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from teashop.realtime import RealtimeHub
    from teashop.services.cart_service import CartService
    from teashop.services.catalog_service import CatalogService


# ==================== LAZY SINGLETONS ====================

_realtime_hub: Optional["RealtimeHub"] = None
_cart_service: Optional["CartService"] = None
_catalog_service: Optional["CatalogService"] = None


def get_realtime_hub() -> "RealtimeHub":
    """Get or create RealtimeHub singleton (connected by the app lifespan)"""
    global _realtime_hub
    if _realtime_hub is None:
        from teashop.realtime import RealtimeHub
        _realtime_hub = RealtimeHub()
    return _realtime_hub


def get_cart_service() -> "CartService":
    """Get or create CartService singleton (lazy loaded)"""
    global _cart_service
    if _cart_service is None:
        from teashop.db import get_supabase_sync
        from teashop.services.cart_service import CartService
        from teashop.services.repositories import CartRepository, OrderRepository, ProductRepository

        client = get_supabase_sync()
        _cart_service = CartService(
            ProductRepository(client), CartRepository(client), OrderRepository(client)
        )
    return _cart_service


def get_catalog_service() -> "CatalogService":
    """Get or create CatalogService singleton (lazy loaded)"""
    global _catalog_service
    if _catalog_service is None:
        from teashop.db import get_supabase_sync
        from teashop.services.catalog_service import CatalogService
        from teashop.services.repositories import ProductRepository

        _catalog_service = CatalogService(ProductRepository(get_supabase_sync()), get_realtime_hub())
    return _catalog_service


# ==================== SHUTDOWN HELPERS ====================

def shutdown_services() -> None:
    """Release singletons (realtime connection included)."""
    global _cart_service, _catalog_service
    if _realtime_hub is not None:
        _realtime_hub.disconnect()
    _cart_service = None
    _catalog_service = None
