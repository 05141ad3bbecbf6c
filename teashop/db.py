"""
Storage backends - Supabase tables and Upstash Redis.

Clients are created on first use from ``teashop.config`` and shared for the
life of the process:
- Supabase: products / cart_items / orders tables (API server)
- Async Redis: realtime product stream (XADD on the server, XRANGE in feeds)
- Sync Redis: durable key-value slots (cart, product cache, tombstones), which
  must be written before a cart or catalog mutation returns
"""

from typing import Optional

from supabase import Client, create_client
from upstash_redis import Redis
from upstash_redis.asyncio import Redis as AsyncRedis

from teashop.config import get_settings

_supabase_client: Optional[Client] = None
_redis_client: Optional[AsyncRedis] = None
_sync_redis_client: Optional[Redis] = None


def _redis_credentials() -> tuple[str, str]:
    settings = get_settings()
    if not settings.redis_url or not settings.redis_token:
        raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
    return settings.redis_url, settings.redis_token


def get_supabase_sync() -> Client:
    """
    Shared Supabase client for the repositories.

    Raises:
        ValueError: If credentials are not configured
    """
    global _supabase_client
    if _supabase_client is None:
        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, settings.supabase_key)
    return _supabase_client


def get_redis() -> AsyncRedis:
    """Shared async Upstash client for the realtime product stream."""
    global _redis_client
    if _redis_client is None:
        url, token = _redis_credentials()
        _redis_client = AsyncRedis(url=url, token=token)
    return _redis_client


def get_redis_sync() -> Redis:
    """Shared sync Upstash client for key-value slots."""
    global _sync_redis_client
    if _sync_redis_client is None:
        url, token = _redis_credentials()
        _sync_redis_client = Redis(url=url, token=token)
    return _sync_redis_client


class StorageKeys:
    """Slot and stream names."""

    CART = "cart"
    PRODUCTS = "products"
    TOMBSTONES = "products:deleted:tombstone"

    # Snapshots and product.* events written by RealtimeHub
    PRODUCTS_STREAM = "stream:realtime:products"

    @staticmethod
    def namespaced(namespace: str, key: str) -> str:
        """Per-session slot, e.g. ``shop:42:cart``."""
        return f"{namespace}:{key}" if namespace else key
