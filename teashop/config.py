"""Runtime configuration read from environment variables."""
import os
from dataclasses import dataclass
from functools import lru_cache


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Client and server settings.

    Attributes:
        api_url: Base URL of the cart/product API (including the /api prefix)
        http_timeout: Timeout for remote cart/product calls, seconds
        tombstone_grace: How long a deleted product id suppresses snapshots, seconds
        realtime_max_retries: Resubscribe attempts before entering degraded mode
        realtime_base_delay: First backoff unit for realtime retries, seconds
        local_product_max_age: Age after which local-only products are purged, seconds
        supabase_url, supabase_key: Document store (server side)
        redis_url, redis_token: Upstash REST endpoint for key-value slots and the realtime stream
    """

    api_url: str = "http://localhost:5000/api"
    http_timeout: float = 10.0
    tombstone_grace: float = 120.0
    realtime_max_retries: int = 3
    realtime_base_delay: float = 1.0
    local_product_max_age: float = 86400.0
    supabase_url: str = ""
    supabase_key: str = ""
    redis_url: str = ""
    redis_token: str = ""


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings from the environment (cached)."""
    return Settings(
        api_url=os.environ.get("SHOP_API_URL", Settings.api_url).rstrip("/"),
        http_timeout=_env_float("HTTP_TIMEOUT_SECS", Settings.http_timeout),
        tombstone_grace=_env_float("TOMBSTONE_GRACE_SECS", Settings.tombstone_grace),
        realtime_max_retries=_env_int("REALTIME_MAX_RETRIES", Settings.realtime_max_retries),
        realtime_base_delay=_env_float("REALTIME_BASE_DELAY_SECS", Settings.realtime_base_delay),
        local_product_max_age=_env_float("LOCAL_PRODUCT_MAX_AGE_SECS", Settings.local_product_max_age),
        supabase_url=os.environ.get("SUPABASE_URL", ""),
        supabase_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY", ""),
        redis_url=os.environ.get("UPSTASH_REDIS_REST_URL", ""),
        redis_token=os.environ.get("UPSTASH_REDIS_REST_TOKEN", ""),
    )
