"""
Storage Module - configuration and the Upstash Redis client

Provides:
- Environment configuration for cart persistence
- Singleton async Upstash Redis client (RedisStore backend)
- Storage key namespace
"""

import os
from typing import Optional

from upstash_redis.asyncio import Redis as AsyncRedis


# Upstash Redis - standard env var names per docs
UPSTASH_REDIS_REST_URL = os.environ.get("UPSTASH_REDIS_REST_URL", "")
UPSTASH_REDIS_REST_TOKEN = os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")

# Cart persistence
CART_STORAGE_KEY = os.environ.get("CART_STORAGE_KEY", "@GoMarketplace:products")
CART_CORRUPT_SNAPSHOT_POLICY = os.environ.get("CART_CORRUPT_SNAPSHOT_POLICY", "reset").lower()
CART_DATA_DIR = os.environ.get("CART_DATA_DIR", "./data")
CART_TTL_SECONDS: Optional[int] = (
    int(os.environ["CART_TTL_SECONDS"]) if os.environ.get("CART_TTL_SECONDS") else None
)


# Singleton instance
_redis_client: Optional[AsyncRedis] = None


def get_redis() -> AsyncRedis:
    """
    Get async Upstash Redis client (singleton).

    Uses standard Upstash env var names:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN
    """
    global _redis_client

    if _redis_client is None:
        if not UPSTASH_REDIS_REST_URL or not UPSTASH_REDIS_REST_TOKEN:
            raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
        _redis_client = AsyncRedis(url=UPSTASH_REDIS_REST_URL, token=UPSTASH_REDIS_REST_TOKEN)

    return _redis_client


class StorageKeys:
    """Keys for persisted cart data."""

    CART = CART_STORAGE_KEY  # full cart snapshot, "@GoMarketplace:" namespace
