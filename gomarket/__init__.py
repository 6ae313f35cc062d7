"""
GoMarketplace cart state manager

- cart: CartManager, cart models and snapshot stores
- db: storage configuration and the Upstash Redis client
- errors: cart exception types
- logging: logging setup
- models: Pydantic boundary schemas

Note: Imports are lazy so that importing the package does not require
Redis configuration.
"""

__all__ = [
    "CartManager",
    "CartItem",
    "open_cart",
    "MemoryStore",
    "FileStore",
    "RedisStore",
    "ProductIn",
]


def __getattr__(name):
    """Lazy attribute access for the public entry points."""
    if name in ("CartManager", "CartItem", "open_cart", "MemoryStore", "FileStore", "RedisStore"):
        from gomarket import cart
        return getattr(cart, name)
    elif name == "ProductIn":
        from gomarket.models import ProductIn
        return ProductIn
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
