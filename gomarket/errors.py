"""
Cart Errors

Message constants and the exception types raised by the cart manager.

- ProductNotFoundError, InvalidProductError and ConfigurationError are caller
  errors and are raised synchronously from the offending call.
- StorageError is an infrastructure failure. Write failures never reach the
  mutation caller; they are logged and handed to the on_storage_error hook.
"""

from typing import Optional

# Product errors
ERROR_PRODUCT_NOT_FOUND = "Product not found in cart"
ERROR_INVALID_PRODUCT = "Invalid product"

# Manager lifecycle errors
ERROR_CART_NOT_LOADED = "Cart must be loaded before use; await CartManager.load() first"
ERROR_CART_ALREADY_LOADED = "Cart is already loaded"
ERROR_CART_CLOSED = "Cart manager is closed"
ERROR_NO_EVENT_LOOP = "Cart mutations must run inside a running event loop"

# Storage errors
ERROR_STORAGE_READ = "Failed to read cart snapshot"
ERROR_STORAGE_WRITE = "Failed to write cart snapshot"
ERROR_CORRUPT_SNAPSHOT = "Stored cart snapshot is corrupted"


class CartError(Exception):
    """Base class for all cart errors."""


class ProductNotFoundError(CartError):
    """increment/decrement/remove called with an id that is not in the cart."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"{ERROR_PRODUCT_NOT_FOUND}: {product_id}")


class InvalidProductError(CartError, ValueError):
    """add_to_cart received a value that is not a valid product."""


class ConfigurationError(CartError):
    """The manager was used outside its initialized scope."""


class StorageError(CartError):
    """Reading from or writing to the key-value store failed."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


class CorruptSnapshotError(StorageError):
    """The stored snapshot could not be deserialized. The raw bytes are kept."""

    def __init__(self, message: str, key: Optional[str] = None, raw: Optional[bytes] = None):
        self.raw = raw
        super().__init__(message, key=key)
