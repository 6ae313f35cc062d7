"""Cart manager: in-memory cart with write-through persistence."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, Optional, Tuple, Union

from pydantic import ValidationError

from gomarket.db import CART_CORRUPT_SNAPSHOT_POLICY, StorageKeys
from gomarket.errors import (
    ERROR_CART_ALREADY_LOADED,
    ERROR_CART_CLOSED,
    ERROR_CART_NOT_LOADED,
    ERROR_CORRUPT_SNAPSHOT,
    ERROR_INVALID_PRODUCT,
    ERROR_NO_EVENT_LOOP,
    ConfigurationError,
    CorruptSnapshotError,
    InvalidProductError,
    ProductNotFoundError,
    StorageError,
)
from gomarket.logging import get_logger, sanitize_id_for_logging
from gomarket.models import CorruptSnapshotPolicy, ProductIn
from .models import CartItem, dump_snapshot, load_snapshot
from .storage import KeyValueStore, SnapshotWriter, StorageErrorHandler

logger = get_logger(__name__)

Products = Tuple[CartItem, ...]
Subscriber = Callable[[Products], None]


class CartManager:
    """
    Owns the cart for one process.

    The manager is constructed with its store and must be loaded before
    use. Mutations apply to memory immediately, notify subscribers, then
    queue the full snapshot for writing. Write failures never undo a
    mutation.

    Usage:
        manager = CartManager(RedisStore())
        await manager.load()
        manager.add_to_cart({"id": "A", "title": "Shirt", "image_url": "u", "price": 10})
        manager.increment("A")
        await manager.close()
    """

    def __init__(
        self,
        store: KeyValueStore,
        storage_key: str = StorageKeys.CART,
        on_corrupt: Union[CorruptSnapshotPolicy, str] = CART_CORRUPT_SNAPSHOT_POLICY,
        on_storage_error: Optional[StorageErrorHandler] = None,
    ):
        self.store = store
        self.storage_key = storage_key
        try:
            self.on_corrupt = CorruptSnapshotPolicy(on_corrupt)
        except ValueError as e:
            raise ConfigurationError(f"Unknown corrupt snapshot policy: {on_corrupt!r}") from e
        self._writer = SnapshotWriter(store, storage_key, on_error=on_storage_error)
        self._items: List[CartItem] = []
        self._subscribers: List[Subscriber] = []
        self._loaded = False
        self._loading = False
        self._load_failed = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def closed(self) -> bool:
        return self._closed

    async def load(self) -> Products:
        """
        Hydrate the cart from storage. Runs once per manager.

        Returns:
            The loaded products

        Raises:
            ConfigurationError: if already loaded or closed
            CorruptSnapshotError: if the snapshot cannot be parsed and the
                policy is RAISE. The manager stays unloaded; call reset()
                to start over with an empty cart.
            StorageError: if the read itself fails and the policy is RAISE
        """
        if self._closed:
            raise ConfigurationError(ERROR_CART_CLOSED)
        if self._loaded or self._loading:
            raise ConfigurationError(ERROR_CART_ALREADY_LOADED)

        self._loading = True
        raw: Optional[bytes] = None
        try:
            raw = await self.store.read(self.storage_key)
            items = load_snapshot(raw) if raw is not None else []
        except (StorageError, ValueError) as e:
            if self.on_corrupt is CorruptSnapshotPolicy.RAISE:
                self._load_failed = True
                if isinstance(e, StorageError):
                    raise
                raise CorruptSnapshotError(
                    f"{ERROR_CORRUPT_SNAPSHOT}: {e}", key=self.storage_key, raw=raw
                ) from e
            logger.warning(f"Discarding unreadable cart snapshot, starting empty: {e}")
            items = []
        finally:
            self._loading = False

        if self._closed:
            raise ConfigurationError(ERROR_CART_CLOSED)
        self._items = items
        self._loaded = True
        self._load_failed = False
        logger.info(f"Cart loaded with {len(items)} products")
        self._notify()
        return self.products

    def reset(self) -> None:
        """
        Start with an empty cart and persist it.

        Used after load() raised CorruptSnapshotError or StorageError; also
        valid on a loaded cart, where it behaves like clear(). A manager that
        never attempted a load cannot be reset, so an unread snapshot is
        never overwritten.
        """
        if self._closed:
            raise ConfigurationError(ERROR_CART_CLOSED)
        if not (self._loaded or self._load_failed):
            raise ConfigurationError(ERROR_CART_NOT_LOADED)
        self._require_loop()
        self._loaded = True
        self._load_failed = False
        self._items = []
        self._commit()

    async def flush(self) -> None:
        """Wait for queued snapshot writes to finish."""
        await self._writer.flush()

    async def close(self) -> None:
        """Flush pending writes and refuse further use."""
        if self._closed:
            return
        await self.flush()
        self._closed = True
        self._subscribers.clear()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def products(self) -> Products:
        """Current cart contents. Entries are copies; editing them has no effect."""
        self._require_ready()
        return tuple(item.copy() for item in self._items)

    @property
    def total_items(self) -> int:
        """Sum of quantities across all entries."""
        self._require_ready()
        return sum(item.quantity for item in self._items)

    def get(self, product_id: str) -> Optional[CartItem]:
        self._require_ready()
        index = self._find(product_id)
        return self._items[index].copy() if index is not None else None

    def __len__(self) -> int:
        self._require_ready()
        return len(self._items)

    def __contains__(self, product_id: object) -> bool:
        self._require_ready()
        return isinstance(product_id, str) and self._find(product_id) is not None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Call callback(products) after every change. Returns an unsubscribe
        function. Exceptions raised by callbacks are logged and ignored.
        """
        if self._closed:
            raise ConfigurationError(ERROR_CART_CLOSED)
        if callback not in self._subscribers:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_to_cart(self, product: Union[ProductIn, dict]) -> None:
        """
        Add one unit of product. An existing entry is incremented; a new
        entry starts at quantity 1 whatever quantity the input carries.

        Raises:
            InvalidProductError: if product is not a valid product
        """
        self._require_mutable()
        validated = self._validate(product)

        if self._find(validated.id) is not None:
            self.increment(validated.id)
            return

        self._items.append(CartItem.from_product(validated))
        logger.debug(f"Added product {sanitize_id_for_logging(validated.id)} to cart")
        self._commit()

    def increment(self, product_id: str) -> None:
        """
        Raise the quantity of product_id by one.

        Raises:
            ProductNotFoundError: if product_id is not in the cart
        """
        self._require_mutable()
        index = self._index_of(product_id)
        self._items[index].quantity += 1
        self._commit()

    def decrement(self, product_id: str) -> None:
        """
        Lower the quantity of product_id by one, removing the entry when it
        drops below 1.

        Raises:
            ProductNotFoundError: if product_id is not in the cart
        """
        self._require_mutable()
        index = self._index_of(product_id)
        item = self._items[index]

        if item.quantity - 1 < 1:
            del self._items[index]
            logger.debug(f"Removed product {sanitize_id_for_logging(product_id)} from cart")
        else:
            item.quantity -= 1
        self._commit()

    def remove(self, product_id: str) -> None:
        """
        Drop product_id from the cart regardless of quantity.

        Raises:
            ProductNotFoundError: if product_id is not in the cart
        """
        self._require_mutable()
        del self._items[self._index_of(product_id)]
        self._commit()

    def clear(self) -> None:
        """Empty the cart."""
        self._require_mutable()
        self._items = []
        self._commit()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find(self, product_id: str) -> Optional[int]:
        return next(
            (i for i, item in enumerate(self._items) if item.id == product_id),
            None,
        )

    def _index_of(self, product_id: str) -> int:
        index = self._find(product_id)
        if index is None:
            logger.warning(f"Product {sanitize_id_for_logging(product_id)} not in cart")
            raise ProductNotFoundError(product_id)
        return index

    @staticmethod
    def _validate(product: Union[ProductIn, dict]) -> ProductIn:
        if isinstance(product, ProductIn):
            return product
        if not isinstance(product, dict):
            raise InvalidProductError(
                f"{ERROR_INVALID_PRODUCT}: expected a mapping, got {type(product).__name__}"
            )
        try:
            return ProductIn.model_validate(product)
        except ValidationError as e:
            raise InvalidProductError(f"{ERROR_INVALID_PRODUCT}: {e}") from e

    def _require_ready(self) -> None:
        if self._closed:
            raise ConfigurationError(ERROR_CART_CLOSED)
        if not self._loaded:
            raise ConfigurationError(ERROR_CART_NOT_LOADED)

    @staticmethod
    def _require_loop() -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError as e:
            raise ConfigurationError(ERROR_NO_EVENT_LOOP) from e

    def _require_mutable(self) -> None:
        self._require_ready()
        self._require_loop()

    def _commit(self) -> None:
        self._notify()
        self._writer.submit(dump_snapshot(self._items))

    def _notify(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.products
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Cart subscriber raised")


@asynccontextmanager
async def open_cart(store: KeyValueStore, **kwargs) -> AsyncIterator[CartManager]:
    """
    Construct and load a CartManager, closing it (and flushing writes)
    on exit.

        async with open_cart(FileStore()) as cart:
            cart.add_to_cart(product)
    """
    manager = CartManager(store, **kwargs)
    await manager.load()
    try:
        yield manager
    finally:
        await manager.close()
