"""Cart package: models, storage, and manager."""
from .models import CartItem, dump_snapshot, load_snapshot
from .service import CartManager, open_cart
from .storage import FileStore, KeyValueStore, MemoryStore, RedisStore, SnapshotWriter

__all__ = [
    "CartItem",
    "CartManager",
    "FileStore",
    "KeyValueStore",
    "MemoryStore",
    "RedisStore",
    "SnapshotWriter",
    "dump_snapshot",
    "load_snapshot",
    "open_cart",
]
