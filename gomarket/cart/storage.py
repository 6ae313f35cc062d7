"""
Key-value storage for cart snapshots.

- KeyValueStore: the async contract the cart manager persists through
- RedisStore / FileStore / MemoryStore: backends
- SnapshotWriter: single-writer queue used for write-through
"""
import asyncio
import os
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Protocol, Union
from urllib.parse import quote

from gomarket.db import CART_DATA_DIR, CART_TTL_SECONDS, get_redis
from gomarket.errors import ERROR_STORAGE_READ, ERROR_STORAGE_WRITE, StorageError
from gomarket.logging import get_logger, sanitize_string_for_logging

logger = get_logger(__name__)

StorageErrorHandler = Callable[[StorageError], Union[None, Awaitable[None]]]


class KeyValueStore(Protocol):
    """Async byte store. Backends raise StorageError on failure."""

    async def read(self, key: str) -> Optional[bytes]:
        """Bytes stored under key, or None if never written."""
        ...

    async def write(self, key: str, value: bytes) -> None:
        """Store value under key, replacing previous contents."""
        ...


class MemoryStore:
    """In-process store for development and tests. Not durable."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})

    async def read(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def write(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)


class RedisStore:
    """
    Upstash Redis backend.

    Snapshots are stored as UTF-8 strings. With a TTL the cart expires
    after that many seconds without a mutation.
    """

    def __init__(self, redis=None, ttl: Optional[int] = CART_TTL_SECONDS):
        self._redis = redis  # Lazy initialization
        self.ttl = ttl

    @property
    def redis(self):
        """Get Redis client (lazy initialization)."""
        if self._redis is None:
            try:
                self._redis = get_redis()
            except ValueError as e:
                raise StorageError(f"Redis not available: {e}") from e
        return self._redis

    async def read(self, key: str) -> Optional[bytes]:
        try:
            data = await self.redis.get(key)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"{ERROR_STORAGE_READ}: {e}", key=key) from e

        if data is None:
            return None
        if isinstance(data, bytes):
            return data
        return str(data).encode("utf-8")

    async def write(self, key: str, value: bytes) -> None:
        try:
            await self.redis.set(key, value.decode("utf-8"), ex=self.ttl)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"{ERROR_STORAGE_WRITE}: {e}", key=key) from e


class FileStore:
    """
    Device-local durable store: one file per key under a directory.

    Writes go to a temporary file that replaces the target, so a crash
    mid-write leaves the previous snapshot intact. File I/O runs in a
    worker thread to keep the event loop free.
    """

    def __init__(self, directory: Union[str, Path] = CART_DATA_DIR):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def _read_sync(self, key: str) -> Optional[bytes]:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def _write_sync(self, key: str, value: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with open(tmp_path, "wb") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    async def read(self, key: str) -> Optional[bytes]:
        try:
            return await asyncio.to_thread(self._read_sync, key)
        except OSError as e:
            raise StorageError(f"{ERROR_STORAGE_READ}: {e}", key=key) from e

    async def write(self, key: str, value: bytes) -> None:
        try:
            await asyncio.to_thread(self._write_sync, key, value)
        except OSError as e:
            raise StorageError(f"{ERROR_STORAGE_WRITE}: {e}", key=key) from e


class SnapshotWriter:
    """
    Serializes snapshot writes for one key.

    At most one write is in flight. A snapshot submitted while a write is
    running replaces any snapshot still waiting, so only the newest state
    is written next and completions can never go back in time.

    Failures are logged and passed to on_error; they are never raised to
    the code that submitted the snapshot.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        on_error: Optional[StorageErrorHandler] = None,
    ):
        self.store = store
        self.key = key
        self.on_error = on_error
        self._pending: Optional[bytes] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def submit(self, snapshot: bytes) -> None:
        """Queue snapshot for writing. Requires a running event loop."""
        loop = asyncio.get_running_loop()
        self._pending = snapshot
        if not self.busy:
            self._task = loop.create_task(self._drain())

    async def flush(self) -> None:
        """Wait until every submitted snapshot has been written or has failed."""
        while self.busy:
            await self._task

    async def _drain(self) -> None:
        while self._pending is not None:
            snapshot, self._pending = self._pending, None
            try:
                await self.store.write(self.key, snapshot)
            except Exception as e:
                await self._report(e)

    async def _report(self, exc: Exception) -> None:
        if isinstance(exc, StorageError):
            error = exc
        else:
            error = StorageError(f"{ERROR_STORAGE_WRITE}: {exc}", key=self.key)
            error.__cause__ = exc
        logger.error(
            f"Cart snapshot write failed for key {sanitize_string_for_logging(self.key)}: {exc}"
        )
        if self.on_error is None:
            return
        try:
            result = self.on_error(error)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("on_storage_error handler raised")
