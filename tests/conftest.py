"""Pytest configuration and fixtures"""
import asyncio
import os
import pytest
from typing import List, Optional
from unittest.mock import AsyncMock

# Keep storage configuration deterministic for tests
os.environ.setdefault("CART_STORAGE_KEY", "@GoMarketplace:products")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from gomarket.cart.storage import MemoryStore
from gomarket.errors import StorageError


TEST_KEY = "@GoMarketplace:test-products"


class GatedStore(MemoryStore):
    """MemoryStore whose writes block until the test opens the gate."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.writes: List[bytes] = []

    async def write(self, key: str, value: bytes) -> None:
        await self.gate.wait()
        self.writes.append(value)
        await super().write(key, value)


class GatedReadStore(MemoryStore):
    """MemoryStore whose first read blocks until the test opens the gate."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.gate = asyncio.Event()
        self.reads = 0

    async def read(self, key: str) -> Optional[bytes]:
        self.reads += 1
        if self.reads == 1:
            await self.gate.wait()
        return await super().read(key)


class FailingStore(MemoryStore):
    """MemoryStore whose reads and/or writes raise."""

    def __init__(self, read_error: Optional[Exception] = None, write_error: Optional[Exception] = None):
        super().__init__()
        self.read_error = read_error
        self.write_error = write_error
        self.write_attempts = 0

    async def read(self, key: str) -> Optional[bytes]:
        if self.read_error is not None:
            raise self.read_error
        return await super().read(key)

    async def write(self, key: str, value: bytes) -> None:
        self.write_attempts += 1
        if self.write_error is not None:
            raise self.write_error
        await super().write(key, value)


@pytest.fixture
def memory_store():
    """Empty in-memory store"""
    return MemoryStore()


@pytest.fixture
def gated_store():
    """Store whose writes wait for store.gate to be set"""
    return GatedStore()


@pytest.fixture
def failing_write_store():
    """Store that loads fine but fails every write"""
    return FailingStore(write_error=StorageError("quota exceeded", key=TEST_KEY))


@pytest.fixture
def mock_redis():
    """Mock async Upstash Redis client"""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def sample_product():
    """Sample product as the catalog screen hands it over"""
    return {
        "id": "A",
        "title": "Shirt",
        "image_url": "https://cdn.example.com/shirt.png",
        "price": 10,
    }


@pytest.fixture
def other_product():
    """Second sample product, using the mobile app's camelCase field"""
    return {
        "id": "B",
        "title": "Mug",
        "imageUrl": "https://cdn.example.com/mug.png",
        "price": "7.90",
    }
