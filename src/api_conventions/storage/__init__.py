"""Storage adapters for idempotency records.

Available Adapters:
    - MemoryStorageAdapter: In-memory storage with asyncio concurrency
"""

from api_conventions.storage.base import StorageAdapter
from api_conventions.storage.memory import MemoryStorageAdapter

__all__ = [
    "StorageAdapter",
    "MemoryStorageAdapter",
]
