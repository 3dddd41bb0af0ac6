"""In-memory storage adapter with asyncio concurrency control.

Suitable for single-process services, development and tests. Records live in a
dict; every key gets its own asyncio.Lock guarding the check-and-insert of
put_new_running(), and a global lock protects the lock map itself.

Examples:
    Basic usage::

        adapter = MemoryStorageAdapter()

        result = await adapter.put_new_running(
            key="7f41dba9-4c8e-4f7b-9d8a-3c2e1b0a9f87",
            payload_hash="a" * 64,
            ttl_seconds=86400,
        )
        if result.success:
            response = await execute_request()
            await adapter.complete(
                key="7f41dba9-4c8e-4f7b-9d8a-3c2e1b0a9f87",
                lease_token=result.lease_token,
                response=response,
                execution_time_ms=150,
            )
"""

import asyncio
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from api_conventions.models import (
    IdempotencyRecord,
    LeaseResult,
    RequestState,
    StoredResponse,
)
from api_conventions.storage.base import StorageAdapter


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MemoryStorageAdapter(StorageAdapter):
    """In-memory storage adapter with per-key asyncio locks.

    Attributes:
        _store: Dictionary mapping keys to IdempotencyRecord objects.
        _locks: Dictionary mapping keys to asyncio.Lock objects.
        _global_lock: Lock protecting the _locks dictionary.
        _clock: Returns the current UTC time; replaceable in tests.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store: dict[str, IdempotencyRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._global_lock = asyncio.Lock()
        self._clock = clock

    def __len__(self) -> int:
        return len(self._store)

    async def get(self, key: str) -> IdempotencyRecord | None:
        record = self._store.get(key)
        if record is None or record.is_expired(self._clock()):
            return None
        return record

    async def _lock_for(self, key: str) -> asyncio.Lock:
        async with self._global_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = asyncio.Lock()
            return lock

    async def put_new_running(
        self,
        key: str,
        payload_hash: str,
        ttl_seconds: int,
        correlation_id: str | None = None,
    ) -> LeaseResult:
        """Atomically create a new RUNNING record and acquire the lease.

        The first caller to take the key lock inserts the record; anyone
        arriving later sees the live record and gets it back instead. An
        expired record (including an abandoned RUNNING one) is overwritten.
        """
        # Fast path, no lock needed
        existing = await self.get(key)
        if existing is not None:
            return LeaseResult(success=False, existing_record=existing)

        lock = await self._lock_for(key)
        async with lock:
            # Double-check under the key lock
            existing = await self.get(key)
            if existing is not None:
                return LeaseResult(success=False, existing_record=existing)

            lease_token = str(uuid.uuid4())
            now = self._clock()
            self._store[key] = IdempotencyRecord(
                key=key,
                payload_hash=payload_hash,
                state=RequestState.RUNNING,
                created_at=now,
                expires_at=now + timedelta(seconds=ttl_seconds),
                lease_token=lease_token,
                correlation_id=correlation_id,
            )
            return LeaseResult(success=True, lease_token=lease_token)

    def _owned(self, key: str, lease_token: str) -> IdempotencyRecord | None:
        record = self._store.get(key)
        if record is None or record.state != RequestState.RUNNING:
            return None
        if record.lease_token != lease_token:
            # Stale caller, the lease was taken over after expiry
            return None
        return record

    async def complete(
        self,
        key: str,
        lease_token: str,
        response: StoredResponse,
        execution_time_ms: int,
    ) -> bool:
        lock = await self._lock_for(key)
        async with lock:
            record = self._owned(key, lease_token)
            if record is None:
                return False

            # Swap in a fresh record so readers never see a half-updated one
            self._store[key] = record.model_copy(
                update={
                    "state": RequestState.COMPLETED,
                    "response": response,
                    "execution_time_ms": execution_time_ms,
                    "lease_token": None,
                }
            )
            return True

    async def release(self, key: str, lease_token: str) -> bool:
        lock = await self._lock_for(key)
        async with lock:
            if self._owned(key, lease_token) is None:
                return False
            del self._store[key]
            return True

    async def cleanup_expired(self) -> int:
        """Remove expired records and the locks nobody holds any more."""
        now = self._clock()
        expired_keys = [key for key, record in self._store.items() if record.is_expired(now)]

        removed_count = 0
        async with self._global_lock:
            for key in expired_keys:
                record = self._store.get(key)
                if record is not None and record.is_expired(now):
                    del self._store[key]
                    removed_count += 1

                lock = self._locks.get(key)
                if lock is not None and not lock.locked():
                    del self._locks[key]

        return removed_count
