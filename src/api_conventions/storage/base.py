"""Storage adapter protocol for idempotency records.

The IdempotencyStore talks to its backing map only through this protocol, so the
in-memory adapter can be swapped for a shared backend (Redis, SQL) without
touching the admission logic.

Thread Safety and Atomicity Requirements:
    All StorageAdapter implementations MUST guarantee:

    1. **Atomic lease acquisition**: put_new_running() atomically checks for a
       live record and inserts a RUNNING one. Concurrent callers with the same
       key get exactly one winner; unrelated keys do not block each other.

    2. **Lease token validation**: complete() and release() only act when the
       provided lease token matches the stored one.

    3. **Expiration handling**: records past expires_at are treated as
       non-existent by get() and put_new_running().

    4. **No partial writes**: a record only becomes COMPLETED together with its
       response; release() removes an uncommitted RUNNING record entirely.
"""

from typing import Protocol, runtime_checkable

from api_conventions.models import IdempotencyRecord, LeaseResult, StoredResponse


@runtime_checkable
class StorageAdapter(Protocol):
    """Interface for idempotency storage backends.

    Methods should raise StorageError for backend failures and must not leak
    backend-specific exceptions.
    """

    async def get(self, key: str) -> IdempotencyRecord | None:
        """Return the live record for ``key``, or None if absent or expired."""
        ...

    async def put_new_running(
        self,
        key: str,
        payload_hash: str,
        ttl_seconds: int,
        correlation_id: str | None = None,
    ) -> LeaseResult:
        """Atomically create a RUNNING record and acquire the execution lease.

        Returns:
            LeaseResult with success=True and a lease_token if acquired,
            or success=False with the existing_record if the key is live.
        """
        ...

    async def complete(
        self,
        key: str,
        lease_token: str,
        response: StoredResponse,
        execution_time_ms: int,
    ) -> bool:
        """Commit the response and mark the record COMPLETED.

        Returns:
            True if the record was updated, False if lease validation failed.
        """
        ...

    async def release(self, key: str, lease_token: str) -> bool:
        """Drop an uncommitted RUNNING record so the key can be admitted again.

        Returns:
            True if the record was removed, False if lease validation failed.
        """
        ...

    async def cleanup_expired(self) -> int:
        """Remove expired records and return how many were removed."""
        ...
