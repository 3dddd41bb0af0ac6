"""Idempotent admission of creation requests.

The IdempotencyStore decides, for each request carrying an idempotency key,
whether the computation runs, whether a committed response is replayed, or
whether the request is rejected:

    absent --(lease won, compute ok)--> COMPLETED (replayed until expiry)
    absent --(lease won, compute failed/cancelled)--> absent

- No key: the computation runs and nothing is stored.
- Key unknown: the caller takes the lease, computes, and commits the result.
- Key known, same payload hash: the committed response is replayed.
- Key known, different payload hash: IdempotencyConflictError; nothing runs.
- Key in flight: the caller waits for the winner ("wait") or fails fast with a
  retryable RequestInProgressError ("no-wait").

Examples:
    >>> store = IdempotencyStore(MemoryStorageAdapter(), GatewayConfig())
    >>> async def compute():
    ...     return ResponseSnapshot(201, {"content-type": "application/json"}, b'{"id": "u1"}')
    >>> first = await store.admit("k1", "a" * 64, compute)
    >>> again = await store.admit("k1", "a" * 64, compute)
    >>> again.replayed, again.body == first.body
    (True, True)
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from api_conventions.config import GatewayConfig
from api_conventions.core.replay import ResponseSnapshot, replay_response
from api_conventions.exceptions import IdempotencyConflictError, RequestInProgressError
from api_conventions.models import IdempotencyRecord, RequestState
from api_conventions.observability.logging import get_logger
from api_conventions.observability.metrics import (
    decrement_in_flight,
    increment_in_flight,
    record_execution_time,
    record_idempotency_outcome,
)
from api_conventions.storage.base import StorageAdapter

logger = get_logger(__name__)

Compute = Callable[[], Awaitable[ResponseSnapshot]]


class AdmitResult:
    """Outcome of IdempotencyStore.admit().

    Attributes:
        response: The fresh or replayed response
        replayed: True if the response came from a committed record
        execution_time_ms: Duration of the original computation, if known
    """

    def __init__(
        self,
        response: ResponseSnapshot,
        replayed: bool,
        execution_time_ms: int | None = None,
    ) -> None:
        self.response = response
        self.replayed = replayed
        self.execution_time_ms = execution_time_ms

    @property
    def status(self) -> int:
        return self.response.status

    @property
    def body(self) -> bytes:
        return self.response.body


class IdempotencyStore:
    """Deduplicates creation requests by idempotency key and payload hash.

    Attributes:
        storage: Backing storage adapter
        config: Gateway configuration (TTL, wait policy, timeouts)
    """

    def __init__(self, storage: StorageAdapter, config: GatewayConfig | None = None) -> None:
        self.storage = storage
        self.config = config if config is not None else GatewayConfig()
        # Per-request headers never become part of a committed response
        self._drop_headers = [self.config.correlation_header]

    async def admit(
        self,
        key: str | None,
        payload_hash: str,
        compute: Compute,
        correlation_id: str | None = None,
    ) -> AdmitResult:
        """Run ``compute`` at most once per (key, payload_hash).

        Args:
            key: Client idempotency key, or None if the client sent none
            payload_hash: Hash of the normalized request payload
            compute: Produces the response when this caller wins the lease
            correlation_id: Stored on the record and written into replayed
                problem bodies

        Returns:
            AdmitResult with the response and whether it was replayed

        Raises:
            IdempotencyConflictError: The key is bound to another payload hash
            RequestInProgressError: The key is in flight and the wait policy
                is "no-wait", or waiting exceeded execution_timeout_seconds
        """
        if key is None:
            response = await compute()
            record_idempotency_outcome("passthrough", response.status)
            return AdmitResult(response=response, replayed=False)

        deadline = time.monotonic() + self.config.execution_timeout_seconds

        while True:
            record = await self.storage.get(key)

            if record is None:
                lease = await self.storage.put_new_running(
                    key=key,
                    payload_hash=payload_hash,
                    ttl_seconds=self.config.idempotency_ttl_seconds,
                    correlation_id=correlation_id,
                )
                if lease.success:
                    if lease.lease_token is None:
                        raise RuntimeError("Lease acquisition succeeded but no token returned")
                    return await self._execute(key, lease.lease_token, compute)

                # Lost the race, another request created the record first
                record = lease.existing_record
                if record is None:
                    raise RuntimeError("Lease acquisition failed but no existing record")

            self._check_hash(record, key, payload_hash)

            if record.state == RequestState.COMPLETED:
                return self._replay(record, key, correlation_id)

            if self.config.wait_policy == "no-wait":
                record_idempotency_outcome("in_progress", 409)
                raise RequestInProgressError(
                    f"A request with idempotency key {key} is already being processed",
                    key=key,
                )

            completed = await self._wait_for_completion(key, deadline)
            if completed is not None:
                self._check_hash(completed, key, payload_hash)
                return self._replay(completed, key, correlation_id)

            # The winner released the key without committing, try to admit again
            logger.info("idempotency.lease_released", key=key)

    async def _execute(self, key: str, lease_token: str, compute: Compute) -> AdmitResult:
        increment_in_flight()
        start_time = time.perf_counter()
        committed = False
        try:
            response = await compute()
            execution_time_ms = int((time.perf_counter() - start_time) * 1000)
            record_execution_time(execution_time_ms)

            if response.status >= 500:
                logger.warning(
                    "idempotency.not_committed",
                    key=key,
                    status=response.status,
                )
            else:
                committed = await self.storage.complete(
                    key=key,
                    lease_token=lease_token,
                    response=response.to_stored(self._drop_headers),
                    execution_time_ms=execution_time_ms,
                )
                if not committed:
                    logger.warning("idempotency.lease_lost", key=key)

            record_idempotency_outcome("new", response.status)
            logger.info(
                "idempotency.executed",
                key=key,
                status=response.status,
                committed=committed,
                execution_time_ms=execution_time_ms,
            )
            return AdmitResult(
                response=response,
                replayed=False,
                execution_time_ms=execution_time_ms,
            )
        finally:
            if not committed:
                # Failed, cancelled or 5xx: the key must not stay bound
                await self.storage.release(key, lease_token)
            decrement_in_flight()

    async def _wait_for_completion(self, key: str, deadline: float) -> IdempotencyRecord | None:
        """Poll until the in-flight record for ``key`` is committed.

        Returns:
            The COMPLETED record, or None if the key was released or expired

        Raises:
            RequestInProgressError: If the deadline passes first
        """
        interval = self.config.wait_poll_interval_seconds
        while time.monotonic() < deadline:
            await asyncio.sleep(interval)

            record = await self.storage.get(key)
            if record is None:
                return None
            if record.state == RequestState.COMPLETED:
                return record

        record_idempotency_outcome("in_progress", 409)
        logger.warning(
            "idempotency.wait_timeout",
            key=key,
            timeout_seconds=self.config.execution_timeout_seconds,
        )
        raise RequestInProgressError(
            f"Timed out waiting for the request with idempotency key {key} to complete",
            key=key,
            retry_after=max(1, self.config.execution_timeout_seconds // 3),
        )

    def _check_hash(self, record: IdempotencyRecord, key: str, payload_hash: str) -> None:
        if record.payload_hash == payload_hash:
            return
        record_idempotency_outcome("conflict", 409)
        logger.warning(
            "idempotency.conflict",
            key=key,
            stored_hash=record.payload_hash,
            request_hash=payload_hash,
        )
        raise IdempotencyConflictError(
            f"Idempotency key {key} was already used with a different request payload",
            key=key,
            stored_hash=record.payload_hash,
            request_hash=payload_hash,
        )

    def _replay(
        self,
        record: IdempotencyRecord,
        key: str,
        correlation_id: str | None,
    ) -> AdmitResult:
        response = replay_response(
            record,
            key,
            key_header=self.config.idempotency_header,
            drop_headers=self._drop_headers,
            correlation_id=correlation_id,
        )
        record_idempotency_outcome("replay", response.status)
        logger.info("idempotency.replayed", key=key, status=response.status)
        return AdmitResult(
            response=response,
            replayed=True,
            execution_time_ms=record.execution_time_ms,
        )
