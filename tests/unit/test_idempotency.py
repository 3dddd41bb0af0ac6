"""Unit tests for IdempotencyStore.admit()."""

import asyncio
import json

import pytest

from api_conventions.config import GatewayConfig
from api_conventions.core.idempotency import IdempotencyStore
from api_conventions.core.replay import ResponseSnapshot
from api_conventions.exceptions import IdempotencyConflictError, RequestInProgressError
from api_conventions.models import RequestState
from api_conventions.storage.memory import MemoryStorageAdapter

HASH_A = "a" * 64
HASH_B = "b" * 64


class CountingCompute:
    """Compute callable that counts invocations and can be slowed down."""

    def __init__(self, status: int = 201, delay: float = 0.0) -> None:
        self.status = status
        self.delay = delay
        self.calls = 0

    async def __call__(self) -> ResponseSnapshot:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        body = f'{{"id": "u{self.calls}"}}'.encode()
        return ResponseSnapshot(
            status=self.status,
            headers={"content-type": "application/json", "x-correlation-id": f"c{self.calls}"},
            body=body,
        )


@pytest.fixture
def store(storage: MemoryStorageAdapter, config: GatewayConfig) -> IdempotencyStore:
    return IdempotencyStore(storage, config)


class TestAdmit:
    @pytest.mark.asyncio
    async def test_no_key_always_computes(self, store: IdempotencyStore) -> None:
        compute = CountingCompute()

        first = await store.admit(None, "", compute)
        second = await store.admit(None, "", compute)

        assert compute.calls == 2
        assert not first.replayed and not second.replayed
        assert first.body != second.body

    @pytest.mark.asyncio
    async def test_first_request_computes_and_commits(
        self, store: IdempotencyStore, storage: MemoryStorageAdapter
    ) -> None:
        compute = CountingCompute()

        result = await store.admit("k1", HASH_A, compute, correlation_id="c-orig")

        assert compute.calls == 1
        assert not result.replayed
        assert result.status == 201
        record = await storage.get("k1")
        assert record is not None
        assert record.state == RequestState.COMPLETED
        assert record.correlation_id == "c-orig"

    @pytest.mark.asyncio
    async def test_duplicate_is_replayed(self, store: IdempotencyStore) -> None:
        compute = CountingCompute()

        first = await store.admit("k1", HASH_A, compute)
        second = await store.admit("k1", HASH_A, compute)

        assert compute.calls == 1
        assert second.replayed
        assert second.status == first.status
        assert second.body == first.body
        assert second.response.headers["Idempotent-Replay"] == "true"

    @pytest.mark.asyncio
    async def test_replay_does_not_carry_original_correlation_id(
        self, store: IdempotencyStore
    ) -> None:
        await store.admit("k1", HASH_A, CountingCompute())
        replay = await store.admit("k1", HASH_A, CountingCompute())

        assert "x-correlation-id" not in {name.lower() for name in replay.response.headers}

    @pytest.mark.asyncio
    async def test_different_payload_conflicts_without_computing(
        self, store: IdempotencyStore, storage: MemoryStorageAdapter
    ) -> None:
        await store.admit("k1", HASH_A, CountingCompute())
        compute = CountingCompute()

        with pytest.raises(IdempotencyConflictError) as exc_info:
            await store.admit("k1", HASH_B, compute)

        assert compute.calls == 0
        assert exc_info.value.key == "k1"
        assert exc_info.value.stored_hash == HASH_A
        assert exc_info.value.request_hash == HASH_B
        record = await storage.get("k1")
        assert record is not None
        assert record.payload_hash == HASH_A

    @pytest.mark.asyncio
    async def test_replayed_problem_uses_current_correlation_id(
        self, store: IdempotencyStore
    ) -> None:
        async def rejected() -> ResponseSnapshot:
            return ResponseSnapshot(
                status=400,
                headers={"content-type": "application/problem+json"},
                body=b'{"status": 400, "correlationId": "c-first"}',
            )

        await store.admit("k1", HASH_A, rejected, correlation_id="c-first")
        replay = await store.admit("k1", HASH_A, rejected, correlation_id="c-second")

        assert replay.replayed
        assert json.loads(replay.body)["correlationId"] == "c-second"

    @pytest.mark.asyncio
    async def test_client_errors_are_committed(self, store: IdempotencyStore) -> None:
        compute = CountingCompute(status=422)

        await store.admit("k1", HASH_A, compute)
        replay = await store.admit("k1", HASH_A, compute)

        assert compute.calls == 1
        assert replay.replayed
        assert replay.status == 422


class TestFailures:
    @pytest.mark.asyncio
    async def test_exception_is_not_committed(
        self, store: IdempotencyStore, storage: MemoryStorageAdapter
    ) -> None:
        async def failing() -> ResponseSnapshot:
            raise RuntimeError("database unavailable")

        with pytest.raises(RuntimeError):
            await store.admit("k1", HASH_A, failing)

        assert await storage.get("k1") is None

        compute = CountingCompute()
        result = await store.admit("k1", HASH_A, compute)
        assert compute.calls == 1
        assert not result.replayed

    @pytest.mark.asyncio
    async def test_server_error_is_not_committed(
        self, store: IdempotencyStore, storage: MemoryStorageAdapter
    ) -> None:
        first = await store.admit("k1", HASH_A, CountingCompute(status=503))

        assert first.status == 503
        assert await storage.get("k1") is None

        retry = await store.admit("k1", HASH_A, CountingCompute())
        assert retry.status == 201
        assert not retry.replayed

    @pytest.mark.asyncio
    async def test_cancellation_releases_key(
        self, store: IdempotencyStore, storage: MemoryStorageAdapter
    ) -> None:
        task = asyncio.create_task(store.admit("k1", HASH_A, CountingCompute(delay=10)))
        await asyncio.sleep(0.05)
        assert await storage.get("k1") is not None

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await storage.get("k1") is None


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_parallel_duplicates_compute_once(self, store: IdempotencyStore) -> None:
        compute = CountingCompute(delay=0.05)

        results = await asyncio.gather(*(store.admit("k1", HASH_A, compute) for _ in range(10)))

        assert compute.calls == 1
        assert sum(not result.replayed for result in results) == 1
        assert len({result.body for result in results}) == 1
        assert {result.status for result in results} == {201}

    @pytest.mark.asyncio
    async def test_conflict_while_in_flight(self, store: IdempotencyStore) -> None:
        winner = asyncio.create_task(store.admit("k1", HASH_A, CountingCompute(delay=0.1)))
        await asyncio.sleep(0.01)

        compute = CountingCompute()
        with pytest.raises(IdempotencyConflictError):
            await store.admit("k1", HASH_B, compute)

        assert compute.calls == 0
        await winner

    @pytest.mark.asyncio
    async def test_no_wait_policy_rejects_in_flight(self, storage: MemoryStorageAdapter) -> None:
        store = IdempotencyStore(storage, GatewayConfig(wait_policy="no-wait"))
        winner = asyncio.create_task(store.admit("k1", HASH_A, CountingCompute(delay=0.1)))
        await asyncio.sleep(0.01)

        with pytest.raises(RequestInProgressError) as exc_info:
            await store.admit("k1", HASH_A, CountingCompute())

        assert exc_info.value.retry_after == 1
        await winner

        replay = await store.admit("k1", HASH_A, CountingCompute())
        assert replay.replayed

    @pytest.mark.asyncio
    async def test_waiter_times_out(self, storage: MemoryStorageAdapter) -> None:
        store = IdempotencyStore(
            storage,
            GatewayConfig(execution_timeout_seconds=1, wait_poll_interval_seconds=0.05),
        )
        winner = asyncio.create_task(store.admit("k1", HASH_A, CountingCompute(delay=3)))
        await asyncio.sleep(0.01)

        with pytest.raises(RequestInProgressError) as exc_info:
            await store.admit("k1", HASH_A, CountingCompute())

        assert exc_info.value.retry_after >= 1
        winner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await winner

    @pytest.mark.asyncio
    async def test_waiter_recomputes_after_winner_fails(self, store: IdempotencyStore) -> None:
        async def failing() -> ResponseSnapshot:
            await asyncio.sleep(0.05)
            raise RuntimeError("boom")

        winner = asyncio.create_task(store.admit("k1", HASH_A, failing))
        await asyncio.sleep(0.01)

        compute = CountingCompute()
        result = await store.admit("k1", HASH_A, compute)

        assert compute.calls == 1
        assert not result.replayed
        with pytest.raises(RuntimeError):
            await winner
