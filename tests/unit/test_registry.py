"""
Unit tests for the in-memory queue registry.
"""

import asyncio

import pytest

from tenant_scheduler.constants import QueueState
from tenant_scheduler.engine.base import QueueHandle
from tenant_scheduler.errors import AlreadyExistsError, NotFoundError
from tenant_scheduler.registry import QueueRecord, QueueRegistry, engine_queue_name


def make_record(tenant_id: str, queue_name: str) -> QueueRecord:
    engine_queue_id = engine_queue_name(tenant_id, queue_name)
    return QueueRecord(
        tenant_id=tenant_id,
        queue_name=queue_name,
        engine_queue_id=engine_queue_id,
        handle=QueueHandle(name=engine_queue_id),
    )


class TestQueueRegistry:
    """Tests for QueueRegistry."""

    def test_engine_queue_name(self):
        assert engine_queue_name("t1", "alpha") == "t1-alpha"

    def test_add_and_get(self):
        registry = QueueRegistry()
        record = make_record("t1", "alpha")

        registry.add(record)

        assert registry.get("t1", "alpha") is record
        assert ("t1", "alpha") in registry
        assert len(registry) == 1
        assert record.key == ("t1", "alpha")
        assert record.state == QueueState.ACTIVE

    def test_add_duplicate_raises(self):
        registry = QueueRegistry()
        registry.add(make_record("t1", "alpha"))

        with pytest.raises(AlreadyExistsError):
            registry.add(make_record("t1", "alpha"))

        assert len(registry) == 1

    def test_get_unknown_tenant(self):
        registry = QueueRegistry()

        with pytest.raises(NotFoundError) as exc_info:
            registry.get("nobody", "alpha")

        assert exc_info.value.kind == "tenant"

    def test_get_unknown_queue(self):
        registry = QueueRegistry()
        registry.add(make_record("t1", "alpha"))

        with pytest.raises(NotFoundError) as exc_info:
            registry.get("t1", "beta")

        assert exc_info.value.kind == "queue"

    def test_list_queues_sorted(self):
        registry = QueueRegistry()
        for name in ("gamma", "alpha", "beta"):
            registry.add(make_record("t1", name))

        assert registry.list_queues("t1") == ["alpha", "beta", "gamma"]

    def test_tenant_kept_when_emptied(self):
        registry = QueueRegistry()
        registry.add(make_record("t1", "alpha"))

        removed = registry.remove("t1", "alpha")

        assert removed is not None
        assert registry.list_queues("t1") == []
        assert registry.remove("t1", "alpha") is None

    def test_records_span_tenants(self):
        registry = QueueRegistry()
        registry.add(make_record("t1", "alpha"))
        registry.add(make_record("t2", "alpha"))

        assert {record.key for record in registry.records()} == {("t1", "alpha"), ("t2", "alpha")}
        assert registry.tenants() == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_guard_serializes_same_key(self):
        registry = QueueRegistry()
        order: list[str] = []

        async def worker(label: str) -> None:
            async with registry.guard(("t1", "alpha")):
                order.append(f"{label}-start")
                await asyncio.sleep(0.01)
                order.append(f"{label}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_guard_multiple_keys_no_deadlock(self):
        registry = QueueRegistry()

        async def take(first: tuple[str, str], second: tuple[str, str]) -> None:
            async with registry.guard(first, second):
                await asyncio.sleep(0.01)

        await asyncio.wait_for(
            asyncio.gather(
                take(("t1", "a"), ("t1", "b")),
                take(("t1", "b"), ("t1", "a")),
            ),
            timeout=1.0,
        )

    @pytest.mark.asyncio
    async def test_guard_drops_idle_locks(self):
        registry = QueueRegistry()

        async with registry.guard(("t1", "alpha"), ("t1", "beta")):
            assert registry.lock_count == 2

        assert registry.lock_count == 0

    @pytest.mark.asyncio
    async def test_guard_keeps_lock_while_waited_on(self):
        registry = QueueRegistry()
        entered = asyncio.Event()
        release = asyncio.Event()

        async def holder() -> None:
            async with registry.guard(("t1", "alpha")):
                entered.set()
                await release.wait()

        async def waiter() -> None:
            async with registry.guard(("t1", "alpha")):
                pass

        first = asyncio.create_task(holder())
        await entered.wait()
        second = asyncio.create_task(waiter())
        await asyncio.sleep(0)

        release.set()
        await asyncio.gather(first, second)

        assert registry.lock_count == 0

    @pytest.mark.asyncio
    async def test_guard_drops_lock_after_error(self):
        registry = QueueRegistry()

        with pytest.raises(NotFoundError):
            async with registry.guard(("t1", "alpha")):
                registry.get("t1", "alpha")

        assert registry.lock_count == 0


class TestEngineQueueClaims:
    """Tests for engine queue id ownership."""

    def test_add_rejects_colliding_engine_queue(self):
        registry = QueueRegistry()
        registry.add(make_record("a-b", "c"))

        with pytest.raises(AlreadyExistsError):
            registry.add(make_record("a", "b-c"))

        assert ("a", "b-c") not in registry
        assert registry.tenants() == ["a-b"]
        assert registry.engine_queue_owner("a-b-c") == ("a-b", "c")

    def test_remove_releases_claim(self):
        registry = QueueRegistry()
        registry.add(make_record("a-b", "c"))
        registry.remove("a-b", "c")

        assert registry.engine_queue_owner("a-b-c") is None
        registry.add(make_record("a", "b-c"))
        assert registry.engine_queue_owner("a-b-c") == ("a", "b-c")

    def test_claim_is_reentrant_for_owner(self):
        registry = QueueRegistry()
        registry.claim_engine_queue("t1-alpha", ("t1", "alpha"))
        registry.claim_engine_queue("t1-alpha", ("t1", "alpha"))

        registry.add(make_record("t1", "alpha"))
        assert registry.engine_queue_owner("t1-alpha") == ("t1", "alpha")

    def test_release_ignores_other_owner(self):
        registry = QueueRegistry()
        registry.claim_engine_queue("a-b-c", ("a-b", "c"))

        registry.release_engine_queue("a-b-c", ("a", "b-c"))

        assert registry.engine_queue_owner("a-b-c") == ("a-b", "c")
