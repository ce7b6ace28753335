"""
In-memory queue registry.

Owned by the service object and passed by reference to the managers that
need it; it starts empty and is populated by registration and bootstrap.
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime

from tenant_scheduler.clock import utcnow
from tenant_scheduler.constants import ENGINE_QUEUE_SEPARATOR, QueueState
from tenant_scheduler.engine.base import QueueHandle
from tenant_scheduler.errors import AlreadyExistsError, NotFoundError

QueueKey = tuple[str, str]


def engine_queue_name(tenant_id: str, queue_name: str) -> str:
    """Engine identifier for a new queue. Stored verbatim once created."""
    return f"{tenant_id}{ENGINE_QUEUE_SEPARATOR}{queue_name}"


@dataclass
class QueueRecord:
    """A registered queue and its open engine handle."""

    tenant_id: str
    queue_name: str
    engine_queue_id: str
    handle: QueueHandle
    state: QueueState = QueueState.ACTIVE
    created_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> QueueKey:
        return (self.tenant_id, self.queue_name)

    @property
    def is_paused(self) -> bool:
        return self.state == QueueState.PAUSED


class QueueRegistry:
    """
    Tenant -> queue name -> QueueRecord map.

    Mutations never await, so each one is atomic with respect to other
    coroutines. Multi-step operations on one key hold that key's lock
    from the existence check to the final mutation.

    Engine queue ids are owned by exactly one key. A registration claims
    its id before creating the engine queue, so two keys that derive the
    same id can never share one engine queue.
    """

    def __init__(self) -> None:
        self._tenants: dict[str, dict[str, QueueRecord]] = {}
        self._locks: dict[QueueKey, asyncio.Lock] = {}
        self._lock_users: dict[QueueKey, int] = {}
        self._engine_ids: dict[str, QueueKey] = {}

    def __len__(self) -> int:
        return sum(len(queues) for queues in self._tenants.values())

    def __contains__(self, key: QueueKey) -> bool:
        tenant_id, queue_name = key
        return queue_name in self._tenants.get(tenant_id, {})

    @asynccontextmanager
    async def guard(self, *keys: QueueKey) -> AsyncGenerator[None]:
        """
        Serialize operations on the given keys.

        Locks are taken in sorted order so two operations touching the
        same pair of keys cannot deadlock. A lock is dropped once nobody
        holds or waits for it.
        """
        ordered = sorted(set(keys))
        for key in ordered:
            self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with AsyncExitStack() as stack:
                for key in ordered:
                    lock = self._locks.setdefault(key, asyncio.Lock())
                    await stack.enter_async_context(lock)
                yield
        finally:
            for key in ordered:
                self._lock_users[key] -= 1
                if not self._lock_users[key]:
                    del self._lock_users[key]
                    self._locks.pop(key, None)

    @property
    def lock_count(self) -> int:
        """Keys that currently have a lock holder or waiter."""
        return len(self._locks)

    def engine_queue_owner(self, engine_queue_id: str) -> QueueKey | None:
        return self._engine_ids.get(engine_queue_id)

    def claim_engine_queue(self, engine_queue_id: str, key: QueueKey) -> None:
        """
        Reserve an engine queue id for a key.

        Raises:
            AlreadyExistsError: If another key owns the id.
        """
        owner = self._engine_ids.get(engine_queue_id)
        if owner is not None and owner != key:
            raise AlreadyExistsError(
                *key,
                message=f"Engine queue {engine_queue_id} belongs to {owner[0]}/{owner[1]}",
            )
        self._engine_ids[engine_queue_id] = key

    def release_engine_queue(self, engine_queue_id: str, key: QueueKey) -> None:
        """Give up a claim; ids owned by other keys are left alone."""
        if self._engine_ids.get(engine_queue_id) == key:
            del self._engine_ids[engine_queue_id]

    def find(self, tenant_id: str, queue_name: str) -> QueueRecord | None:
        return self._tenants.get(tenant_id, {}).get(queue_name)

    def get(self, tenant_id: str, queue_name: str) -> QueueRecord:
        """
        Look up a queue.

        Raises:
            NotFoundError: If the tenant or the queue is unknown.
        """
        queues = self._tenants.get(tenant_id)
        if queues is None:
            raise NotFoundError("tenant", tenant_id)
        record = queues.get(queue_name)
        if record is None:
            raise NotFoundError("queue", f"{tenant_id}/{queue_name}")
        return record

    def add(self, record: QueueRecord) -> None:
        """
        Insert a record, creating the tenant on first use.

        Raises:
            AlreadyExistsError: If the key is registered or its engine
                queue id is owned by another key.
        """
        if record.key in self:
            raise AlreadyExistsError(record.tenant_id, record.queue_name)
        self.claim_engine_queue(record.engine_queue_id, record.key)
        self._tenants.setdefault(record.tenant_id, {})[record.queue_name] = record

    def remove(self, tenant_id: str, queue_name: str) -> QueueRecord | None:
        """Drop a record. The tenant itself is kept, even when emptied."""
        record = self._tenants.get(tenant_id, {}).pop(queue_name, None)
        if record is not None:
            self.release_engine_queue(record.engine_queue_id, record.key)
        return record

    def list_queues(self, tenant_id: str) -> list[str]:
        """
        Queue names of a tenant, sorted.

        Raises:
            NotFoundError: If the tenant is unknown.
        """
        queues = self._tenants.get(tenant_id)
        if queues is None:
            raise NotFoundError("tenant", tenant_id)
        return sorted(queues)

    def tenants(self) -> list[str]:
        return sorted(self._tenants)

    def records(self) -> list[QueueRecord]:
        """Every registered queue."""
        return [
            record
            for queues in self._tenants.values()
            for record in queues.values()
        ]

    def clear(self) -> None:
        self._tenants.clear()
        self._engine_ids.clear()
