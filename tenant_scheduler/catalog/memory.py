"""
In-process catalog store.

Durable only for the lifetime of the object; sharing one instance across
service restarts simulates a persistent catalog in tests and local runs.
"""

from collections import defaultdict

from tenant_scheduler.catalog.base import CatalogStore


class MemoryCatalogStore(CatalogStore):
    """Catalog store backed by dictionaries."""

    def __init__(self) -> None:
        self._sets: dict[str, set[str]] = defaultdict(set)
        self._maps: dict[str, dict[str, str]] = defaultdict(dict)

    async def add_member(self, set_name: str, member: str) -> None:
        self._sets[set_name].add(member)

    async def remove_member(self, set_name: str, member: str) -> None:
        self._sets[set_name].discard(member)

    async def list_members(self, set_name: str) -> set[str]:
        return set(self._sets.get(set_name, ()))

    async def get(self, map_name: str, field: str) -> str | None:
        return self._maps.get(map_name, {}).get(field)

    async def set(self, map_name: str, field: str, value: str) -> None:
        self._maps[map_name][field] = value

    async def delete(self, map_name: str, field: str) -> None:
        self._maps[map_name].pop(field, None)

    async def get_all(self, map_name: str) -> dict[str, str]:
        return dict(self._maps.get(map_name, {}))
