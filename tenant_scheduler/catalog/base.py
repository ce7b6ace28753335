"""
Durable catalog store contract.

The catalog offers two primitives: named sets of members and named flat
maps of field -> value. The scheduler keeps one map entry per registered
queue and one set of queue names per tenant.
"""

from abc import ABC, abstractmethod

from tenant_scheduler.constants import (
    CATALOG_KEY_SEPARATOR,
    CATALOG_TENANT_SET_PREFIX,
)


def catalog_key(tenant_id: str, queue_name: str) -> str:
    """
    Composite catalog key for a (tenant, queue) pair.

    Raises:
        ValueError: If the tenant id contains the separator.
    """
    if CATALOG_KEY_SEPARATOR in tenant_id:
        raise ValueError(f"Tenant id may not contain {CATALOG_KEY_SEPARATOR!r}: {tenant_id!r}")
    return f"{tenant_id}{CATALOG_KEY_SEPARATOR}{queue_name}"


def parse_catalog_key(key: str) -> tuple[str, str]:
    """
    Split a composite catalog key into (tenant_id, queue_name).

    Tenant ids never contain the separator, so the first one splits.

    Raises:
        ValueError: If the key has no separator or an empty part.
    """
    tenant_id, separator, queue_name = key.partition(CATALOG_KEY_SEPARATOR)
    if not separator or not tenant_id or not queue_name:
        raise ValueError(f"Malformed catalog key: {key!r}")
    return tenant_id, queue_name


def tenant_set_name(tenant_id: str) -> str:
    """Name of the set holding a tenant's queue names."""
    return f"{CATALOG_TENANT_SET_PREFIX}{tenant_id}"


class CatalogStore(ABC):
    """
    Durable store of which (tenant, queue) pairs exist.

    Every write must be durable when the awaited call returns. Transport
    failures raise EngineUnavailableError.
    """

    @abstractmethod
    async def add_member(self, set_name: str, member: str) -> None:
        """Add a member to a named set (no-op if present)."""

    @abstractmethod
    async def remove_member(self, set_name: str, member: str) -> None:
        """Remove a member from a named set (no-op if absent)."""

    @abstractmethod
    async def list_members(self, set_name: str) -> set[str]:
        """Members of a named set; empty if the set does not exist."""

    @abstractmethod
    async def get(self, map_name: str, field: str) -> str | None:
        """Value of a map field, or None."""

    @abstractmethod
    async def set(self, map_name: str, field: str, value: str) -> None:
        """Create or overwrite a map field."""

    @abstractmethod
    async def delete(self, map_name: str, field: str) -> None:
        """Remove a map field (no-op if absent)."""

    @abstractmethod
    async def get_all(self, map_name: str) -> dict[str, str]:
        """All fields of a named map."""

    async def close(self) -> None:
        """Release resources held by the store."""
