"""
SQL-backed catalog store.

Each call runs in its own transaction and commits before returning, so a
write is durable once the awaited call completes.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_scheduler.catalog.base import CatalogStore
from tenant_scheduler.db.connection import session_scope
from tenant_scheduler.db.models import CatalogEntry, CatalogSetMember

logger = logging.getLogger(__name__)


class SqlCatalogStore(CatalogStore):
    """
    Catalog store on the catalog_sets / catalog_entries tables.

    Writes use session.merge() so repeated adds and sets are idempotent
    on every dialect.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize the store with a session factory.

        Args:
            session_factory: Factory producing async database sessions.
        """
        self._session_factory = session_factory

    async def add_member(self, set_name: str, member: str) -> None:
        async with session_scope(self._session_factory) as session:
            await session.merge(CatalogSetMember(name=set_name, member=member))

    async def remove_member(self, set_name: str, member: str) -> None:
        async with session_scope(self._session_factory) as session:
            await session.execute(
                delete(CatalogSetMember).where(
                    CatalogSetMember.name == set_name,
                    CatalogSetMember.member == member,
                )
            )

    async def list_members(self, set_name: str) -> set[str]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(CatalogSetMember.member).where(CatalogSetMember.name == set_name)
            )
            return set(result.scalars().all())

    async def get(self, map_name: str, field: str) -> str | None:
        async with session_scope(self._session_factory) as session:
            entry = await session.get(CatalogEntry, (map_name, field))
            return entry.value if entry is not None else None

    async def set(self, map_name: str, field: str, value: str) -> None:
        async with session_scope(self._session_factory) as session:
            await session.merge(CatalogEntry(name=map_name, field=field, value=value))

        logger.debug(
            "Catalog entry written",
            extra={"map": map_name, "field": field, "value": value},
        )

    async def delete(self, map_name: str, field: str) -> None:
        async with session_scope(self._session_factory) as session:
            await session.execute(
                delete(CatalogEntry).where(
                    CatalogEntry.name == map_name,
                    CatalogEntry.field == field,
                )
            )

    async def get_all(self, map_name: str) -> dict[str, str]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(CatalogEntry.field, CatalogEntry.value)
                .where(CatalogEntry.name == map_name)
                .order_by(CatalogEntry.field)
            )
            return {field: value for field, value in result.all()}
