"""
Database module.
Contains database connection management and models.
"""

from tenant_scheduler.db.connection import (
    close_db,
    create_session_factory,
    get_engine,
    init_db,
    session_scope,
)
from tenant_scheduler.db.models import (
    Base,
    CatalogEntry,
    CatalogSetMember,
    EngineJob,
    EngineQueue,
)

__all__ = [
    "get_engine",
    "init_db",
    "close_db",
    "create_session_factory",
    "session_scope",
    "Base",
    "CatalogEntry",
    "CatalogSetMember",
    "EngineJob",
    "EngineQueue",
]
