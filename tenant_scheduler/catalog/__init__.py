"""
Catalog module.
Durable record of which (tenant, queue) pairs exist.
"""

from tenant_scheduler.catalog.base import (
    CatalogStore,
    catalog_key,
    parse_catalog_key,
    tenant_set_name,
)
from tenant_scheduler.catalog.memory import MemoryCatalogStore
from tenant_scheduler.catalog.sql import SqlCatalogStore

__all__ = [
    "CatalogStore",
    "MemoryCatalogStore",
    "SqlCatalogStore",
    "catalog_key",
    "parse_catalog_key",
    "tenant_set_name",
]
