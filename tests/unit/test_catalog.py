"""
Unit tests for the catalog store helpers and the memory store.
"""

import pytest

from tenant_scheduler.catalog import (
    MemoryCatalogStore,
    catalog_key,
    parse_catalog_key,
    tenant_set_name,
)


class TestCatalogKeys:
    """Tests for catalog key helpers."""

    def test_catalog_key(self):
        assert catalog_key("t1", "alpha") == "t1:alpha"

    def test_parse_splits_on_first_separator(self):
        assert parse_catalog_key("t1:alpha:beta") == ("t1", "alpha:beta")

    @pytest.mark.parametrize("key", ["t1", ":alpha", "t1:", ""])
    def test_parse_malformed(self, key: str):
        with pytest.raises(ValueError):
            parse_catalog_key(key)

    def test_tenant_with_separator_rejected(self):
        with pytest.raises(ValueError):
            catalog_key("t1:x", "alpha")

    def test_tenant_set_name(self):
        assert tenant_set_name("t1") == "tenant_queue:t1"


class TestMemoryCatalogStore:
    """Tests for MemoryCatalogStore."""

    @pytest.mark.asyncio
    async def test_sets(self):
        store = MemoryCatalogStore()

        await store.add_member("s", "a")
        await store.add_member("s", "a")
        await store.add_member("s", "b")
        assert await store.list_members("s") == {"a", "b"}

        await store.remove_member("s", "a")
        await store.remove_member("s", "missing")
        assert await store.list_members("s") == {"b"}
        assert await store.list_members("unknown") == set()

    @pytest.mark.asyncio
    async def test_maps(self):
        store = MemoryCatalogStore()

        await store.set("m", "k1", "v1")
        await store.set("m", "k1", "v2")
        await store.set("m", "k2", "v3")

        assert await store.get("m", "k1") == "v2"
        assert await store.get_all("m") == {"k1": "v2", "k2": "v3"}

        await store.delete("m", "k1")
        await store.delete("m", "k1")
        assert await store.get("m", "k1") is None
        assert await store.get_all("other") == {}
