"""Tests for the in-memory and SQL-backed registry stores."""

import logging
from datetime import datetime, timezone

import pytest

from pg_trigger_control.registry.models import TriggerDefinition
from pg_trigger_control.registry.store import InMemoryRegistry, SqlRegistry

from conftest import FakeClient


# ============================================================================
# InMemoryRegistry
# ============================================================================


class TestInMemoryRegistry:
    """Test the dict-backed registry."""

    def test_find_and_all(self, definition: TriggerDefinition) -> None:
        """Entries are found by name and listed sorted."""
        registry = InMemoryRegistry([definition.with_changes(name="zz"), definition])
        assert registry.find("t1") == definition
        assert [d.name for d in registry.all()] == ["t1", "zz"]
        assert registry.find("missing") is None

    def test_for_table(self, definition: TriggerDefinition) -> None:
        """for_table filters by table."""
        registry = InMemoryRegistry([definition, definition.with_changes(name="o1", table="orders")])
        assert [d.name for d in registry.for_table("orders")] == ["o1"]

    def test_save_replaces(self, registry: InMemoryRegistry, definition: TriggerDefinition) -> None:
        """Saving an existing name replaces the entry."""
        registry.save(definition.with_changes(version=2))
        assert registry.find("t1").version == 2
        assert len(registry.all()) == 1

    def test_delete(self, registry: InMemoryRegistry) -> None:
        """delete removes the entry; deleting twice is harmless."""
        registry.delete("t1")
        registry.delete("t1")
        assert registry.find("t1") is None

    def test_batch_cache_invalidated_on_save(self, registry: InMemoryRegistry, definition: TriggerDefinition) -> None:
        """Within a batch, writes invalidate the cached entry."""
        with registry.batch():
            assert registry.find("t1").version == 1
            registry.save(definition.with_changes(version=3))
            assert registry.find("t1").version == 3


# ============================================================================
# SqlRegistry
# ============================================================================


class TestSqlRegistry:
    """Test the table-backed registry against the FakeClient."""

    def test_ensure_table(self, client: FakeClient) -> None:
        """ensure_table creates the table and its index."""
        SqlRegistry(client, table_name="reg").ensure_table()
        assert "CREATE TABLE IF NOT EXISTS reg" in client.executed[0]
        assert "CHECK (source IN ('declared', 'generated', 'manual'))" in client.executed[0]
        assert client.executed[1] == "CREATE INDEX IF NOT EXISTS idx_reg_table_name ON reg (table_name)"

    def test_save_inserts_then_updates(self, client: FakeClient, definition: TriggerDefinition) -> None:
        """save() inserts new names and updates existing ones."""
        registry = SqlRegistry(client)
        registry.save(definition.with_changes(events=["update", "insert"], environments=["staging", "production"]))
        [row] = client.tables["trigger_control_registry"]
        assert row["table_name"] == "users"
        assert row["events"] == "insert,update"
        assert row["environments"] == "production,staging"
        assert row["fingerprint"] == definition.fingerprint

        registry.save(definition.with_changes(version=2))
        [row] = client.tables["trigger_control_registry"]
        assert row["version"] == 2
        assert "updated_at" in row

    def test_round_trip(self, client: FakeClient, definition: TriggerDefinition) -> None:
        """A saved definition reads back equal."""
        registry = SqlRegistry(client)
        stamped = definition.with_changes(installed_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        registry.save(stamped)
        assert registry.find("t1") == stamped
        assert registry.all() == [stamped]
        assert registry.for_table("users") == [stamped]
        assert registry.for_table("orders") == []

    def test_delete(self, client: FakeClient, definition: TriggerDefinition) -> None:
        """delete removes the row."""
        registry = SqlRegistry(client)
        registry.save(definition)
        registry.delete("t1")
        assert registry.find("t1") is None

    def test_write_joins_transaction(self, client: FakeClient, definition: TriggerDefinition) -> None:
        """Writes made with a transaction client roll back with it."""
        registry = SqlRegistry(client)
        with pytest.raises(RuntimeError):
            with client.transaction() as tx:
                registry.save(definition, client=tx)
                raise RuntimeError("ddl failed")
        assert registry.find("t1") is None

    def test_stale_fingerprint_warning(self, client: FakeClient, definition: TriggerDefinition, caplog) -> None:
        """A stored fingerprint that disagrees with the fields is logged and recomputed."""
        registry = SqlRegistry(client)
        registry.save(definition)
        client.tables["trigger_control_registry"][0]["fingerprint"] = "0" * 64
        with caplog.at_level(logging.WARNING, logger="pg_trigger_control.registry.store"):
            entry = registry.find("t1")
        assert entry.fingerprint == definition.fingerprint
        assert "stale stored fingerprint" in caplog.text

    def test_batch_cache(self, client: FakeClient, definition: TriggerDefinition) -> None:
        """Inside a batch, repeated finds hit the cache."""
        registry = SqlRegistry(client)
        registry.save(definition)
        with registry.batch():
            registry.find("t1")
            client.tables["trigger_control_registry"].clear()
            assert registry.find("t1") is not None
        assert registry.find("t1") is None
