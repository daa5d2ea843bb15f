"""Desired-state registry stores.

The registry is keyed by unique trigger ``name`` over ``TriggerDefinition``.
The control plane mostly reads from it (``find``, ``all``, ``for_table``);
trigger operations write back through ``save`` and ``delete``.

Two implementations:

- ``InMemoryRegistry``: dict-backed, for embedding and tests.
- ``SqlRegistry``: persisted through a ``DatabaseClient`` in the
  ``trigger_control_registry`` table.

Both support an optional read-through cache for the duration of one batch:

    with registry.batch():
        results = detector.detect_all()
    # cache cleared here
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol

from pg_trigger_control.registry.models import TriggerDefinition

if TYPE_CHECKING:
    from pg_trigger_control.adapters.base import DatabaseClient

logger = logging.getLogger(__name__)


class TriggerRegistry(Protocol):
    """Registry interface consumed by the detector and trigger operations."""

    def find(self, name: str) -> TriggerDefinition | None:
        ...

    def all(self) -> list[TriggerDefinition]:
        ...

    def for_table(self, table: str) -> list[TriggerDefinition]:
        ...

    def save(self, definition: TriggerDefinition, client: "DatabaseClient | None" = None) -> TriggerDefinition:
        ...

    def delete(self, name: str, client: "DatabaseClient | None" = None) -> None:
        ...

    def batch(self) -> Any:
        ...


class _BatchCache:
    """Per-thread read-through cache for ``find()`` within one batch."""

    def __init__(self) -> None:
        self._local = threading.local()

    @property
    def _cache(self) -> dict[str, TriggerDefinition | None] | None:
        return getattr(self._local, "cache", None)

    @contextmanager
    def batch(self) -> Iterator["_BatchCache"]:
        """Enable the cache until the outermost batch block exits."""
        outermost = self._cache is None
        if outermost:
            self._local.cache = {}
        try:
            yield self
        finally:
            if outermost:
                self._local.cache = None

    def find(self, name: str) -> TriggerDefinition | None:
        cache = self._cache
        if cache is None:
            return self._find(name)
        if name not in cache:
            cache[name] = self._find(name)
        return cache[name]

    def _invalidate(self, name: str) -> None:
        cache = self._cache
        if cache is not None:
            cache.pop(name, None)

    def _find(self, name: str) -> TriggerDefinition | None:
        raise NotImplementedError


# ------------------------------------------------------------------
# In-memory store
# ------------------------------------------------------------------


class InMemoryRegistry(_BatchCache):
    """Dict-backed registry.

    Example:
        registry = InMemoryRegistry([TriggerDefinition(name="t1", table="users", events=["insert"])])
        registry.find("t1").table
        # 'users'
    """

    def __init__(self, definitions: list[TriggerDefinition] | None = None) -> None:
        super().__init__()
        self._entries: dict[str, TriggerDefinition] = {}
        self._lock = threading.Lock()
        for definition in definitions or []:
            self._entries[definition.name] = definition

    def _find(self, name: str) -> TriggerDefinition | None:
        with self._lock:
            return self._entries.get(name)

    def all(self) -> list[TriggerDefinition]:
        with self._lock:
            return sorted(self._entries.values(), key=lambda d: d.name)

    def for_table(self, table: str) -> list[TriggerDefinition]:
        return [d for d in self.all() if d.table == table]

    def save(self, definition: TriggerDefinition, client: "DatabaseClient | None" = None) -> TriggerDefinition:
        with self._lock:
            self._entries[definition.name] = definition
        self._invalidate(definition.name)
        return definition

    def delete(self, name: str, client: "DatabaseClient | None" = None) -> None:
        with self._lock:
            self._entries.pop(name, None)
        self._invalidate(name)


# ------------------------------------------------------------------
# SQL-backed store
# ------------------------------------------------------------------


_COLUMNS = (
    "name, table_name, function_name, events, timing, condition, version, "
    "enabled, environments, source, function_body, fingerprint, "
    "installed_at, last_verified_at, last_executed_at"
)


class SqlRegistry(_BatchCache):
    """Registry persisted in a PostgreSQL table.

    Writes accept an optional ``client`` so they can join a caller's
    transaction (``with adapter.transaction() as tx: registry.save(d, tx)``).

    Args:
        client: Database client used for reads and default writes.
        table_name: Registry table (default: trigger_control_registry).
    """

    def __init__(self, client: "DatabaseClient", table_name: str = "trigger_control_registry") -> None:
        super().__init__()
        self._client = client
        self._table = table_name

    @property
    def table_name(self) -> str:
        return self._table

    def ensure_table(self) -> None:
        """Create the registry table and its indexes if missing."""
        self._client.execute(f"""
            CREATE TABLE IF NOT EXISTS {self._table} (
                id BIGSERIAL PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                table_name TEXT NOT NULL,
                function_name TEXT,
                events TEXT NOT NULL,
                timing TEXT NOT NULL DEFAULT 'before',
                condition TEXT,
                version INTEGER NOT NULL DEFAULT 1 CHECK (version > 0),
                enabled BOOLEAN NOT NULL DEFAULT TRUE,
                environments TEXT,
                source TEXT NOT NULL DEFAULT 'declared'
                    CHECK (source IN ('declared', 'generated', 'manual')),
                function_body TEXT,
                fingerprint TEXT NOT NULL,
                installed_at TIMESTAMPTZ,
                last_verified_at TIMESTAMPTZ,
                last_executed_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
        """)
        self._client.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{self._table}_table_name ON {self._table} (table_name)"
        )

    def _find(self, name: str) -> TriggerDefinition | None:
        rows = self._client.select(self._table, _COLUMNS, filters={"name": name})
        return self._from_row(rows[0]) if rows else None

    def all(self) -> list[TriggerDefinition]:
        rows = self._client.select(self._table, _COLUMNS, order_by="name")
        return [self._from_row(row) for row in rows]

    def for_table(self, table: str) -> list[TriggerDefinition]:
        rows = self._client.select(
            self._table, _COLUMNS, filters={"table_name": table}, order_by="name"
        )
        return [self._from_row(row) for row in rows]

    def save(self, definition: TriggerDefinition, client: "DatabaseClient | None" = None) -> TriggerDefinition:
        """Insert or update *definition*, storing its current fingerprint."""
        client = client or self._client
        data = self._to_row(definition)
        existing = client.select(self._table, "name", filters={"name": definition.name})
        if existing:
            data["updated_at"] = datetime.now(timezone.utc)
            row = client.update(self._table, data, {"name": definition.name})
        else:
            row = client.insert(self._table, data)
        self._invalidate(definition.name)
        logger.debug("Saved registry entry %s (fingerprint=%s)", definition.name, definition.fingerprint)
        return self._from_row(row)

    def delete(self, name: str, client: "DatabaseClient | None" = None) -> None:
        (client or self._client).delete(self._table, {"name": name})
        self._invalidate(name)

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _to_row(definition: TriggerDefinition) -> dict[str, Any]:
        return {
            "name": definition.name,
            "table_name": definition.table,
            "function_name": definition.function_name,
            "events": ",".join(sorted(e.value for e in definition.events)),
            "timing": definition.timing.value,
            "condition": definition.condition,
            "version": definition.version,
            "enabled": definition.enabled,
            "environments": ",".join(sorted(definition.environments)) or None,
            "source": definition.source.value,
            "function_body": definition.function_body,
            "fingerprint": definition.fingerprint,
            "installed_at": definition.installed_at,
            "last_verified_at": definition.last_verified_at,
            "last_executed_at": definition.last_executed_at,
        }

    @staticmethod
    def _from_row(row: dict[str, Any]) -> TriggerDefinition:
        data = {k: v for k, v in row.items() if k not in ("fingerprint", "id", "created_at", "updated_at")}
        data["table"] = data.pop("table_name")
        stored = row.get("fingerprint")
        definition = TriggerDefinition(**data)
        if stored and stored != definition.fingerprint:
            logger.warning(
                "Registry entry %s has a stale stored fingerprint; using recomputed value",
                definition.name,
            )
        return definition
