"""Collaborator protocol definitions.

Defines the two Protocols the control plane depends on:

- ``DatabaseClient``: dict-based CRUD plus raw SQL and transactions, used by
  the SQL-backed registry, the migration runner and trigger operations.
- ``CatalogInspector``: the four read-only catalog queries used by the
  drift detector, safety validator and pre-apply comparator.

All methods are synchronous and block on the underlying connection.

Usage:
    from pg_trigger_control.adapters.base import DatabaseClient

    def do_work(client: DatabaseClient) -> None:
        with client.transaction() as tx:
            tx.execute("ALTER TABLE users DISABLE TRIGGER users_audit")
            tx.update("trigger_control_registry", {"enabled": False}, {"name": "users_audit"})
"""

from contextlib import AbstractContextManager
from typing import Any, Protocol

from pg_trigger_control.schema.models import LiveFunctionRecord, LiveObjectRecord


class DatabaseClient(Protocol):
    """Database client interface that all adapters must implement."""

    def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Select rows from table.

        Args:
            table: Table name.
            columns: Comma-separated column names (e.g., ``"name, version"``).
            filters: Optional dict of field=value filters (all must match via AND).
            order_by: Optional column name to sort by.

        Returns:
            List of dicts, one per row.  Empty list if no matches.
        """
        ...

    def insert(self, table: str, data: dict) -> dict:
        """Insert row into table and return the created row."""
        ...

    def update(self, table: str, data: dict, filters: dict[str, Any]) -> dict:
        """Update rows in table and return the first updated row.

        Raises:
            ValueError: If no rows match filters.
        """
        ...

    def delete(self, table: str, filters: dict[str, Any]) -> None:
        """Delete rows from table."""
        ...

    def execute(self, sql: str, params: dict | None = None) -> None:
        """Execute a raw SQL statement (DDL or other non-query operations).

        Without ``params`` the statement is sent to the driver verbatim, so
        PL/pgSQL bodies containing colons or percent signs are safe.
        """
        ...

    def transaction(self) -> AbstractContextManager["DatabaseClient"]:
        """Open a transaction and yield a client bound to it.

        Commits when the block exits normally, rolls back when it raises.

        Example:
            with client.transaction() as tx:
                tx.execute("DROP TRIGGER IF EXISTS t1 ON users")
                tx.delete("trigger_control_registry", {"name": "t1"})
        """
        ...

    def close(self) -> None:
        """Close database connection and clean up resources."""
        ...


class CatalogInspector(Protocol):
    """Read-only queries against the live trigger/function catalogs.

    Implementations scope results to user schemas and exclude internal
    triggers (``tgisinternal`` and referential-integrity ``RI_`` triggers).
    """

    def all_triggers(self) -> list[LiveObjectRecord]:
        ...

    def find_trigger(self, name: str) -> LiveObjectRecord | None:
        ...

    def find_triggers_for_table(self, table: str) -> list[LiveObjectRecord]:
        ...

    def find_function(self, name: str) -> LiveFunctionRecord | None:
        ...
