"""PostgreSQL trigger and function introspection via pg_catalog.

This module queries the live database for actual state:
- Triggers (name, table, function, definitions, enabled flag, schema)
- Functions (name, definition)

Implements the ``CatalogInspector`` protocol.  Internal triggers
(``tgisinternal``) and referential-integrity triggers (``RI_`` prefix) are
always excluded.  Results are never cached.

Uses psycopg (v3) for PostgreSQL connections.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import psycopg
from psycopg import Connection
from psycopg.rows import dict_row

from pg_trigger_control.errors import CatalogQueryError
from pg_trigger_control.schema.models import LiveFunctionRecord, LiveObjectRecord

logger = logging.getLogger(__name__)

_TRIGGER_COLUMNS = """
    t.tgname AS trigger_name,
    c.relname AS table_name,
    n.nspname AS schema_name,
    p.proname AS function_name,
    pg_get_triggerdef(t.oid) AS trigger_definition,
    pg_get_functiondef(p.oid) AS function_definition,
    t.tgenabled AS enabled_flag
"""

_TRIGGER_FROM = """
    FROM pg_trigger t
    JOIN pg_class c ON t.tgrelid = c.oid
    JOIN pg_namespace n ON c.relnamespace = n.oid
    JOIN pg_proc p ON t.tgfoid = p.oid
    WHERE NOT t.tgisinternal
      AND n.nspname = %(schema)s
      AND t.tgname NOT LIKE 'RI\\_%%'
"""


def psycopg_url(database_url: str) -> str:
    """Strip a SQLAlchemy driver suffix so psycopg accepts the URL.

    Examples:
        >>> psycopg_url("postgresql+psycopg://u@h/db")
        'postgresql://u@h/db'
    """
    for prefix in ("postgresql+psycopg://", "postgresql+asyncpg://"):
        if database_url.startswith(prefix):
            return "postgresql://" + database_url[len(prefix):]
    return database_url


class CatalogIntrospector:
    """Introspects PostgreSQL triggers and functions.

    Works as a context manager holding one connection, or standalone, in
    which case each query opens and closes its own short-lived connection.

    Usage:
        with CatalogIntrospector(database_url) as inspector:
            triggers = inspector.all_triggers()
            record = inspector.find_trigger("users_audit")

    Raises:
        CatalogQueryError: From every query when the driver fails.  Callers
            never receive an empty result in place of an error.
    """

    def __init__(self, database_url: str, schema_name: str = "public") -> None:
        """Initialize with database connection URL.

        Args:
            database_url: PostgreSQL connection URL
            schema_name: User schema to inspect (default: public)
        """
        self._database_url = psycopg_url(database_url)
        self._schema_name = schema_name
        self._conn: Connection | None = None

    def __enter__(self) -> "CatalogIntrospector":
        """Context manager entry - opens connection."""
        self._conn = self._connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - closes connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _connect(self) -> Connection:
        # Append connect_timeout if not already in URL
        url = self._database_url
        if "connect_timeout" not in url:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}connect_timeout=10"
        try:
            return psycopg.connect(url, autocommit=True)
        except psycopg.Error as e:
            raise CatalogQueryError(
                f"Failed to connect for catalog inspection: {e}",
                context={"database_error": str(e)},
            ) from e

    @contextmanager
    def _cursor(self) -> Iterator[psycopg.Cursor]:
        if self._conn is not None:
            with self._conn.cursor(row_factory=dict_row) as cur:
                yield cur
            return

        conn = self._connect()
        try:
            with conn.cursor(row_factory=dict_row) as cur:
                yield cur
        finally:
            conn.close()

    def _fetch(self, query: str, params: dict) -> list[dict]:
        params = {"schema": self._schema_name, **params}
        try:
            with self._cursor() as cur:
                cur.execute(query, params)
                return cur.fetchall()
        except psycopg.Error as e:
            logger.error("[CATALOG] Query failed: %s", e)
            raise CatalogQueryError(
                f"Catalog query failed: {e}",
                context={"database_error": str(e), "params": params},
            ) from e

    # ------------------------------------------------------------------
    # CatalogInspector protocol
    # ------------------------------------------------------------------

    def all_triggers(self) -> list[LiveObjectRecord]:
        """Get every user trigger in the schema, ordered by table and name."""
        query = f"SELECT {_TRIGGER_COLUMNS} {_TRIGGER_FROM} ORDER BY c.relname, t.tgname"
        return [LiveObjectRecord(**row) for row in self._fetch(query, {})]

    def find_trigger(self, name: str) -> LiveObjectRecord | None:
        """Get a single trigger by name, or None."""
        query = f"SELECT {_TRIGGER_COLUMNS} {_TRIGGER_FROM} AND t.tgname = %(name)s"
        rows = self._fetch(query, {"name": name})
        return LiveObjectRecord(**rows[0]) if rows else None

    def find_triggers_for_table(self, table: str) -> list[LiveObjectRecord]:
        """Get the triggers defined on *table*, ordered by name."""
        query = (
            f"SELECT {_TRIGGER_COLUMNS} {_TRIGGER_FROM} "
            "AND c.relname = %(table)s ORDER BY t.tgname"
        )
        return [LiveObjectRecord(**row) for row in self._fetch(query, {"table": table})]

    def find_function(self, name: str) -> LiveFunctionRecord | None:
        """Get a single function definition by name, or None.

        Note: Uses prokind = 'f' to filter for regular functions (PostgreSQL 11+).
        Overloads resolve to the lowest oid.
        """
        query = """
            SELECT
                p.proname AS function_name,
                pg_get_functiondef(p.oid) AS function_definition
            FROM pg_proc p
            JOIN pg_namespace n ON p.pronamespace = n.oid
            WHERE p.proname = %(name)s
              AND n.nspname = %(schema)s
              AND p.prokind = 'f'
            ORDER BY p.oid
            LIMIT 1
        """
        rows = self._fetch(query, {"name": name})
        return LiveFunctionRecord(**rows[0]) if rows else None

    # ------------------------------------------------------------------
    # Convenience checks
    # ------------------------------------------------------------------

    def trigger_exists(self, name: str) -> bool:
        return self.find_trigger(name) is not None

    def function_exists(self, name: str) -> bool:
        return self.find_function(name) is not None
