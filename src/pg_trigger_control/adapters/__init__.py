"""Database adapters package.

Provides the ``DatabaseClient`` and ``CatalogInspector`` Protocols and the
SQLAlchemy-backed ``PostgresAdapter``.

Usage:
    from pg_trigger_control.adapters import DatabaseClient, PostgresAdapter
"""

from pg_trigger_control.adapters.base import CatalogInspector, DatabaseClient
from pg_trigger_control.adapters.postgres import PostgresAdapter

__all__ = [
    "CatalogInspector",
    "DatabaseClient",
    "PostgresAdapter",
]
