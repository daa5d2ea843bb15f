"""Trigger migration runner.

Applies and rolls back SQL migration files, tracking applied versions in a
table.  Files live in one directory and are named ``<version>_<name>.sql``:

    -- migrate:up
    CREATE OR REPLACE FUNCTION audit_users() RETURNS trigger AS $$
    BEGIN
      RETURN NEW;
    END;
    $$ LANGUAGE plpgsql;

    -- migrate:down
    DROP FUNCTION IF EXISTS audit_users();

Every run passes the kill switch first (``migrate_up`` / ``migrate_down``).
Up runs then go through the safety validator and a logged pre-apply report
for every pending migration before any transaction opens.  Each migration's
statements and its version bookkeeping execute in one transaction.

Usage:
    migrator = Migrator(adapter, inspector, kill_switch, registry=registry)
    migrator.ensure_table()
    for status in migrator.status():
        print(status.version, status.name, status.state)

    result = migrator.run_up(environment="production",
                             confirmation="EXECUTE MIGRATE_UP")
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from pg_trigger_control.errors import ExecutionError, TriggerControlError
from pg_trigger_control.killswitch import KillSwitch, KillSwitchDecision, Operation
from pg_trigger_control.migrator.comparator import PreApplyComparator
from pg_trigger_control.migrator.diff_reporter import NO_DIFFERENCES, PreApplyDiffReporter
from pg_trigger_control.migrator.safety import SafetyValidator, SafetyVerdict
from pg_trigger_control.migrator.statements import split_statements

if TYPE_CHECKING:
    from pg_trigger_control.adapters.base import CatalogInspector, DatabaseClient
    from pg_trigger_control.registry.store import TriggerRegistry

logger = logging.getLogger(__name__)

_FILENAME = re.compile(r"^(?P<version>\d+)_(?P<name>[A-Za-z0-9_]+)\.sql$")
_SECTION = re.compile(r"^\s*--\s*migrate:(?P<direction>up|down)\s*$", re.IGNORECASE | re.MULTILINE)


# ------------------------------------------------------------------
# Migration files
# ------------------------------------------------------------------


@dataclass
class Migration:
    """One migration file.

    Example:
        migration = Migration.from_file(Path("db/triggers/20260101000000_audit_users.sql"))
        migration.version
        # 20260101000000
    """

    version: int
    name: str
    path: Path
    up_sql: str
    down_sql: str = ""

    @property
    def filename(self) -> str:
        return self.path.name

    @classmethod
    def from_file(cls, path: Path) -> "Migration":
        """Parse a migration file.

        Text before any section marker is part of the up section.

        Raises:
            ValueError: If the filename does not match ``<version>_<name>.sql``.
        """
        match = _FILENAME.match(path.name)
        if not match:
            raise ValueError(f"Invalid migration filename: {path.name} (expected <version>_<name>.sql)")

        sections = {"up": [], "down": []}
        current = "up"
        position = 0
        content = path.read_text(encoding="utf-8")
        for marker in _SECTION.finditer(content):
            sections[current].append(content[position : marker.start()])
            current = marker.group("direction").lower()
            position = marker.end()
        sections[current].append(content[position:])

        return cls(
            version=int(match.group("version")),
            name=match.group("name"),
            path=path,
            up_sql="".join(sections["up"]).strip(),
            down_sql="".join(sections["down"]).strip(),
        )


class MigrationStatus(BaseModel):
    """Applied state of one migration file."""

    version: int
    name: str
    state: str  # "up" or "down"
    applied_at: datetime | None = None


class MigrationRunResult(BaseModel):
    """Outcome of ``run_up()`` / ``run_down()``."""

    direction: str
    versions: list[int] = Field(default_factory=list)
    decision: KillSwitchDecision | None = None
    verdicts: dict[int, SafetyVerdict] = Field(default_factory=dict)
    reports: dict[int, str] = Field(default_factory=dict)
    removed_registry_entries: list[str] = Field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.versions)


# ------------------------------------------------------------------
# Runner
# ------------------------------------------------------------------


class Migrator:
    """Runs trigger migrations through the kill switch and safety checks.

    Args:
        client: Database client used for execution and version tracking.
        inspector: Catalog inspector for safety and pre-apply checks.
        kill_switch: Gate every run passes first.
        registry: Optional registry; rolled-back triggers are removed from it.
        directory: Migration directory (default: db/triggers).
        table_name: Version tracking table (default: trigger_migrations).
        allow_unsafe_migrations: Configured safety override.
    """

    def __init__(
        self,
        client: "DatabaseClient",
        inspector: "CatalogInspector",
        kill_switch: KillSwitch,
        registry: "TriggerRegistry | None" = None,
        directory: str | Path = "db/triggers",
        table_name: str = "trigger_migrations",
        allow_unsafe_migrations: bool = False,
    ) -> None:
        self._client = client
        self._inspector = inspector
        self._kill_switch = kill_switch
        self._registry = registry
        self.directory = Path(directory)
        self.table_name = table_name
        self._validator = SafetyValidator(inspector, allow_unsafe_migrations=allow_unsafe_migrations)
        self._comparator = PreApplyComparator(inspector)

    def ensure_table(self) -> None:
        """Create the version tracking table if missing."""
        self._client.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table_name} (
                version BIGINT PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
        """)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def migrations(self) -> list[Migration]:
        """All migration files, ordered by version.

        Raises:
            ValueError: If two files share a version.
        """
        if not self.directory.is_dir():
            return []
        found: dict[int, Migration] = {}
        for path in sorted(self.directory.glob("*.sql")):
            migration = Migration.from_file(path)
            if migration.version in found:
                raise ValueError(
                    f"Duplicate migration version {migration.version}: "
                    f"{found[migration.version].filename} and {migration.filename}"
                )
            found[migration.version] = migration
        return [found[v] for v in sorted(found)]

    def _applied_rows(self) -> dict[int, dict[str, Any]]:
        rows = self._client.select(self.table_name, "version, name, applied_at", order_by="version")
        return {int(row["version"]): row for row in rows}

    def applied_versions(self) -> list[int]:
        return sorted(self._applied_rows())

    def pending_migrations(self) -> list[Migration]:
        applied = set(self.applied_versions())
        return [m for m in self.migrations() if m.version not in applied]

    def current_version(self) -> int:
        """Highest applied version, or 0 when nothing has run."""
        applied = self.applied_versions()
        return applied[-1] if applied else 0

    def status(self) -> list[MigrationStatus]:
        """Applied state of every migration file, ordered by version."""
        applied = self._applied_rows()
        return [
            MigrationStatus(
                version=m.version,
                name=m.name,
                state="up" if m.version in applied else "down",
                applied_at=applied.get(m.version, {}).get("applied_at"),
            )
            for m in self.migrations()
        ]

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run_up(
        self,
        target_version: int | None = None,
        environment: str | None = None,
        actor: Any = None,
        confirmation: str | None = None,
        allow_unsafe: bool = False,
    ) -> MigrationRunResult:
        """Apply pending migrations up to and including *target_version*.

        Raises:
            GatedError: When the kill switch blocks the run.
            UnsafeChangeError: When a pending migration is unsafe and no
                override applies.  Nothing has been executed.
            ExecutionError: When a migration fails; its transaction is rolled
                back and earlier migrations stay applied.
        """
        pending = [m for m in self.pending_migrations() if target_version is None or m.version <= target_version]
        result = MigrationRunResult(direction="up")
        if not pending:
            logger.info("[MIGRATION] No pending migrations")
            return result

        result.decision = self._kill_switch.check(
            Operation.MIGRATE_UP, environment=environment, actor=actor, confirmation=confirmation
        )

        # All checks run before the first transaction opens
        for migration in pending:
            result.verdicts[migration.version] = self._validator.enforce(
                migration.up_sql, allow_unsafe=allow_unsafe, migration_name=migration.filename
            )
            result.reports[migration.version] = self._pre_apply_report(migration.up_sql, migration.filename)

        for migration in pending:
            self._execute(migration, migration.up_sql, "up")
            result.versions.append(migration.version)
        return result

    def run_down(
        self,
        target_version: int | None = None,
        environment: str | None = None,
        actor: Any = None,
        confirmation: str | None = None,
    ) -> MigrationRunResult:
        """Roll back applied migrations.

        Without *target_version* only the latest migration is rolled back;
        otherwise every applied migration newer than *target_version*.

        Raises:
            GatedError: When the kill switch blocks the run.
            ExecutionError: When a migration file is missing or fails.
        """
        applied = sorted(self.applied_versions(), reverse=True)
        if target_version is None:
            versions = applied[:1]
        else:
            versions = [v for v in applied if v > target_version]
        result = MigrationRunResult(direction="down")
        if not versions:
            logger.info("[MIGRATION] Nothing to roll back")
            return result

        result.decision = self._kill_switch.check(
            Operation.MIGRATE_DOWN, environment=environment, actor=actor, confirmation=confirmation
        )

        by_version = {m.version: m for m in self.migrations()}
        for version in versions:
            migration = by_version.get(version)
            if migration is None:
                raise ExecutionError(
                    f"Migration file for applied version {version} not found in {self.directory}",
                    context={"version": version, "directory": str(self.directory)},
                )
            result.reports[version] = self._pre_apply_report(migration.down_sql, migration.filename)
            self._execute(migration, migration.down_sql, "down")
            result.versions.append(version)

        result.removed_registry_entries = self.cleanup_orphaned_registry_entries()
        return result

    def cleanup_orphaned_registry_entries(self) -> list[str]:
        """Remove registry entries whose trigger no longer exists in the database."""
        if self._registry is None:
            return []
        removed = []
        for entry in self._registry.all():
            if self._inspector.find_trigger(entry.name) is None:
                self._registry.delete(entry.name)
                removed.append(entry.name)
        if removed:
            logger.info("[MIGRATION] Removed orphaned registry entries: %s", ", ".join(removed))
        return removed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _pre_apply_report(self, sql: str, migration_name: str) -> str:
        diffs = self._comparator.compare(sql)
        drops = self._comparator.planned_drops(sql)
        report = PreApplyDiffReporter.format(diffs, drops=drops, migration_name=migration_name)
        if report == NO_DIFFERENCES:
            logger.info("[PRE_APPLY] %s: %s", migration_name, report)
        else:
            logger.info("[PRE_APPLY] %s\n%s", migration_name, report)
        return report

    def _execute(self, migration: Migration, sql: str, direction: str) -> None:
        statements = split_statements(sql)
        logger.info(
            "[MIGRATION] Running %s %s (%d statement(s))", direction, migration.filename, len(statements)
        )
        try:
            with self._client.transaction() as tx:
                for statement in statements:
                    tx.execute(statement)
                if direction == "up":
                    tx.insert(self.table_name, {"version": migration.version, "name": migration.name})
                else:
                    tx.delete(self.table_name, {"version": migration.version})
        except TriggerControlError:
            raise
        except Exception as e:
            logger.error("[MIGRATION] %s %s failed: %s", direction, migration.filename, e)
            raise ExecutionError(
                f"Migration {migration.filename} ({direction}) failed: {e}",
                context={
                    "version": migration.version,
                    "direction": direction,
                    "database_error": str(e),
                },
            ) from e
        logger.info("[MIGRATION] Completed %s %s", direction, migration.filename)
