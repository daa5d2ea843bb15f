"""Gated trigger operations.

Mutations on individual triggers.  Each one passes the kill switch first,
then runs its DDL and the matching registry write inside one transaction.

- ``enable`` / ``disable``: ``ALTER TABLE ... ENABLE|DISABLE TRIGGER``
- ``drop``: ``DROP TRIGGER`` and remove the registry entry (reason required)
- ``re_execute``: drop and reinstall from the registry definition (reason
  required)

``register`` writes desired state only and is not gated; ``verify`` is
read-only apart from stamping ``last_verified_at``.

Usage:
    ops = TriggerOperations(adapter, registry, inspector, kill_switch)
    ops.register(TriggerDefinition(name="users_audit", table="users", events=["insert"],
                                   function_name="audit_users", function_body="RETURN NEW;"))
    ops.disable("users_audit", environment="production",
                confirmation="EXECUTE TRIGGER_DISABLE")
    ops.drop("users_audit", reason="replaced by users_audit_v2", confirmation="EXECUTE TRIGGER_DROP")
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pg_trigger_control.drift.detector import DriftDetector
from pg_trigger_control.drift.models import DriftResult, DriftState
from pg_trigger_control.errors import (
    DefinitionValidationError,
    ExecutionError,
    NotFoundError,
    TriggerControlError,
)
from pg_trigger_control.killswitch import KillSwitch, Operation
from pg_trigger_control.migrator.statements import split_statements
from pg_trigger_control.registry.models import TriggerDefinition, TriggerEvent

if TYPE_CHECKING:
    from pg_trigger_control.adapters.base import CatalogInspector, DatabaseClient
    from pg_trigger_control.registry.store import TriggerRegistry

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# DDL helpers
# ------------------------------------------------------------------


def quote_ident(name: str) -> str:
    """Quote a possibly schema-qualified identifier.

    Examples:
        >>> quote_ident("users")
        '"users"'
        >>> quote_ident("audit.users")
        '"audit"."users"'
    """
    return ".".join('"' + part.replace('"', '""') + '"' for part in name.split("."))


def install_statements(definition: TriggerDefinition) -> list[str]:
    """DDL that installs *definition*'s function and trigger.

    A ``function_body`` that is already DDL (starts with ``CREATE``) is run
    as written.  Otherwise the body is wrapped in ``CREATE OR REPLACE
    FUNCTION <function_name>()`` followed by the ``CREATE TRIGGER``.

    Raises:
        DefinitionValidationError: If the body is missing, or is a bare body
            without a ``function_name``.
    """
    body = (definition.function_body or "").strip()
    if not body:
        raise DefinitionValidationError(
            f"Cannot install '{definition.name}': missing function_body",
            context={"fields": ["function_body"]},
        )
    if body.upper().startswith("CREATE"):
        return split_statements(body)
    if not definition.function_name:
        raise DefinitionValidationError(
            f"Cannot install '{definition.name}': function_name is required for a bare function body",
            context={"fields": ["function_name"]},
        )

    function = quote_ident(definition.function_name)
    events = " OR ".join(e.value.upper() for e in sorted(definition.events))
    level = "STATEMENT" if TriggerEvent.TRUNCATE in definition.events else "ROW"
    when = f" WHEN ({definition.condition})" if definition.condition else ""
    return [
        f"CREATE OR REPLACE FUNCTION {function}() RETURNS trigger LANGUAGE plpgsql AS $function$\n"
        f"{body}\n$function$",
        f"CREATE TRIGGER {quote_ident(definition.name)} {definition.timing.value.upper()} {events} "
        f"ON {quote_ident(definition.table)} FOR EACH {level}{when} EXECUTE FUNCTION {function}()",
    ]


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ------------------------------------------------------------------
# Operations
# ------------------------------------------------------------------


class TriggerOperations:
    """Kill-switch-gated mutations on registered triggers.

    Args:
        client: Database client; every mutation runs in ``client.transaction()``.
        registry: Desired-state registry.
        inspector: Live catalog inspector.
        kill_switch: Gate every mutation passes first.
        environment: Default environment for gate checks.
    """

    def __init__(
        self,
        client: "DatabaseClient",
        registry: "TriggerRegistry",
        inspector: "CatalogInspector",
        kill_switch: KillSwitch,
        environment: str | None = None,
    ) -> None:
        self._client = client
        self._registry = registry
        self._inspector = inspector
        self._kill_switch = kill_switch
        self._environment = environment

    def register(self, definition: TriggerDefinition) -> TriggerDefinition:
        """Record desired state.  Does not touch the database objects."""
        saved = self._registry.save(definition)
        logger.info("Registered trigger %s on %s (version %d)", saved.name, saved.table, saved.version)
        return saved

    def enable(
        self,
        name: str,
        actor: Any = None,
        confirmation: str | None = None,
        environment: str | None = None,
    ) -> TriggerDefinition:
        """Enable the trigger in the database (if present) and in the registry."""
        return self._set_enabled(name, True, actor, confirmation, environment)

    def disable(
        self,
        name: str,
        actor: Any = None,
        confirmation: str | None = None,
        environment: str | None = None,
    ) -> TriggerDefinition:
        """Disable the trigger in the database (if present) and in the registry."""
        return self._set_enabled(name, False, actor, confirmation, environment)

    def drop(
        self,
        name: str,
        reason: str,
        actor: Any = None,
        confirmation: str | None = None,
        environment: str | None = None,
    ) -> None:
        """Drop the trigger from the database and remove its registry entry.

        Raises:
            NotFoundError: If *name* is not registered.
            GatedError: When the kill switch blocks the drop.
            ValueError: If *reason* is blank.
            ExecutionError: When the DDL fails; nothing is removed.
        """
        definition = self._require(name)
        reason = self._require_reason(reason)
        self._check(Operation.TRIGGER_DROP, actor, confirmation, environment)

        logger.info("[TRIGGER_DROP] Dropping: %s on %s", name, definition.table)
        logger.info("[TRIGGER_DROP] Reason: %s", reason)
        exists = self._inspector.find_trigger(name) is not None

        def work(tx: "DatabaseClient") -> None:
            if exists:
                tx.execute(f"DROP TRIGGER IF EXISTS {quote_ident(name)} ON {quote_ident(definition.table)}")
            self._registry.delete(name, client=tx)

        self._in_transaction("TRIGGER_DROP", name, work)
        logger.info("[TRIGGER_DROP] Removed %s from %s", name, "database and registry" if exists else "registry")

    def re_execute(
        self,
        name: str,
        reason: str,
        actor: Any = None,
        confirmation: str | None = None,
        environment: str | None = None,
    ) -> TriggerDefinition:
        """Drop and reinstall the trigger from its registry definition.

        Raises:
            NotFoundError: If *name* is not registered.
            GatedError: When the kill switch blocks the operation.
            ValueError: If *reason* is blank.
            DefinitionValidationError: If the definition cannot be installed.
            ExecutionError: When the DDL fails; the transaction is rolled back.
        """
        definition = self._require(name)
        reason = self._require_reason(reason)
        self._check(Operation.TRIGGER_RE_EXECUTE, actor, confirmation, environment)
        statements = install_statements(definition)

        current = DriftDetector(self._registry, self._inspector).detect(name)
        logger.info("[TRIGGER_RE_EXECUTE] Re-executing: %s on %s", name, definition.table)
        logger.info("[TRIGGER_RE_EXECUTE] Reason: %s", reason)
        logger.info("[TRIGGER_RE_EXECUTE] Current state: %s", current.state.value if current else "missing")

        now = _now()
        updated = definition.with_changes(installed_at=now, last_executed_at=now, last_verified_at=now)

        def work(tx: "DatabaseClient") -> None:
            if current is not None and current.live_record is not None:
                tx.execute(f"DROP TRIGGER IF EXISTS {quote_ident(name)} ON {quote_ident(definition.table)}")
            for statement in statements:
                tx.execute(statement)
            if not definition.enabled:
                tx.execute(f"ALTER TABLE {quote_ident(definition.table)} DISABLE TRIGGER {quote_ident(name)}")
            self._registry.save(updated, client=tx)

        self._in_transaction("TRIGGER_RE_EXECUTE", name, work)
        logger.info("[TRIGGER_RE_EXECUTE] Re-created %s", name)
        return updated

    def verify(self, name: str) -> DriftResult:
        """Classify *name*; an IN_SYNC trigger gets ``last_verified_at`` stamped.

        Raises:
            NotFoundError: If *name* is not registered.
        """
        self._require(name)
        result = DriftDetector(self._registry, self._inspector).detect(name)
        if result.state is DriftState.IN_SYNC:
            self._registry.save(result.registry_entry.with_changes(last_verified_at=_now()))
        logger.info("[DRIFT] Verified %s: %s", name, result.state.value)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_enabled(
        self,
        name: str,
        enabled: bool,
        actor: Any,
        confirmation: str | None,
        environment: str | None,
    ) -> TriggerDefinition:
        operation = Operation.TRIGGER_ENABLE if enabled else Operation.TRIGGER_DISABLE
        prefix = operation.value.upper()
        definition = self._require(name)
        self._check(operation, actor, confirmation, environment)

        exists = self._inspector.find_trigger(name) is not None
        action = "ENABLE" if enabled else "DISABLE"
        updated = definition.with_changes(enabled=enabled)

        def work(tx: "DatabaseClient") -> None:
            if exists:
                tx.execute(f"ALTER TABLE {quote_ident(definition.table)} {action} TRIGGER {quote_ident(name)}")
            self._registry.save(updated, client=tx)

        self._in_transaction(prefix, name, work)
        logger.info("[%s] %s %sd%s", prefix, name, action.lower(), "" if exists else " (registry only)")
        return updated

    def _require(self, name: str) -> TriggerDefinition:
        definition = self._registry.find(name)
        if definition is None:
            raise NotFoundError(f"Trigger '{name}' is not registered", context={"trigger_name": name})
        return definition

    def _check(self, operation: Operation, actor: Any, confirmation: str | None, environment: str | None) -> None:
        self._kill_switch.check(
            operation,
            environment=environment or self._environment,
            actor=actor,
            confirmation=confirmation,
        )

    @staticmethod
    def _require_reason(reason: str | None) -> str:
        if reason is None or not str(reason).strip():
            raise ValueError("Reason is required")
        return str(reason).strip()

    @contextmanager
    def _wrap_errors(self, prefix: str, name: str) -> Iterator[None]:
        try:
            yield
        except TriggerControlError:
            raise
        except Exception as e:
            logger.error("[%s] Failed for %s: %s", prefix, name, e)
            raise ExecutionError(
                f"{prefix.lower()} failed for trigger '{name}': {e}",
                context={"trigger_name": name, "database_error": str(e)},
            ) from e

    def _in_transaction(self, prefix: str, name: str, work: Callable[["DatabaseClient"], None]) -> None:
        with self._wrap_errors(prefix, name):
            with self._client.transaction() as tx:
                work(tx)
