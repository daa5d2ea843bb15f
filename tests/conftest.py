"""Shared fakes for the control-plane tests.

No live database: ``FakeCatalog`` implements the ``CatalogInspector``
protocol over in-memory records and ``FakeClient`` implements
``DatabaseClient`` by recording statements.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import pytest

from pg_trigger_control.config.models import KillSwitchConfig
from pg_trigger_control.killswitch import KillSwitch
from pg_trigger_control.registry.models import TriggerDefinition
from pg_trigger_control.registry.store import InMemoryRegistry
from pg_trigger_control.schema.models import LiveFunctionRecord, LiveObjectRecord


def live_trigger(
    name: str = "t1",
    table: str = "users",
    function_name: str = "t1_fn",
    body: str = "RETURN NEW;",
    condition: str | None = None,
    enabled_flag: str = "O",
) -> LiveObjectRecord:
    """Build a live record the way pg_get_functiondef()/pg_get_triggerdef() render it."""
    when = f"WHEN (({condition})) " if condition else ""
    return LiveObjectRecord(
        trigger_name=name,
        table_name=table,
        function_name=function_name,
        function_definition=(
            f"CREATE OR REPLACE FUNCTION public.{function_name}()\n"
            " RETURNS trigger\n LANGUAGE plpgsql\n"
            f"AS $function$\n{body}\n$function$\n"
        ),
        trigger_definition=(
            f"CREATE TRIGGER {name} BEFORE INSERT ON public.{table} "
            f"FOR EACH ROW {when}EXECUTE FUNCTION {function_name}()"
        ),
        enabled_flag=enabled_flag,
    )


class FakeCatalog:
    """In-memory ``CatalogInspector``."""

    def __init__(
        self,
        triggers: list[LiveObjectRecord] | None = None,
        functions: list[LiveFunctionRecord] | None = None,
    ) -> None:
        self.triggers = {t.trigger_name: t for t in triggers or []}
        self.functions = {f.function_name: f for f in functions or []}
        self.error: Exception | None = None

    def _maybe_fail(self) -> None:
        if self.error is not None:
            raise self.error

    def all_triggers(self) -> list[LiveObjectRecord]:
        self._maybe_fail()
        return list(self.triggers.values())

    def find_trigger(self, name: str) -> LiveObjectRecord | None:
        self._maybe_fail()
        return self.triggers.get(name)

    def find_triggers_for_table(self, table: str) -> list[LiveObjectRecord]:
        self._maybe_fail()
        return [t for t in self.triggers.values() if t.table_name == table]

    def find_function(self, name: str) -> LiveFunctionRecord | None:
        self._maybe_fail()
        if name in self.functions:
            return self.functions[name]
        for trigger in self.triggers.values():
            if trigger.function_name == name:
                return LiveFunctionRecord(
                    function_name=name, function_definition=trigger.function_definition
                )
        return None


class FakeClient:
    """``DatabaseClient`` that records executed SQL and keeps tables as lists of dicts.

    ``fail_on`` makes ``execute()`` raise for any statement containing that
    text; a failing transaction discards its buffered changes.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {}
        self.executed: list[str] = []
        self.fail_on: str | None = None
        self.transactions = 0
        self.rollbacks = 0

    def select(self, table, columns, filters=None, order_by=None) -> list[dict]:
        rows = [
            dict(r) for r in self.tables.get(table, [])
            if all(r.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by:
            rows.sort(key=lambda r: r[order_by])
        return rows

    def insert(self, table, data) -> dict:
        row = dict(data)
        self.tables.setdefault(table, []).append(row)
        return dict(row)

    def update(self, table, data, filters) -> dict:
        for row in self.tables.get(table, []):
            if all(row.get(k) == v for k, v in filters.items()):
                row.update(data)
                return dict(row)
        raise ValueError(f"No rows matched filters: {filters}")

    def delete(self, table, filters) -> None:
        self.tables[table] = [
            r for r in self.tables.get(table, [])
            if not all(r.get(k) == v for k, v in filters.items())
        ]

    def execute(self, sql: str, params: dict | None = None) -> None:
        if self.fail_on and self.fail_on in sql:
            raise RuntimeError(f"syntax error at or near {self.fail_on!r}")
        self.executed.append(sql)

    @contextmanager
    def transaction(self) -> Iterator["FakeClient"]:
        self.transactions += 1
        snapshot = {k: [dict(r) for r in v] for k, v in self.tables.items()}
        executed = len(self.executed)
        try:
            yield self
        except Exception:
            self.rollbacks += 1
            self.tables = snapshot
            del self.executed[executed:]
            raise

    def close(self) -> None:
        pass


@pytest.fixture
def definition() -> TriggerDefinition:
    return TriggerDefinition(
        name="t1",
        table="users",
        function_name="t1_fn",
        events=["insert"],
        version=1,
        function_body="RETURN NEW;",
        condition=None,
    )


@pytest.fixture
def registry(definition: TriggerDefinition) -> InMemoryRegistry:
    return InMemoryRegistry([definition])


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog([live_trigger()])


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def kill_switch() -> KillSwitch:
    return KillSwitch(KillSwitchConfig(), environ={})


def make_kill_switch(**environ: Any) -> KillSwitch:
    return KillSwitch(KillSwitchConfig(), environ=dict(environ))
