"""Pre-apply comparison of a migration block against the live catalog.

Read-only preview: for every function and trigger the block creates,
report whether it is NEW, MODIFIED or UNCHANGED relative to the database.

- Functions compare by normalized body (dollar-quoted body, whitespace
  collapsed).
- Triggers compare by normalized attributes (table, timing, events,
  condition, function name); each differing attribute is listed.

Usage:
    from pg_trigger_control.migrator.comparator import PreApplyComparator

    comparator = PreApplyComparator(inspector)
    diffs = comparator.compare(up_sql)
    for diff in diffs:
        print(diff.object_type, diff.object_name, diff.category)
"""

from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from pg_trigger_control.migrator.statements import (
    FUNCTION,
    TRIGGER,
    ObjectRef,
    ParsedStatement,
    parse_trigger_definition,
    scan,
)
from pg_trigger_control.schema.models import LiveObjectRecord, extract_function_body, normalize_condition

if TYPE_CHECKING:
    from pg_trigger_control.adapters.base import CatalogInspector


# ============================================================================
# Result Models
# ============================================================================


class DiffCategory(StrEnum):
    NEW = "new"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


class ObjectDiff(BaseModel):
    """Comparison of one planned object with its live counterpart."""

    object_name: str
    object_type: str  # "function" or "trigger"
    category: DiffCategory
    expected_sql: str
    actual_sql: str | None = None
    differences: list[str] = Field(default_factory=list)
    message: str = ""

    @property
    def has_difference(self) -> bool:
        return self.category is not DiffCategory.UNCHANGED


# ============================================================================
# Normalization
# ============================================================================


def normalize_body(body: str | None) -> str:
    """Collapse whitespace in a function body.

    Examples:
        >>> normalize_body("  BEGIN\\n    RETURN NEW;\\n  END; ")
        'BEGIN RETURN NEW; END;'
    """
    return " ".join((body or "").split())


# ============================================================================
# Comparator
# ============================================================================


class PreApplyComparator:
    """Compares the objects a migration creates with the live database.

    Args:
        inspector: Catalog inspector.  Query failures propagate.
    """

    def __init__(self, inspector: "CatalogInspector") -> None:
        self._inspector = inspector

    def compare(self, up_sql: str) -> list[ObjectDiff]:
        """Compare every function and trigger created by *up_sql*.

        Functions are listed before triggers, each in statement order.  When a
        block creates the same object twice, the last definition wins.
        """
        creates = [s for s in scan(up_sql) if s.is_create]
        functions = _last_by_name(s for s in creates if s.ref.object_type == FUNCTION)
        triggers = _last_by_name(s for s in creates if s.ref.object_type == TRIGGER)
        return [self._compare_function(s) for s in functions] + [self._compare_trigger(s) for s in triggers]

    def planned_drops(self, up_sql: str) -> list[ObjectRef]:
        """Objects the block drops, in statement order, without duplicates."""
        seen: dict[tuple[str, str], ObjectRef] = {}
        for statement in scan(up_sql):
            if statement.is_drop and statement.ref.key not in seen:
                seen[statement.ref.key] = statement.ref
        return list(seen.values())

    def _compare_function(self, statement: ParsedStatement) -> ObjectDiff:
        name = statement.ref.name
        live = self._inspector.find_function(name)
        if live is None:
            return ObjectDiff(
                object_name=name,
                object_type=FUNCTION,
                category=DiffCategory.NEW,
                expected_sql=statement.body or statement.sql,
                message="Function will be created",
            )

        actual_body = extract_function_body(live.function_definition)
        if normalize_body(statement.body) == normalize_body(actual_body):
            return ObjectDiff(
                object_name=name,
                object_type=FUNCTION,
                category=DiffCategory.UNCHANGED,
                expected_sql=statement.body or statement.sql,
                actual_sql=actual_body,
                message="Function matches expected state",
            )
        return ObjectDiff(
            object_name=name,
            object_type=FUNCTION,
            category=DiffCategory.MODIFIED,
            expected_sql=statement.body or statement.sql,
            actual_sql=actual_body,
            message="Function body differs from expected",
        )

    def _compare_trigger(self, statement: ParsedStatement) -> ObjectDiff:
        name = statement.ref.name
        live = self._inspector.find_trigger(name)
        if live is None:
            return ObjectDiff(
                object_name=name,
                object_type=TRIGGER,
                category=DiffCategory.NEW,
                expected_sql=statement.sql,
                message="Trigger will be created",
            )

        differences = trigger_differences(statement, live)
        if not differences:
            return ObjectDiff(
                object_name=name,
                object_type=TRIGGER,
                category=DiffCategory.UNCHANGED,
                expected_sql=statement.sql,
                actual_sql=live.trigger_definition,
                message="Trigger matches expected state",
            )
        return ObjectDiff(
            object_name=name,
            object_type=TRIGGER,
            category=DiffCategory.MODIFIED,
            expected_sql=statement.sql,
            actual_sql=live.trigger_definition,
            differences=differences,
            message="Trigger definition differs from expected",
        )


def trigger_differences(expected: ParsedStatement, live: LiveObjectRecord) -> list[str]:
    """List the attributes of a planned trigger that differ from the live one."""
    actual = parse_trigger_definition(live.trigger_definition or "")
    actual_table = live.table_name
    actual_timing = actual.timing if actual else None
    actual_events = actual.events if actual else []
    actual_condition = actual.condition if actual else live.condition
    actual_function = (actual.function_name if actual else None) or live.function_name or None

    differences = []
    if expected.ref.table != actual_table:
        differences.append(f"Table: expected '{expected.ref.table}', actual '{actual_table}'")
    if expected.timing != actual_timing:
        differences.append(f"Timing: expected '{expected.timing}', actual '{actual_timing}'")
    if sorted(expected.events) != sorted(actual_events):
        differences.append(f"Events: expected {sorted(expected.events)}, actual {sorted(actual_events)}")
    if normalize_condition(expected.condition) != normalize_condition(actual_condition):
        differences.append(f"Condition: expected '{expected.condition}', actual '{actual_condition}'")
    if expected.function_name != actual_function:
        differences.append(f"Function: expected '{expected.function_name}', actual '{actual_function}'")
    return differences


def _last_by_name(statements) -> list[ParsedStatement]:
    latest: dict[str, ParsedStatement] = {}
    for statement in statements:
        latest.pop(statement.ref.name, None)
        latest[statement.ref.name] = statement
    return list(latest.values())
