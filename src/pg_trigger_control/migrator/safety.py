"""Migration safety validation.

Flags DROP-then-CREATE of a trigger or function that currently exists in
the database.  Dropping and recreating an existing object loses its live
state for the length of the gap and silently discards anything that
depended on it; ``CREATE OR REPLACE FUNCTION`` avoids that for functions.

A DROP of an object that does not exist yet, or a DROP without a later
CREATE, is not a violation.

Usage:
    validator = SafetyValidator(inspector)
    verdict = validator.validate(up_sql)
    if verdict.blocked:
        print(verdict.format_report())

    # or raise UnsafeChangeError when blocked
    validator.enforce(up_sql)
"""

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from pg_trigger_control.errors import UnsafeChangeError
from pg_trigger_control.migrator.statements import FUNCTION, TRIGGER, ParsedStatement, scan

if TYPE_CHECKING:
    from pg_trigger_control.adapters.base import CatalogInspector

logger = logging.getLogger(__name__)

_RULE = "=" * 80


# ============================================================================
# Result Models
# ============================================================================


class SafetyViolation(BaseModel):
    """One existence-confirmed DROP-then-CREATE pair."""

    object_name: str
    object_type: str  # "trigger" or "function"
    reason: str
    drop_sql: str
    create_sql: str


class SafetyVerdict(BaseModel):
    """Result of validating one migration block.

    ``override_applied`` records that an override flag was present; it
    never removes violations.

    Example:
        >>> verdict = SafetyVerdict(safe=True)
        >>> verdict.blocked
        False
        >>> verdict.format_report()
        'Migration is safe'
    """

    safe: bool
    violations: list[SafetyViolation] = Field(default_factory=list)
    override_applied: bool = False

    @property
    def blocked(self) -> bool:
        return not self.safe and not self.override_applied

    def format_report(self, migration_name: str | None = None) -> str:
        """Format the verdict as a human-readable report."""
        if self.safe:
            return "Migration is safe"

        lines = [_RULE, "UNSAFE MIGRATION DETECTED"]
        if migration_name:
            lines.append(f"Migration: {migration_name}")
        lines.append(_RULE)
        lines.append("")
        lines.append("The migration contains unsafe DROP + CREATE operations:")
        lines.append("")
        for violation in self.violations:
            lines.append(f"  - {violation.reason}")
        lines.append("")
        if self.override_applied:
            lines.append("Override applied: proceeding despite the violations above.")
        else:
            lines.append("To proceed despite these warnings, set ALLOW_UNSAFE_MIGRATIONS=true")
            lines.append("or pass allow_unsafe=True.")
        lines.append("")
        lines.append(_RULE)
        return "\n".join(lines)


# ============================================================================
# Validator
# ============================================================================


def _reason(object_type: str, name: str) -> str:
    reason = (
        f"Unsafe DROP + CREATE pattern detected for {object_type} '{name}'. "
        f"Migration will drop the existing {object_type} and recreate it. "
    )
    if object_type == FUNCTION:
        return reason + "Use CREATE OR REPLACE FUNCTION instead."
    return reason + "Dropping and recreating a trigger is sometimes necessary; ensure this is intentional."


class SafetyValidator:
    """Detects unsafe DROP-then-CREATE patterns in a migration block.

    Args:
        inspector: Catalog inspector used to confirm the object exists.
        allow_unsafe_migrations: Configured override (``ALLOW_UNSAFE_MIGRATIONS``).
    """

    def __init__(self, inspector: "CatalogInspector", allow_unsafe_migrations: bool = False) -> None:
        self._inspector = inspector
        self._allow_unsafe_migrations = allow_unsafe_migrations

    def validate(self, up_sql: str, allow_unsafe: bool = False) -> SafetyVerdict:
        """Validate *up_sql* and return a verdict.

        Args:
            up_sql: SQL block that the migration would execute.
            allow_unsafe: Per-call override.

        Returns:
            ``SafetyVerdict``; ``safe`` is False when any violation exists,
            whether or not an override was applied.
        """
        statements = scan(up_sql)
        violations = [
            SafetyViolation(
                object_name=drop.ref.name,
                object_type=drop.ref.object_type,
                reason=_reason(drop.ref.object_type, drop.ref.name),
                drop_sql=drop.sql,
                create_sql=create.sql,
            )
            for drop, create in self._drop_create_pairs(statements)
            if self._exists(drop)
        ]
        override = allow_unsafe or self._allow_unsafe_migrations
        verdict = SafetyVerdict(safe=not violations, violations=violations, override_applied=override)

        if verdict.safe:
            logger.info("[SAFETY] Migration is safe (%d statement(s) checked)", len(statements))
        elif verdict.override_applied:
            logger.warning(
                "[SAFETY] %d unsafe operation(s) allowed by override: %s",
                len(violations),
                ", ".join(f"{v.object_type} {v.object_name}" for v in violations),
            )
        else:
            logger.error(
                "[SAFETY] %d unsafe operation(s) blocked: %s",
                len(violations),
                ", ".join(f"{v.object_type} {v.object_name}" for v in violations),
            )
        return verdict

    def enforce(self, up_sql: str, allow_unsafe: bool = False, migration_name: str | None = None) -> SafetyVerdict:
        """Validate and raise when blocked.

        Raises:
            UnsafeChangeError: When violations exist and no override applies.
        """
        verdict = self.validate(up_sql, allow_unsafe=allow_unsafe)
        if verdict.blocked:
            raise UnsafeChangeError(
                verdict.format_report(migration_name),
                violations=verdict.violations,
                context={"migration": migration_name, "violation_count": len(verdict.violations)},
            )
        return verdict

    @staticmethod
    def _drop_create_pairs(statements: list[ParsedStatement]) -> list[tuple[ParsedStatement, ParsedStatement]]:
        pairs = []
        for drop in statements:
            if not drop.is_drop:
                continue
            create = next(
                (s for s in statements if s.is_create and s.index > drop.index and s.ref.key == drop.ref.key),
                None,
            )
            if create is not None:
                pairs.append((drop, create))
        return pairs

    def _exists(self, statement: ParsedStatement) -> bool:
        if statement.ref.object_type == TRIGGER:
            return self._inspector.find_trigger(statement.ref.name) is not None
        return self._inspector.find_function(statement.ref.name) is not None
