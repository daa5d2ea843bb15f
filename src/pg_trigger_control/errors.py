"""Error hierarchy for pg-trigger-control.

Every error carries an ``error_code`` for programmatic handling, a
``recovery_suggestion`` for operators, and a ``context`` dict with the
values that caused it.  None of them are retried by this package.

Usage:
    from pg_trigger_control.errors import GatedError

    try:
        kill_switch.check("migrate_up", environment="production")
    except GatedError as e:
        print(e.user_message())
"""

import re
from typing import Any


class TriggerControlError(Exception):
    """Base class for all pg-trigger-control errors."""

    default_message = "An error occurred in pg-trigger-control"

    def __init__(
        self,
        message: str | None = None,
        *,
        error_code: str | None = None,
        recovery_suggestion: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.context: dict[str, Any] = context or {}
        self.error_code: str = error_code or self.default_error_code()
        self.recovery_suggestion: str = (
            recovery_suggestion or self.default_recovery_suggestion()
        )
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)

    def default_error_code(self) -> str:
        # "UnsafeChangeError" -> "UNSAFE_CHANGE_ERROR"
        name = type(self).__name__
        name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
        name = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", name)
        return name.upper()

    def default_recovery_suggestion(self) -> str:
        return "Check the logs for more details."

    def user_message(self) -> str:
        """Message plus recovery suggestion, suitable for operators."""
        return f"{self.message}\n\nRecovery: {self.recovery_suggestion}"

    def to_dict(self) -> dict[str, Any]:
        """Error details for programmatic access."""
        return {
            "error_class": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "recovery_suggestion": self.recovery_suggestion,
            "context": self.context,
        }


class GatedError(TriggerControlError):
    """Raised when the kill switch blocks an operation.

    Also raised when override confirmation text is missing or does not
    match.  The ``decision`` attribute holds the logged
    ``KillSwitchDecision`` when one was produced.
    """

    default_message = "Kill switch is active for this environment"

    def __init__(self, message: str | None = None, *, decision: Any = None, **kwargs: Any) -> None:
        self.decision = decision
        super().__init__(message, **kwargs)

    def default_error_code(self) -> str:
        return "KILL_SWITCH_ACTIVE"

    def default_recovery_suggestion(self) -> str:
        expected = self.context.get("expected_confirmation", "EXECUTE <OPERATION>")
        return (
            f"Provide the confirmation text '{expected}', or set "
            f'KILL_SWITCH_OVERRIDE=true CONFIRMATION_TEXT="{expected}".'
        )


class UnsafeChangeError(TriggerControlError):
    """Raised when a migration would destroy and recreate an existing object."""

    default_message = "Migration contains unsafe operations"

    def __init__(self, message: str | None = None, *, violations: list | None = None, **kwargs: Any) -> None:
        self.violations: list = list(violations or [])
        super().__init__(message, **kwargs)

    def default_error_code(self) -> str:
        return "UNSAFE_MIGRATION"

    def default_recovery_suggestion(self) -> str:
        return (
            "Use CREATE OR REPLACE FUNCTION without the preceding DROP, or "
            "set ALLOW_UNSAFE_MIGRATIONS=true / allow_unsafe=True if the "
            "drop and recreate is intentional."
        )

    def violation_summary(self) -> str:
        return "\n".join(
            f"  - {v.object_type} '{v.object_name}': {v.reason}" for v in self.violations
        )


class ExecutionError(TriggerControlError):
    """Raised when the mutating step itself fails.

    Always raised ``from`` the underlying driver error; the enclosing
    transaction has already been rolled back.
    """

    default_message = "SQL execution failed"

    def default_error_code(self) -> str:
        return "EXECUTION_FAILED"

    def default_recovery_suggestion(self) -> str:
        if self.context.get("database_error"):
            return (
                "Review the SQL and the database error. Ensure all table, "
                "function and trigger names are correct."
            )
        return "Review the SQL and ensure it is valid PostgreSQL syntax."


class DefinitionValidationError(TriggerControlError, ValueError):
    """Raised when a trigger definition is malformed."""

    default_message = "Trigger definition is invalid"

    def default_error_code(self) -> str:
        return "VALIDATION_FAILED"

    def default_recovery_suggestion(self) -> str:
        fields = self.context.get("fields")
        if fields:
            return f"Fix the following fields and try again: {', '.join(fields)}."
        return "Ensure all required fields are provided in the trigger definition."


class CatalogQueryError(TriggerControlError):
    """Raised when a catalog query against the live database fails."""

    default_message = "Catalog query failed"

    def default_error_code(self) -> str:
        return "CATALOG_QUERY_FAILED"

    def default_recovery_suggestion(self) -> str:
        return "Check database connectivity and permissions on pg_catalog."


class NotFoundError(TriggerControlError):
    """Raised when a trigger is not present in the registry."""

    default_message = "Resource not found"

    def default_error_code(self) -> str:
        return "NOT_FOUND"

    def default_recovery_suggestion(self) -> str:
        name = self.context.get("trigger_name")
        if name:
            return f"Trigger '{name}' not found. Verify the name or register it first."
        return "Verify the identifier and try again."


class ProfileNotFoundError(TriggerControlError):
    """Raised when no database profile is configured."""

    default_message = "No database profile configured"

    def default_error_code(self) -> str:
        return "PROFILE_NOT_FOUND"

    def default_recovery_suggestion(self) -> str:
        return "Set TRIGGER_CONTROL_PROFILE=<name> or pass profile_name explicitly."
