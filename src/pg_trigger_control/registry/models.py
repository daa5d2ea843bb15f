"""Pydantic models for desired-state trigger definitions.

``TriggerDefinition`` is the registry's unit of desired state.  Its
``fingerprint`` is a computed field, so it always reflects the current
reconciliation fields and can never be persisted stale.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field, field_validator

from pg_trigger_control.errors import DefinitionValidationError
from pg_trigger_control.registry.fingerprint import fingerprint as compute_fingerprint


class TriggerEvent(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    TRUNCATE = "truncate"


class TriggerTiming(StrEnum):
    BEFORE = "before"
    AFTER = "after"


class TriggerSource(StrEnum):
    """Where a definition came from.

    ``manual`` marks objects modified outside the control plane; the drift
    detector reports them as MANUAL_OVERRIDE instead of comparing them.
    """

    DECLARED = "declared"
    GENERATED = "generated"
    MANUAL = "manual"


def _split_csv(value: Any) -> Any:
    # Registry rows store sets as comma-separated text
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class TriggerDefinition(BaseModel):
    """Desired state of one trigger and its function.

    Malformed input raises ``DefinitionValidationError`` at construction.

    Example:
        >>> d = TriggerDefinition(name="t1", table="users", events=["insert"])
        >>> d.timing
        <TriggerTiming.BEFORE: 'before'>
        >>> len(d.fingerprint)
        64
    """

    model_config = ConfigDict(validate_assignment=True)

    name: str = Field(min_length=1)
    table: str = Field(min_length=1)
    function_name: str | None = None
    events: set[TriggerEvent] = Field(min_length=1)
    timing: TriggerTiming = TriggerTiming.BEFORE
    condition: str | None = None
    version: int = Field(default=1, ge=1)
    enabled: bool = True
    environments: set[str] = Field(default_factory=set)
    source: TriggerSource = TriggerSource.DECLARED
    function_body: str | None = None
    installed_at: datetime | None = None
    last_verified_at: datetime | None = None
    last_executed_at: datetime | None = None

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise DefinitionValidationError(
                f"Invalid trigger definition '{data.get('name', '?')}': "
                f"{e.error_count()} error(s) in {', '.join(fields)}",
                context={"fields": fields, "errors": e.errors(include_url=False)},
            ) from e

    @field_validator("name", "table")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("function_name")
    @classmethod
    def _optional_not_blank(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("must not be blank when provided")
        return value.strip() if value else value

    @field_validator("events", mode="before")
    @classmethod
    def _normalize_events(cls, value: Any) -> Any:
        value = _split_csv(value)
        if isinstance(value, (list, tuple, set, frozenset)):
            return {str(v).strip().lower() for v in value}
        return value

    @field_validator("timing", "source", mode="before")
    @classmethod
    def _lowercase(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("environments", mode="before")
    @classmethod
    def _normalize_environments(cls, value: Any) -> Any:
        if value is None:
            return set()
        return _split_csv(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def fingerprint(self) -> str:
        return compute_fingerprint(
            self.name, self.table, self.version, self.function_body, self.condition
        )

    @property
    def is_manual(self) -> bool:
        return self.source == TriggerSource.MANUAL

    def applies_to(self, environment: str) -> bool:
        """True if the definition targets *environment* (empty set = all)."""
        return not self.environments or environment in self.environments

    def with_changes(self, **changes: Any) -> "TriggerDefinition":
        """Return a revalidated copy with *changes* applied."""
        data = self.model_dump(exclude={"fingerprint"})
        data.update(changes)
        return TriggerDefinition(**data)
