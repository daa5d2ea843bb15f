"""Pydantic models for drift detection results."""

from enum import StrEnum

from pydantic import BaseModel, model_validator

from pg_trigger_control.registry.models import TriggerDefinition
from pg_trigger_control.schema.models import LiveObjectRecord


class DriftState(StrEnum):
    IN_SYNC = "in_sync"
    DRIFTED = "drifted"
    MANUAL_OVERRIDE = "manual_override"
    DISABLED = "disabled"
    DROPPED = "dropped"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        """Human-readable label used in reports."""
        return _LABELS[self]


_LABELS = {
    DriftState.IN_SYNC: "IN SYNC",
    DriftState.DRIFTED: "DRIFTED",
    DriftState.MANUAL_OVERRIDE: "MANUAL OVERRIDE",
    DriftState.DISABLED: "DISABLED",
    DriftState.DROPPED: "DROPPED",
    DriftState.UNKNOWN: "UNKNOWN (External)",
}

PROBLEM_STATES = frozenset({DriftState.DRIFTED, DriftState.DROPPED, DriftState.UNKNOWN})


class DriftResult(BaseModel):
    """Classification of one trigger.

    ``checksum_match`` is None when no comparison was made (dropped,
    unknown, manual or disabled objects).

    Example:
        >>> r = DriftResult(name="t1", state=DriftState.UNKNOWN, details="external",
        ...                 live_record=LiveObjectRecord(trigger_name="t1", table_name="users"))
        >>> r.is_problem
        True
    """

    name: str
    state: DriftState
    checksum_match: bool | None = None
    details: str = ""
    registry_entry: TriggerDefinition | None = None
    live_record: LiveObjectRecord | None = None

    @model_validator(mode="after")
    def _one_side_present(self) -> "DriftResult":
        if self.registry_entry is None and self.live_record is None:
            raise ValueError("a drift result needs a registry entry or a live record")
        return self

    @property
    def is_problem(self) -> bool:
        return self.state in PROBLEM_STATES

    @property
    def table(self) -> str:
        if self.registry_entry is not None:
            return self.registry_entry.table
        return self.live_record.table_name
