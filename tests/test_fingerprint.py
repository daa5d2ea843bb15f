"""Tests for the trigger fingerprint and TriggerDefinition model.

Covers:
- fingerprint() determinism and sensitivity to every reconciliation field
- TriggerDefinition validation and normalization
- fingerprint as a computed field that tracks edits
"""

import hashlib

import pytest

from pg_trigger_control.errors import DefinitionValidationError
from pg_trigger_control.registry.fingerprint import fingerprint
from pg_trigger_control.registry.models import (
    TriggerDefinition,
    TriggerEvent,
    TriggerSource,
    TriggerTiming,
)


# ============================================================================
# fingerprint()
# ============================================================================


class TestFingerprint:
    """Test the SHA-256 digest over name, table, version, body and condition."""

    def test_matches_sha256_of_concatenation(self) -> None:
        """Digest is SHA-256 of the ordered concatenation."""
        expected = hashlib.sha256("t1users1RETURN NEW;".encode("utf-8")).hexdigest()
        assert fingerprint("t1", "users", 1, "RETURN NEW;", None) == expected

    def test_is_64_char_hex(self) -> None:
        """Digest is lowercase hex of length 64."""
        digest = fingerprint("t1", "users", 1, None, None)
        assert len(digest) == 64
        assert digest == digest.lower()
        int(digest, 16)

    def test_deterministic(self) -> None:
        """Same inputs always produce the same digest."""
        assert fingerprint("t1", "users", 3, "x", "y") == fingerprint("t1", "users", 3, "x", "y")

    def test_none_equals_empty(self) -> None:
        """Absent body and condition hash like empty strings."""
        assert fingerprint("t1", "users", 1, None, None) == fingerprint("t1", "users", 1, "", "")

    @pytest.mark.parametrize(
        "changed",
        [
            ("t2", "users", 1, "RETURN NEW;", None),
            ("t1", "orders", 1, "RETURN NEW;", None),
            ("t1", "users", 2, "RETURN NEW;", None),
            ("t1", "users", 1, "RETURN OLD;", None),
            ("t1", "users", 1, "RETURN NEW;", "new.id > 0"),
        ],
    )
    def test_each_field_changes_digest(self, changed: tuple) -> None:
        """Changing any single field changes the digest."""
        base = fingerprint("t1", "users", 1, "RETURN NEW;", None)
        assert fingerprint(*changed) != base

    def test_unicode_body(self) -> None:
        """Non-ASCII text is hashed as UTF-8."""
        expected = hashlib.sha256("t1users1é".encode("utf-8")).hexdigest()
        assert fingerprint("t1", "users", 1, "é", None) == expected


# ============================================================================
# TriggerDefinition
# ============================================================================


class TestTriggerDefinition:
    """Test definition validation and the computed fingerprint."""

    def test_defaults(self) -> None:
        """Timing, version, enabled and source have defaults."""
        d = TriggerDefinition(name="t1", table="users", events=["insert"])
        assert d.timing is TriggerTiming.BEFORE
        assert d.version == 1
        assert d.enabled is True
        assert d.source is TriggerSource.DECLARED
        assert d.environments == set()

    def test_fingerprint_computed_from_fields(self) -> None:
        """fingerprint equals fingerprint() over the definition's fields."""
        d = TriggerDefinition(
            name="t1", table="users", events=["insert"], function_body="RETURN NEW;", condition="new.id > 0"
        )
        assert d.fingerprint == fingerprint("t1", "users", 1, "RETURN NEW;", "new.id > 0")

    def test_fingerprint_tracks_assignment(self) -> None:
        """Editing a field updates the fingerprint immediately."""
        d = TriggerDefinition(name="t1", table="users", events=["insert"], function_body="RETURN NEW;")
        before = d.fingerprint
        d.version = 2
        assert d.fingerprint != before
        assert d.fingerprint == fingerprint("t1", "users", 2, "RETURN NEW;", None)

    def test_events_normalized_from_csv(self) -> None:
        """Comma-separated events are split and lowercased."""
        d = TriggerDefinition(name="t1", table="users", events="INSERT, Update")
        assert d.events == {TriggerEvent.INSERT, TriggerEvent.UPDATE}

    def test_timing_case_insensitive(self) -> None:
        """Timing accepts upper-case input."""
        d = TriggerDefinition(name="t1", table="users", events=["delete"], timing="AFTER")
        assert d.timing is TriggerTiming.AFTER

    def test_manual_source(self) -> None:
        """is_manual reflects the manual source."""
        d = TriggerDefinition(name="t1", table="users", events=["insert"], source="manual")
        assert d.is_manual is True

    def test_applies_to_all_when_empty(self) -> None:
        """An empty environments set targets every environment."""
        d = TriggerDefinition(name="t1", table="users", events=["insert"])
        assert d.applies_to("production")

    def test_applies_to_listed(self) -> None:
        """A non-empty environments set restricts targeting."""
        d = TriggerDefinition(name="t1", table="users", events=["insert"], environments="staging,production")
        assert d.applies_to("staging")
        assert not d.applies_to("development")

    def test_with_changes_returns_copy(self) -> None:
        """with_changes leaves the original untouched."""
        d = TriggerDefinition(name="t1", table="users", events=["insert"])
        changed = d.with_changes(enabled=False)
        assert d.enabled is True
        assert changed.enabled is False
        assert changed.fingerprint == d.fingerprint

    @pytest.mark.parametrize(
        "data,field",
        [
            ({"name": "", "table": "users", "events": ["insert"]}, "name"),
            ({"name": "  ", "table": "users", "events": ["insert"]}, "name"),
            ({"name": "t1", "table": "users", "events": []}, "events"),
            ({"name": "t1", "table": "users", "events": ["upsert"]}, "events"),
            ({"name": "t1", "table": "users", "events": ["insert"], "version": 0}, "version"),
            ({"name": "t1", "table": "users", "events": ["insert"], "function_name": " "}, "function_name"),
        ],
    )
    def test_invalid_definition(self, data: dict, field: str) -> None:
        """Malformed input raises DefinitionValidationError naming the field."""
        with pytest.raises(DefinitionValidationError) as exc_info:
            TriggerDefinition(**data)
        assert any(f.startswith(field) for f in exc_info.value.context["fields"])
        assert exc_info.value.error_code == "VALIDATION_FAILED"

    def test_validation_error_is_value_error(self) -> None:
        """DefinitionValidationError can be caught as ValueError."""
        with pytest.raises(ValueError):
            TriggerDefinition(name="t1", table="", events=["insert"])
