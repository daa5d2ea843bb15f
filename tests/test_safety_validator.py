"""Tests for migration safety validation.

Verifies that DROP-then-CREATE of an existing trigger or function is
flagged, that overrides are recorded without hiding violations, and that
enforce() raises UnsafeChangeError when blocked.
"""

import logging

import pytest

from pg_trigger_control.errors import UnsafeChangeError
from pg_trigger_control.migrator.safety import SafetyValidator, SafetyVerdict
from pg_trigger_control.schema.models import LiveFunctionRecord

from conftest import FakeCatalog, live_trigger

DROP_CREATE_FUNCTION = """
DROP FUNCTION f();
CREATE FUNCTION f() RETURNS trigger AS $$ BEGIN RETURN NEW; END; $$ LANGUAGE plpgsql;
"""

DROP_CREATE_TRIGGER = """
DROP TRIGGER t1 ON users;
CREATE TRIGGER t1 BEFORE INSERT ON users FOR EACH ROW EXECUTE FUNCTION t1_fn();
"""


@pytest.fixture
def catalog_with_f() -> FakeCatalog:
    return FakeCatalog(functions=[LiveFunctionRecord(function_name="f", function_definition="RETURN NEW;")])


# ============================================================================
# validate()
# ============================================================================


class TestValidate:
    """Test verdicts for DROP/CREATE patterns."""

    def test_drop_create_existing_function_unsafe(self, catalog_with_f: FakeCatalog) -> None:
        """DROP + CREATE of an existing function is one violation."""
        verdict = SafetyValidator(catalog_with_f).validate(DROP_CREATE_FUNCTION)
        assert verdict.safe is False
        assert verdict.blocked is True
        [violation] = verdict.violations
        assert violation.object_name == "f"
        assert violation.object_type == "function"
        assert "Use CREATE OR REPLACE FUNCTION instead." in violation.reason
        assert violation.drop_sql == "DROP FUNCTION f()"
        assert violation.create_sql.startswith("CREATE FUNCTION f()")

    def test_drop_create_absent_function_safe(self) -> None:
        """The same block is safe when the function does not exist yet."""
        verdict = SafetyValidator(FakeCatalog()).validate(DROP_CREATE_FUNCTION)
        assert verdict.safe is True
        assert verdict.violations == []

    def test_drop_create_existing_trigger_unsafe(self) -> None:
        """DROP + CREATE of an existing trigger is a violation."""
        verdict = SafetyValidator(FakeCatalog([live_trigger()])).validate(DROP_CREATE_TRIGGER)
        [violation] = verdict.violations
        assert violation.object_type == "trigger"
        assert violation.object_name == "t1"
        assert "Unsafe DROP + CREATE pattern detected for trigger 't1'" in violation.reason

    def test_create_or_replace_is_safe(self, catalog_with_f: FakeCatalog) -> None:
        """CREATE OR REPLACE without a DROP is safe."""
        sql = "CREATE OR REPLACE FUNCTION f() RETURNS trigger AS $$ RETURN NEW; $$ LANGUAGE plpgsql;"
        assert SafetyValidator(catalog_with_f).validate(sql).safe is True

    def test_drop_only_is_safe(self, catalog_with_f: FakeCatalog) -> None:
        """A DROP with no later CREATE is not a violation."""
        assert SafetyValidator(catalog_with_f).validate("DROP FUNCTION f();").safe is True

    def test_create_before_drop_is_safe(self, catalog_with_f: FakeCatalog) -> None:
        """Order matters: CREATE then DROP is not a DROP-then-CREATE pair."""
        sql = "CREATE OR REPLACE FUNCTION f() RETURNS trigger AS $$ RETURN NEW; $$ LANGUAGE plpgsql; DROP FUNCTION f();"
        assert SafetyValidator(catalog_with_f).validate(sql).safe is True

    def test_commented_drop_ignored(self, catalog_with_f: FakeCatalog) -> None:
        """A commented-out DROP does not count."""
        sql = "-- DROP FUNCTION f();\nCREATE FUNCTION f() RETURNS trigger AS $$ RETURN NEW; $$ LANGUAGE plpgsql;"
        assert SafetyValidator(catalog_with_f).validate(sql).safe is True

    def test_identifier_case_folding(self, catalog_with_f: FakeCatalog) -> None:
        """Unquoted and schema-qualified names resolve to the same object."""
        sql = "DROP FUNCTION public.F();\nCREATE FUNCTION f() RETURNS trigger AS $$ RETURN NEW; $$ LANGUAGE plpgsql;"
        assert len(SafetyValidator(catalog_with_f).validate(sql).violations) == 1

    def test_per_call_override(self, catalog_with_f: FakeCatalog) -> None:
        """allow_unsafe keeps the violations but marks the override."""
        verdict = SafetyValidator(catalog_with_f).validate(DROP_CREATE_FUNCTION, allow_unsafe=True)
        assert verdict.safe is False
        assert verdict.override_applied is True
        assert verdict.blocked is False
        assert len(verdict.violations) == 1

    def test_configured_override(self, catalog_with_f: FakeCatalog) -> None:
        """allow_unsafe_migrations from config applies to every call."""
        verdict = SafetyValidator(catalog_with_f, allow_unsafe_migrations=True).validate(DROP_CREATE_FUNCTION)
        assert verdict.override_applied is True

    def test_logs_by_outcome(self, catalog_with_f: FakeCatalog, caplog) -> None:
        """Blocked verdicts log at ERROR, overridden ones at WARNING."""
        validator = SafetyValidator(catalog_with_f)
        with caplog.at_level(logging.INFO, logger="pg_trigger_control.migrator.safety"):
            validator.validate(DROP_CREATE_FUNCTION)
            validator.validate(DROP_CREATE_FUNCTION, allow_unsafe=True)
            validator.validate("SELECT 1;")
        levels = [(r.levelname, r.getMessage().split(" ")[0]) for r in caplog.records]
        assert levels == [("ERROR", "[SAFETY]"), ("WARNING", "[SAFETY]"), ("INFO", "[SAFETY]")]


# ============================================================================
# enforce() and reports
# ============================================================================


class TestEnforce:
    """Test enforce() and format_report()."""

    def test_enforce_raises(self, catalog_with_f: FakeCatalog) -> None:
        """enforce() raises with the report and the violations attached."""
        with pytest.raises(UnsafeChangeError) as exc_info:
            SafetyValidator(catalog_with_f).enforce(DROP_CREATE_FUNCTION, migration_name="001_audit")
        error = exc_info.value
        assert "UNSAFE MIGRATION DETECTED" in str(error)
        assert "Migration: 001_audit" in str(error)
        assert len(error.violations) == 1
        assert error.context == {"migration": "001_audit", "violation_count": 1}

    def test_enforce_with_override_returns_verdict(self, catalog_with_f: FakeCatalog) -> None:
        """enforce() passes when overridden."""
        verdict = SafetyValidator(catalog_with_f).enforce(DROP_CREATE_FUNCTION, allow_unsafe=True)
        assert verdict.override_applied is True

    def test_safe_report(self) -> None:
        """A safe verdict reports a single line."""
        assert SafetyVerdict(safe=True).format_report() == "Migration is safe"

    def test_blocked_report_mentions_override(self, catalog_with_f: FakeCatalog) -> None:
        """A blocked report tells the operator how to override."""
        report = SafetyValidator(catalog_with_f).validate(DROP_CREATE_FUNCTION).format_report()
        assert "ALLOW_UNSAFE_MIGRATIONS=true" in report
        assert "function 'f'" in report
