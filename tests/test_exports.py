"""Tests for package exports and public API.

Verifies that every __init__.py defines an accurate __all__ and that the
top-level convenience imports work.
"""

import importlib

import pytest

SUBPACKAGES = [
    "pg_trigger_control.adapters",
    "pg_trigger_control.config",
    "pg_trigger_control.drift",
    "pg_trigger_control.migrator",
    "pg_trigger_control.registry",
    "pg_trigger_control.schema",
]


# ============================================================================
# Top-level package exports
# ============================================================================


class TestTopLevelExports:
    """Tests for src/pg_trigger_control/__init__.py exports."""

    def test_version_defined(self) -> None:
        """Package __version__ is defined and is a string."""
        import pg_trigger_control

        assert pg_trigger_control.__version__ == "0.1.0"

    def test_all_names_are_importable(self) -> None:
        """Every name in __all__ is accessible on the module."""
        import pg_trigger_control

        assert len(pg_trigger_control.__all__) > 0
        for name in pg_trigger_control.__all__:
            assert hasattr(pg_trigger_control, name), (
                f"'{name}' is in __all__ but not accessible on pg_trigger_control"
            )

    def test_no_duplicates(self) -> None:
        """__all__ lists each name once."""
        import pg_trigger_control

        assert len(pg_trigger_control.__all__) == len(set(pg_trigger_control.__all__))

    def test_core_components(self) -> None:
        """The main components import from the top level."""
        from pg_trigger_control import (
            DriftDetector,
            KillSwitch,
            Migrator,
            PreApplyComparator,
            SafetyValidator,
            TriggerDefinition,
            create_control_plane,
            load_config,
        )

        for obj in (DriftDetector, KillSwitch, Migrator, PreApplyComparator, SafetyValidator, TriggerDefinition):
            assert isinstance(obj, type)
        assert callable(create_control_plane)
        assert callable(load_config)

    def test_errors_share_base(self) -> None:
        """Every exported error derives from TriggerControlError."""
        import pg_trigger_control

        for name in pg_trigger_control.__all__:
            obj = getattr(pg_trigger_control, name)
            if isinstance(obj, type) and issubclass(obj, Exception):
                assert issubclass(obj, pg_trigger_control.TriggerControlError)


# ============================================================================
# Subpackage exports
# ============================================================================


class TestSubpackageExports:
    """Tests for each subpackage __init__.py."""

    @pytest.mark.parametrize("module_name", SUBPACKAGES)
    def test_all_accurate(self, module_name: str) -> None:
        """Every name in a subpackage's __all__ resolves."""
        module = importlib.import_module(module_name)
        assert isinstance(module.__all__, list)
        for name in module.__all__:
            assert hasattr(module, name), f"'{name}' in {module_name}.__all__ but missing"
