"""Migration safety, pre-apply comparison and the migration runner.

Usage:
    from pg_trigger_control.migrator import SafetyValidator, PreApplyComparator, Migrator
"""

from pg_trigger_control.migrator.comparator import DiffCategory, ObjectDiff, PreApplyComparator
from pg_trigger_control.migrator.diff_reporter import PreApplyDiffReporter
from pg_trigger_control.migrator.runner import Migration, MigrationRunResult, MigrationStatus, Migrator
from pg_trigger_control.migrator.safety import SafetyValidator, SafetyVerdict, SafetyViolation
from pg_trigger_control.migrator.statements import ObjectRef, scan, split_statements

__all__ = [
    "DiffCategory",
    "Migration",
    "MigrationRunResult",
    "MigrationStatus",
    "Migrator",
    "ObjectDiff",
    "ObjectRef",
    "PreApplyComparator",
    "PreApplyDiffReporter",
    "SafetyValidator",
    "SafetyVerdict",
    "SafetyViolation",
    "scan",
    "split_statements",
]
