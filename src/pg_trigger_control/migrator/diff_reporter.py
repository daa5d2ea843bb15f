"""Text rendering of pre-apply comparison results.

Advisory only: the report never blocks a migration.

Usage:
    diffs = PreApplyComparator(inspector).compare(up_sql)
    print(PreApplyDiffReporter.format(diffs, migration_name="20260101_audit"))
    print(PreApplyDiffReporter.format_summary(diffs))
"""

from pg_trigger_control.migrator.comparator import DiffCategory, ObjectDiff
from pg_trigger_control.migrator.statements import TRIGGER, ObjectRef

_RULE = "=" * 80
_THIN_RULE = "-" * 80

NO_DIFFERENCES = "No differences detected. Migration is safe to apply."

_STATUS = {
    DiffCategory.NEW: "NEW (will be created)",
    DiffCategory.MODIFIED: "MODIFIED (will overwrite existing {object_type})",
    DiffCategory.UNCHANGED: "UNCHANGED",
}


class PreApplyDiffReporter:
    """Formats ``ObjectDiff`` lists grouped under NEW, MODIFIED and UNCHANGED."""

    @classmethod
    def format(
        cls,
        diffs: list[ObjectDiff],
        drops: list[ObjectRef] | None = None,
        migration_name: str | None = None,
        show_bodies: bool = True,
    ) -> str:
        """Render a full report.

        Args:
            diffs: Results of ``PreApplyComparator.compare()``.
            drops: Optional ``planned_drops()`` result, listed after the diffs.
            migration_name: Shown in the header when given.
            show_bodies: Include expected/current text for NEW and MODIFIED
                entries.

        Returns:
            Report text, or ``NO_DIFFERENCES`` when nothing would change.
        """
        drops = drops or []
        if not drops and not any(d.has_difference for d in diffs):
            return NO_DIFFERENCES

        lines = [_RULE, "Pre-Apply Comparison Report"]
        if migration_name:
            lines.append(f"Migration: {migration_name}")
        lines.append(_RULE)
        lines.append("")

        for category in DiffCategory:
            group = [d for d in diffs if d.category is category]
            if not group:
                continue
            lines.append(f"{category.name} ({len(group)}):")
            lines.append(_THIN_RULE)
            for diff in group:
                lines.extend(cls._format_entry(diff, show_bodies))
                lines.append("")

        if drops:
            lines.append(f"DROPS ({len(drops)}):")
            lines.append(_THIN_RULE)
            for ref in drops:
                target = f"{ref.name} ON {ref.table}" if ref.object_type == TRIGGER and ref.table else ref.name
                lines.append(f"  - Will drop {ref.object_type}: {target}")
            lines.append("")

        lines.append(_RULE)
        lines.append("")
        lines.append("WARNING: This migration will modify existing database objects.")
        lines.append("Review the differences above before proceeding.")
        return "\n".join(lines)

    @staticmethod
    def format_summary(diffs: list[ObjectDiff]) -> str:
        """One short block with the count of new and modified objects."""
        new_count = sum(1 for d in diffs if d.category is DiffCategory.NEW)
        modified_count = sum(1 for d in diffs if d.category is DiffCategory.MODIFIED)
        if not new_count and not modified_count:
            return "No differences - safe to apply"
        return "\n".join(
            [
                "Differences detected:",
                f"  - {new_count} new object(s) will be created",
                f"  - {modified_count} existing object(s) will be modified",
            ]
        )

    @staticmethod
    def _format_entry(diff: ObjectDiff, show_bodies: bool) -> list[str]:
        status = _STATUS[diff.category].format(object_type=diff.object_type)
        lines = [f"  {diff.object_type.capitalize()}: {diff.object_name}", f"    Status: {status}"]

        if diff.differences:
            lines.append("    Differences:")
            lines.extend(f"      - {d}" for d in diff.differences)

        if show_bodies and diff.category is DiffCategory.NEW:
            lines.append("    Definition:")
            lines.append(_indent(diff.expected_sql, 6))
        elif show_bodies and diff.category is DiffCategory.MODIFIED:
            lines.append("    Expected:")
            lines.append(_indent(diff.expected_sql, 6))
            lines.append("    Current:")
            lines.append(_indent(diff.actual_sql, 6))
        return lines


def _indent(text: str | None, spaces: int) -> str:
    pad = " " * spaces
    return "\n".join(f"{pad}{line.rstrip()}" for line in (text or "").splitlines())
