"""Human-readable drift reports.

Formats ``DriftDetector`` results for operators.  Output is plain text; the
reporter never changes state.

Usage:
    reporter = DriftReporter(detector)
    print(reporter.summary())
    print(reporter.report("users_audit"))
"""

from pg_trigger_control.drift.detector import DriftDetector
from pg_trigger_control.drift.models import DriftResult, DriftState
from pg_trigger_control.schema.models import extract_function_body, extract_trigger_condition

_RULE = "=" * 80
_THIN_RULE = "-" * 80


class DriftReporter:
    """Formats drift results as text."""

    def __init__(self, detector: DriftDetector) -> None:
        self._detector = detector

    def summary(self, results: list[DriftResult] | None = None) -> str:
        """Count of triggers per drift state.

        Args:
            results: Results to summarize (default: a fresh ``detect_all()``).

        Returns:
            Multi-line summary text.
        """
        results = self._detector.detect_all() if results is None else results
        counts = {state: 0 for state in DriftState}
        for result in results:
            counts[result.state] += 1

        lines = [_RULE, "Trigger Drift Summary", _RULE, f"Total triggers: {len(results)}", ""]
        for state in DriftState:
            lines.append(f"  {state.label + ':':<22}{counts[state]}")

        problems = [r for r in results if r.is_problem]
        if problems:
            lines.append("")
            lines.append(f"{len(problems)} trigger(s) need attention:")
            for result in problems:
                lines.append(f"  - {result.name} ({result.state.label}) on {result.table}")
        lines.append(_RULE)
        return "\n".join(lines)

    def report(self, name: str) -> str:
        """Detailed drift report for one trigger."""
        result = self._detector.detect(name)
        if result is None:
            return f"Trigger '{name}' not found in registry or database"

        lines = [_RULE, f"Trigger: {result.name}", _RULE]
        lines.append(f"State:   {result.state.label}")
        lines.append(f"Table:   {result.table}")
        lines.append(f"Details: {result.details}")

        entry = result.registry_entry
        if entry is not None:
            lines.append("")
            lines.append("Registry:")
            lines.append(f"  Version:     {entry.version}")
            lines.append(f"  Source:      {entry.source.value}")
            lines.append(f"  Enabled:     {entry.enabled}")
            lines.append(f"  Events:      {', '.join(sorted(e.value for e in entry.events))}")
            lines.append(f"  Timing:      {entry.timing.value}")
            lines.append(f"  Fingerprint: {entry.fingerprint}")
            if entry.last_verified_at:
                lines.append(f"  Verified at: {entry.last_verified_at.isoformat()}")

        live = result.live_record
        if live is not None:
            lines.append("")
            lines.append("Database:")
            lines.append(f"  Function:    {live.function_name or '(none)'}")
            lines.append(f"  Enabled:     {live.is_enabled} (tgenabled={live.enabled_flag})")
            if live.condition:
                lines.append(f"  Condition:   {live.condition}")

        if result.state is DriftState.DRIFTED:
            lines.append("")
            lines.append(self.diff(name, result))

        lines.append(_RULE)
        return "\n".join(lines)

    def diff(self, name: str, result: DriftResult | None = None) -> str:
        """Expected (registry) versus actual (database) text for a drifted trigger."""
        result = result or self._detector.detect(name)
        if result is None:
            return f"Trigger '{name}' not found in registry or database"
        if result.state is not DriftState.DRIFTED:
            return f"Trigger '{name}' is not drifted (state: {result.state.label})"

        entry = result.registry_entry
        live = result.live_record
        lines = [_THIN_RULE, f"Drift for {name}", _THIN_RULE]
        lines.append("Expected function body (registry):")
        lines.append(_indent(entry.function_body))
        lines.append("")
        lines.append("Actual function body (database):")
        lines.append(_indent(extract_function_body(live.function_definition)))

        expected_condition = entry.condition
        actual_condition = extract_trigger_condition(live.trigger_definition)
        if (expected_condition or None) != (actual_condition or None):
            lines.append("")
            lines.append(f"Expected condition: {expected_condition or '(none)'}")
            lines.append(f"Actual condition:   {actual_condition or '(none)'}")
        return "\n".join(lines)

    def drifted_list(self) -> list[DriftResult]:
        """Results whose state is DRIFTED."""
        return [r for r in self._detector.detect_all() if r.state is DriftState.DRIFTED]

    def problematic_list(self) -> list[DriftResult]:
        """Results that need attention: DRIFTED, DROPPED or UNKNOWN."""
        return [r for r in self._detector.detect_all() if r.is_problem]


def _indent(text: str | None) -> str:
    if not text:
        return "    (none)"
    return "\n".join(f"    {line}" for line in text.splitlines())
