"""Drift detection and reporting.

Usage:
    from pg_trigger_control.drift import DriftDetector, DriftState
"""

from pg_trigger_control.drift.detector import DriftDetector
from pg_trigger_control.drift.models import DriftResult, DriftState
from pg_trigger_control.drift.reporter import DriftReporter

__all__ = [
    "DriftDetector",
    "DriftReporter",
    "DriftResult",
    "DriftState",
]
