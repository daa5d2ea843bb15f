"""pg-trigger-control: drift detection and production safety for PostgreSQL triggers.

Reconciles desired trigger definitions against the live catalog, validates
migrations before they run, and gates every mutating operation behind an
environment-aware kill switch.

Usage:
    from pg_trigger_control import DriftDetector, InMemoryRegistry, TriggerDefinition
    from pg_trigger_control import KillSwitch, SafetyValidator, PreApplyComparator
    from pg_trigger_control import load_config, create_control_plane
"""

__version__ = "0.1.0"

# Adapters
from pg_trigger_control.adapters.base import CatalogInspector, DatabaseClient
from pg_trigger_control.adapters.postgres import PostgresAdapter

# Config
from pg_trigger_control.config.loader import load_config
from pg_trigger_control.config.models import ControlConfig, DatabaseProfile, KillSwitchConfig

# Drift
from pg_trigger_control.drift.detector import DriftDetector
from pg_trigger_control.drift.models import DriftResult, DriftState
from pg_trigger_control.drift.reporter import DriftReporter

# Errors
from pg_trigger_control.errors import (
    CatalogQueryError,
    DefinitionValidationError,
    ExecutionError,
    GatedError,
    NotFoundError,
    ProfileNotFoundError,
    TriggerControlError,
    UnsafeChangeError,
)

# Factory
from pg_trigger_control.factory import ControlPlane, create_control_plane, resolve_url

# Kill switch
from pg_trigger_control.killswitch import Actor, KillSwitch, KillSwitchDecision

# Migrator
from pg_trigger_control.migrator.comparator import ObjectDiff, PreApplyComparator
from pg_trigger_control.migrator.diff_reporter import PreApplyDiffReporter
from pg_trigger_control.migrator.runner import Migrator
from pg_trigger_control.migrator.safety import SafetyValidator, SafetyVerdict

# Operations
from pg_trigger_control.operations import TriggerOperations

# Registry
from pg_trigger_control.registry.fingerprint import fingerprint
from pg_trigger_control.registry.models import TriggerDefinition
from pg_trigger_control.registry.store import InMemoryRegistry, SqlRegistry

# Schema
from pg_trigger_control.schema.introspector import CatalogIntrospector
from pg_trigger_control.schema.models import LiveFunctionRecord, LiveObjectRecord

__all__ = [
    # Adapters
    "CatalogInspector",
    "DatabaseClient",
    "PostgresAdapter",
    # Config
    "load_config",
    "ControlConfig",
    "DatabaseProfile",
    "KillSwitchConfig",
    # Drift
    "DriftDetector",
    "DriftReporter",
    "DriftResult",
    "DriftState",
    # Errors
    "TriggerControlError",
    "GatedError",
    "UnsafeChangeError",
    "ExecutionError",
    "DefinitionValidationError",
    "CatalogQueryError",
    "NotFoundError",
    "ProfileNotFoundError",
    # Factory
    "ControlPlane",
    "create_control_plane",
    "resolve_url",
    # Kill switch
    "Actor",
    "KillSwitch",
    "KillSwitchDecision",
    # Migrator
    "Migrator",
    "ObjectDiff",
    "PreApplyComparator",
    "PreApplyDiffReporter",
    "SafetyValidator",
    "SafetyVerdict",
    # Operations
    "TriggerOperations",
    # Registry
    "fingerprint",
    "TriggerDefinition",
    "InMemoryRegistry",
    "SqlRegistry",
    # Schema
    "CatalogIntrospector",
    "LiveFunctionRecord",
    "LiveObjectRecord",
]
