"""Desired-state registry: definitions, fingerprints and stores.

Usage:
    from pg_trigger_control.registry import TriggerDefinition, InMemoryRegistry, fingerprint
"""

from pg_trigger_control.registry.fingerprint import fingerprint
from pg_trigger_control.registry.models import (
    TriggerDefinition,
    TriggerEvent,
    TriggerSource,
    TriggerTiming,
)
from pg_trigger_control.registry.store import InMemoryRegistry, SqlRegistry, TriggerRegistry

__all__ = [
    "fingerprint",
    "TriggerDefinition",
    "TriggerEvent",
    "TriggerSource",
    "TriggerTiming",
    "TriggerRegistry",
    "InMemoryRegistry",
    "SqlRegistry",
]
