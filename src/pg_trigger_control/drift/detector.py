"""Drift detection between the registry and the live catalog.

Read-side reconciliation only: the detector never writes and can run at
any time.  Classification precedence, once both sides have been looked up:

1. no registry entry and no live object -> no result
2. registry entry, no live object       -> DROPPED
3. live object, no registry entry       -> UNKNOWN
4. both present:
   a. source == manual                  -> MANUAL_OVERRIDE
   b. enabled == False                  -> DISABLED
   c. live state does not reproduce the registry fingerprint -> DRIFTED
   d. otherwise                         -> IN_SYNC

Manual source wins over disabled, which wins over a checksum mismatch.

Usage:
    detector = DriftDetector(registry, inspector)
    result = detector.detect("users_audit")
    if result and result.state is DriftState.DRIFTED:
        print(result.details)
"""

import logging
from itertools import product
from typing import TYPE_CHECKING

from pg_trigger_control.drift.models import DriftResult, DriftState
from pg_trigger_control.registry.fingerprint import fingerprint
from pg_trigger_control.registry.models import TriggerDefinition
from pg_trigger_control.schema.models import (
    LiveObjectRecord,
    extract_function_body,
    extract_trigger_condition,
    normalize_condition,
)

if TYPE_CHECKING:
    from pg_trigger_control.adapters.base import CatalogInspector
    from pg_trigger_control.registry.store import TriggerRegistry

logger = logging.getLogger(__name__)

INTERNAL_TRIGGER_PREFIX = "RI_"


def is_internal_trigger(name: str) -> bool:
    """True for implicit foreign-key enforcement triggers."""
    return name.startswith(INTERNAL_TRIGGER_PREFIX)


def live_fingerprints(entry: TriggerDefinition, live: LiveObjectRecord) -> set[str]:
    """Fingerprints the live object can reproduce for *entry*'s identity.

    The live body is tried both as the raw ``pg_get_functiondef()`` text and
    as its dollar-quoted body. The condition is the trigger's WHEN clause, or
    the registered condition when the two differ only in catalog formatting.
    """
    bodies = {live.function_definition, extract_function_body(live.function_definition)}
    live_condition = extract_trigger_condition(live.trigger_definition)
    conditions = {live_condition}
    if normalize_condition(live_condition) == normalize_condition(entry.condition):
        conditions.add(entry.condition)
    return {
        fingerprint(entry.name, entry.table, entry.version, body, condition)
        for body, condition in product(bodies, conditions)
    }


def classify(
    name: str,
    entry: TriggerDefinition | None,
    live: LiveObjectRecord | None,
) -> DriftResult | None:
    """Apply the precedence rules to one name's registry and catalog lookups."""
    if entry is None and live is None:
        return None

    if live is None:
        return DriftResult(
            name=name,
            state=DriftState.DROPPED,
            registry_entry=entry,
            details="Trigger recorded in registry but missing from database",
        )

    if entry is None:
        return DriftResult(
            name=name,
            state=DriftState.UNKNOWN,
            live_record=live,
            details="Trigger exists in database but is not tracked (external)",
        )

    if entry.is_manual:
        return DriftResult(
            name=name,
            state=DriftState.MANUAL_OVERRIDE,
            registry_entry=entry,
            live_record=live,
            details="Trigger modified outside the control plane (manual override)",
        )

    if not entry.enabled:
        return DriftResult(
            name=name,
            state=DriftState.DISABLED,
            registry_entry=entry,
            live_record=live,
            details="Trigger is disabled in registry",
        )

    if entry.fingerprint not in live_fingerprints(entry, live):
        return DriftResult(
            name=name,
            state=DriftState.DRIFTED,
            checksum_match=False,
            registry_entry=entry,
            live_record=live,
            details="Trigger has drifted (checksum mismatch between registry and database)",
        )

    return DriftResult(
        name=name,
        state=DriftState.IN_SYNC,
        checksum_match=True,
        registry_entry=entry,
        live_record=live,
        details="Trigger matches registry (in sync)",
    )


class DriftDetector:
    """Classifies tracked and untracked triggers into drift states.

    Args:
        registry: Desired-state registry.
        inspector: Live catalog inspector.  Query failures propagate; the
            detector never falls back to an optimistic state.
    """

    def __init__(self, registry: "TriggerRegistry", inspector: "CatalogInspector") -> None:
        self._registry = registry
        self._inspector = inspector

    def detect(self, name: str) -> DriftResult | None:
        """Classify a single trigger, or return None if it exists nowhere."""
        entry = self._registry.find(name)
        live = self._inspector.find_trigger(name)
        if live is not None and is_internal_trigger(live.trigger_name):
            live = None
        return classify(name, entry, live)

    def detect_all(self) -> list[DriftResult]:
        """Classify the union of registry names and catalog trigger names."""
        entries = {e.name: e for e in self._registry.all()}
        live = {
            r.trigger_name: r
            for r in self._inspector.all_triggers()
            if not is_internal_trigger(r.trigger_name)
        }
        results = self._classify_union(entries, live)
        logger.debug("[DRIFT] detect_all classified %d trigger(s)", len(results))
        return results

    def detect_for_table(self, table: str) -> list[DriftResult]:
        """Classify the triggers registered for or present on *table*."""
        entries = {e.name: e for e in self._registry.for_table(table)}
        live = {
            r.trigger_name: r
            for r in self._inspector.find_triggers_for_table(table)
            if not is_internal_trigger(r.trigger_name)
        }
        return self._classify_union(entries, live)

    @staticmethod
    def _classify_union(
        entries: dict[str, TriggerDefinition],
        live: dict[str, LiveObjectRecord],
    ) -> list[DriftResult]:
        results: list[DriftResult] = []
        for name in sorted(entries.keys() | live.keys()):
            result = classify(name, entries.get(name), live.get(name))
            if result is not None:
                results.append(result)
        return results
