"""Live catalog state: records and introspection.

Usage:
    from pg_trigger_control.schema import CatalogIntrospector, LiveObjectRecord
"""

from pg_trigger_control.schema.introspector import CatalogIntrospector
from pg_trigger_control.schema.models import (
    LiveFunctionRecord,
    LiveObjectRecord,
    extract_function_body,
    extract_trigger_condition,
    normalize_condition,
)

__all__ = [
    "CatalogIntrospector",
    "LiveFunctionRecord",
    "LiveObjectRecord",
    "extract_function_body",
    "extract_trigger_condition",
    "normalize_condition",
]
