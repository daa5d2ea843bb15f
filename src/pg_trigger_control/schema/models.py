"""Pydantic models for live catalog state.

This module contains actual-state models read from ``pg_catalog``:
- LiveObjectRecord: one trigger joined with its function
- LiveFunctionRecord: one function definition

Records are constructed fresh per query and never cached; a stale record
would corrupt drift classification.
"""

import re

from pydantic import BaseModel


# ============================================================================
# Catalog Records
# ============================================================================


class LiveObjectRecord(BaseModel):
    """A trigger as reported by ``pg_trigger`` / ``pg_proc``.

    Example:
        >>> rec = LiveObjectRecord(trigger_name="t1", table_name="users")
        >>> rec.is_enabled
        True
    """

    trigger_name: str
    table_name: str
    function_name: str = ""
    function_definition: str | None = None  # pg_get_functiondef()
    trigger_definition: str | None = None  # pg_get_triggerdef()
    enabled_flag: str = "O"  # pg_trigger.tgenabled: O, D, R, A
    schema_name: str = "public"

    @property
    def is_enabled(self) -> bool:
        return self.enabled_flag != "D"

    @property
    def condition(self) -> str | None:
        """WHEN clause of the trigger definition, outer parentheses removed."""
        return extract_trigger_condition(self.trigger_definition)


class LiveFunctionRecord(BaseModel):
    """A function as reported by ``pg_proc``."""

    function_name: str
    function_definition: str | None = None


# ============================================================================
# Definition text helpers
# ============================================================================


_DOLLAR_BODY = re.compile(r"(\$[A-Za-z_0-9]*\$)(.*?)\1", re.DOTALL)
_WHEN_CLAUSE = re.compile(r"\bWHEN\s*(\(.*\))\s*EXECUTE\s+(?:FUNCTION|PROCEDURE)\b", re.IGNORECASE | re.DOTALL)


def extract_function_body(definition: str | None) -> str | None:
    """Return the dollar-quoted body of a function definition, stripped.

    Falls back to the stripped definition when no dollar-quoted body is
    present.

    Examples:
        >>> extract_function_body("CREATE FUNCTION f() RETURNS trigger AS $$ RETURN NEW; $$ LANGUAGE plpgsql")
        'RETURN NEW;'
        >>> extract_function_body("RETURN NEW;")
        'RETURN NEW;'
    """
    if definition is None:
        return None
    match = _DOLLAR_BODY.search(definition)
    if match:
        return match.group(2).strip()
    return definition.strip()


def strip_outer_parens(text: str) -> str:
    """Remove balanced parentheses wrapping the whole expression.

    Examples:
        >>> strip_outer_parens("((new.email IS NOT NULL))")
        'new.email IS NOT NULL'
        >>> strip_outer_parens("(a) OR (b)")
        '(a) OR (b)'
    """
    text = text.strip()
    while text.startswith("(") and text.endswith(")"):
        depth = 0
        for i, ch in enumerate(text):
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0 and i != len(text) - 1:
                    return text
        text = text[1:-1].strip()
    return text


def extract_trigger_condition(trigger_definition: str | None) -> str | None:
    """Return the WHEN condition of a ``pg_get_triggerdef()`` string, or None."""
    if not trigger_definition:
        return None
    match = _WHEN_CLAUSE.search(trigger_definition)
    if not match:
        return None
    return strip_outer_parens(match.group(1))


def normalize_condition(condition: str | None) -> str | None:
    """Reduce a WHEN condition to the form used for comparison.

    ``pg_get_triggerdef()`` lower-cases keywords and column references and
    wraps the expression in parentheses.

    Examples:
        >>> normalize_condition("NEW.email  IS NOT NULL")
        'new.email is not null'
        >>> normalize_condition("((new.email IS NOT NULL))")
        'new.email is not null'
    """
    if not condition or not condition.strip():
        return None
    return " ".join(strip_outer_parens(condition).split()).casefold()
