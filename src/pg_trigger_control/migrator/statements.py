"""SQL statement scanning for migration blocks.

Not a SQL parser.  Splits a block into statements (respecting quoted
strings, quoted identifiers, dollar-quoted bodies and comments) and
recognizes the handful of DDL shapes the safety validator and pre-apply
comparator care about:

- ``DROP TRIGGER [IF EXISTS] name ON table``
- ``DROP FUNCTION [IF EXISTS] name(...) [, name(...)]``
- ``CREATE [OR REPLACE] [CONSTRAINT] TRIGGER name timing events ON table ...``
- ``CREATE [OR REPLACE] FUNCTION name(...) ... AS $$ body $$``

Identifiers are normalized the way PostgreSQL resolves them: unquoted names
fold to lower case, quoted names keep their case, schema qualifiers are
dropped.

Usage:
    from pg_trigger_control.migrator.statements import scan

    for stmt in scan(up_sql):
        print(stmt.action, stmt.ref.object_type, stmt.ref.name)
"""

import re
from dataclasses import dataclass, field

from pg_trigger_control.schema.models import extract_function_body, strip_outer_parens

TRIGGER = "trigger"
FUNCTION = "function"

_DOLLAR_TAG = re.compile(r"\$(?:[A-Za-z_][A-Za-z_0-9]*)?\$")

_IDENT = r'(?:"(?:[^"]|"")+"|[A-Za-z_][A-Za-z_0-9$]*)'
_QUALIFIED = rf"{_IDENT}(?:\s*\.\s*{_IDENT})*"

_DROP_TRIGGER = re.compile(
    rf"^DROP\s+TRIGGER\s+(?:IF\s+EXISTS\s+)?(?P<name>{_IDENT})\s+ON\s+(?P<table>{_QUALIFIED})",
    re.IGNORECASE,
)
_DROP_FUNCTION = re.compile(r"^DROP\s+FUNCTION\s+(?:IF\s+EXISTS\s+)?(?P<rest>.*)$", re.IGNORECASE | re.DOTALL)
_LEADING_NAME = re.compile(rf"^\s*(?P<name>{_QUALIFIED})")

_CREATE_TRIGGER = re.compile(
    rf"^CREATE\s+(?P<replace>OR\s+REPLACE\s+)?(?:CONSTRAINT\s+)?TRIGGER\s+(?P<name>{_IDENT})\s+"
    rf"(?P<timing>BEFORE|AFTER|INSTEAD\s+OF)\s+(?P<events>.+?)\s+ON\s+(?P<table>{_QUALIFIED})(?P<rest>.*)$",
    re.IGNORECASE | re.DOTALL,
)
_CREATE_FUNCTION = re.compile(
    rf"^CREATE\s+(?P<replace>OR\s+REPLACE\s+)?FUNCTION\s+(?P<name>{_QUALIFIED})\s*\(",
    re.IGNORECASE,
)
_WHEN = re.compile(r"\bWHEN\s*(\(.*\))\s*EXECUTE\s+(?:FUNCTION|PROCEDURE)\b", re.IGNORECASE | re.DOTALL)
_EXECUTE = re.compile(rf"\bEXECUTE\s+(?:FUNCTION|PROCEDURE)\s+(?P<name>{_QUALIFIED})\s*\(", re.IGNORECASE)


# ------------------------------------------------------------------
# Data classes
# ------------------------------------------------------------------


@dataclass(frozen=True)
class ObjectRef:
    """A trigger or function named by a statement.

    Example:
        ref = ObjectRef(object_type="trigger", name="users_audit", table="users")
        ref.key
        # ('trigger', 'users_audit')
    """

    object_type: str
    name: str
    table: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.object_type, self.name)


@dataclass
class ParsedStatement:
    """One recognized DROP or CREATE statement.

    Trigger creates fill ``timing``, ``events``, ``condition`` and
    ``function_name``; function creates fill ``body``.
    """

    action: str  # "drop" or "create"
    ref: ObjectRef
    sql: str
    index: int
    or_replace: bool = False
    timing: str | None = None
    events: list[str] = field(default_factory=list)
    condition: str | None = None
    function_name: str | None = None
    body: str | None = None

    @property
    def is_drop(self) -> bool:
        return self.action == "drop"

    @property
    def is_create(self) -> bool:
        return self.action == "create"


# ------------------------------------------------------------------
# Splitting
# ------------------------------------------------------------------


def split_statements(sql: str) -> list[str]:
    """Split a SQL block on top-level semicolons.

    Comments are removed; quoted strings, quoted identifiers and
    dollar-quoted bodies are kept verbatim.  Empty statements are dropped.

    Examples:
        >>> split_statements("DROP FUNCTION f(); -- gone\\nCREATE FUNCTION f() AS $$ a; b; $$ LANGUAGE sql;")
        ['DROP FUNCTION f()', 'CREATE FUNCTION f() AS $$ a; b; $$ LANGUAGE sql']
    """
    statements: list[str] = []
    buf: list[str] = []
    i = 0
    n = len(sql)

    def flush() -> None:
        text = "".join(buf).strip()
        if text:
            statements.append(text)
        buf.clear()

    while i < n:
        ch = sql[i]

        if sql.startswith("--", i):
            end = sql.find("\n", i)
            i = n if end == -1 else end
            continue

        if sql.startswith("/*", i):
            # Block comments nest in PostgreSQL
            depth = 1
            j = i + 2
            while j < n and depth:
                if sql.startswith("/*", j):
                    depth += 1
                    j += 2
                elif sql.startswith("*/", j):
                    depth -= 1
                    j += 2
                else:
                    j += 1
            buf.append(" ")
            i = j
            continue

        if ch in ("'", '"'):
            j = i + 1
            while j < n:
                if sql[j] == ch:
                    if j + 1 < n and sql[j + 1] == ch:
                        j += 2
                        continue
                    break
                j += 1
            buf.append(sql[i : j + 1])
            i = j + 1
            continue

        if ch == "$" and (i == 0 or not (sql[i - 1].isalnum() or sql[i - 1] == "_")):
            match = _DOLLAR_TAG.match(sql, i)
            if match:
                tag = match.group(0)
                close = sql.find(tag, match.end())
                end = n if close == -1 else close + len(tag)
                buf.append(sql[i:end])
                i = end
                continue

        if ch == ";":
            flush()
            i += 1
            continue

        buf.append(ch)
        i += 1

    flush()
    return statements


# ------------------------------------------------------------------
# Identifier helpers
# ------------------------------------------------------------------


def _split_outside_quotes(text: str, sep: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    in_quote = False
    current: list[str] = []
    for ch in text:
        if ch == '"':
            in_quote = not in_quote
        elif not in_quote:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
            elif ch == sep and depth == 0:
                parts.append("".join(current))
                current = []
                continue
        current.append(ch)
    parts.append("".join(current))
    return parts


def normalize_identifier(raw: str) -> str:
    """Resolve a possibly qualified, possibly quoted identifier to its name.

    Examples:
        >>> normalize_identifier('public.Users_Audit')
        'users_audit'
        >>> normalize_identifier('"MixedCase"')
        'MixedCase'
    """
    last = _split_outside_quotes(raw.strip(), ".")[-1].strip()
    if len(last) >= 2 and last.startswith('"') and last.endswith('"'):
        return last[1:-1].replace('""', '"')
    return last.lower()


def _normalize_events(text: str) -> list[str]:
    # "INSERT OR UPDATE OF a, b OR DELETE" -> ["delete", "insert", "update"]
    events = []
    for part in re.split(r"\s+OR\s+", text.strip(), flags=re.IGNORECASE):
        word = part.strip().split()
        if word:
            events.append(word[0].lower())
    return sorted(set(events))


# ------------------------------------------------------------------
# Recognizers
# ------------------------------------------------------------------


def parse_trigger_definition(sql: str, index: int = 0) -> ParsedStatement | None:
    """Recognize a ``CREATE TRIGGER`` statement or ``pg_get_triggerdef()`` text."""
    match = _CREATE_TRIGGER.match(sql.strip())
    if not match:
        return None
    rest = match.group("rest")
    when = _WHEN.search(rest)
    execute = _EXECUTE.search(rest)
    return ParsedStatement(
        action="create",
        ref=ObjectRef(
            TRIGGER,
            normalize_identifier(match.group("name")),
            normalize_identifier(match.group("table")),
        ),
        sql=sql,
        index=index,
        or_replace=bool(match.group("replace")),
        timing=" ".join(match.group("timing").lower().split()),
        events=_normalize_events(match.group("events")),
        condition=strip_outer_parens(when.group(1)) if when else None,
        function_name=normalize_identifier(execute.group("name")) if execute else None,
    )


def parse_statement(sql: str, index: int = 0) -> list[ParsedStatement]:
    """Recognize one statement.  Returns an empty list for anything else.

    ``DROP FUNCTION a(), b()`` yields one entry per function.
    """
    text = sql.strip()

    match = _DROP_TRIGGER.match(text)
    if match:
        ref = ObjectRef(TRIGGER, normalize_identifier(match.group("name")), normalize_identifier(match.group("table")))
        return [ParsedStatement(action="drop", ref=ref, sql=text, index=index)]

    match = _DROP_FUNCTION.match(text)
    if match:
        drops = []
        for part in _split_outside_quotes(match.group("rest"), ","):
            name = _LEADING_NAME.match(part)
            if name and name.group("name").upper() not in ("CASCADE", "RESTRICT"):
                ref = ObjectRef(FUNCTION, normalize_identifier(name.group("name")))
                drops.append(ParsedStatement(action="drop", ref=ref, sql=text, index=index))
        return drops

    trigger = parse_trigger_definition(text, index)
    if trigger is not None:
        return [trigger]

    match = _CREATE_FUNCTION.match(text)
    if match:
        return [
            ParsedStatement(
                action="create",
                ref=ObjectRef(FUNCTION, normalize_identifier(match.group("name"))),
                sql=text,
                index=index,
                or_replace=bool(match.group("replace")),
                body=extract_function_body(text),
            )
        ]

    return []


def scan(sql: str) -> list[ParsedStatement]:
    """Split *sql* and return every recognized DROP/CREATE in order."""
    parsed: list[ParsedStatement] = []
    for index, statement in enumerate(split_statements(sql)):
        parsed.extend(parse_statement(statement, index))
    return parsed
