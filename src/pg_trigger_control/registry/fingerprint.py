"""Deterministic content fingerprint for trigger definitions.

Pure logic -- no I/O.  The digest is the basis of every equality check
between desired and actual state, so the field order and encoding below
must never change.

Usage:
    from pg_trigger_control.registry.fingerprint import fingerprint

    fingerprint("t1", "users", 1, "RETURN NEW;", None)
    # '5f0c...'
"""

import hashlib


def fingerprint(
    name: str,
    table: str,
    version: int,
    function_body: str | None,
    condition: str | None,
) -> str:
    """Return the SHA-256 hex digest of a definition's reconciliation fields.

    The digest covers the ordered concatenation ``name + table + version +
    function_body + condition``, UTF-8 encoded, with absent body or
    condition treated as the empty string.

    Examples:
        >>> fingerprint("t1", "users", 1, None, None) == fingerprint("t1", "users", 1, "", "")
        True
        >>> fingerprint("t1", "users", 1, None, None) == fingerprint("t1", "users", 2, None, None)
        False
    """
    payload = "".join(
        [
            name,
            table,
            str(version),
            function_body or "",
            condition or "",
        ]
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
