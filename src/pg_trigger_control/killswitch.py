"""Kill switch gate for dangerous operations.

Blocks mutating operations in protected environments (production and
staging by default) unless an explicit, logged override is present.  Each
``check()`` short-circuits top to bottom:

1. Gate disabled in configuration        -> ALLOWED (disabled_globally)
2. Environment not protected             -> ALLOWED (not_protected)
3. Context-local override flag is set    -> OVERRIDDEN (thread_local)
4. ``KILL_SWITCH_OVERRIDE=true`` in the process environment:
   a. confirmation required: the confirmation (or ``CONFIRMATION_TEXT``)
      must match                          -> OVERRIDDEN (env_with_confirmation)
   b. confirmation not required          -> OVERRIDDEN (env_without_confirmation)
5. Explicit confirmation matches         -> OVERRIDDEN (explicit_confirmation)
6. Otherwise                             -> BLOCKED, ``GatedError`` raised

Every check is logged before it returns or raises: ALLOWED at INFO,
OVERRIDDEN at WARNING, BLOCKED at ERROR.

Usage:
    kill_switch = KillSwitch(config.kill_switch)

    kill_switch.check("migrate_up", environment="production",
                      confirmation="EXECUTE MIGRATE_UP",
                      actor={"type": "cli", "id": "deploy-bot"})

    with kill_switch.override():
        migrator.run_up()

Out-of-band override for scripts:
    KILL_SWITCH_OVERRIDE=true CONFIRMATION_TEXT="EXECUTE MIGRATE_UP" python deploy.py
"""

import logging
import os
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from enum import StrEnum
from typing import Any, TypeVar

from pydantic import BaseModel

from pg_trigger_control.config.models import KillSwitchConfig
from pg_trigger_control.errors import GatedError


T = TypeVar("T")

OVERRIDE_ENV_VAR = "KILL_SWITCH_OVERRIDE"
CONFIRMATION_ENV_VAR = "CONFIRMATION_TEXT"
ENVIRONMENT_ENV_VARS = ("TRIGGER_CONTROL_ENV", "APP_ENV")
DEFAULT_ENVIRONMENT = "development"

# Scoped to the current thread or task; never shared between callers
_override_active: ContextVar[bool] = ContextVar("pg_trigger_control_kill_switch_override", default=False)


# ============================================================================
# Decision Models
# ============================================================================


class Operation(StrEnum):
    """Operations gated by this package."""

    MIGRATE_UP = "migrate_up"
    MIGRATE_DOWN = "migrate_down"
    TRIGGER_ENABLE = "trigger_enable"
    TRIGGER_DISABLE = "trigger_disable"
    TRIGGER_DROP = "trigger_drop"
    TRIGGER_RE_EXECUTE = "trigger_re_execute"


class DecisionStatus(StrEnum):
    ALLOWED = "ALLOWED"
    BLOCKED = "BLOCKED"
    OVERRIDDEN = "OVERRIDDEN"


class DecisionSource(StrEnum):
    THREAD_LOCAL = "thread_local"
    ENV_WITH_CONFIRMATION = "env_with_confirmation"
    ENV_WITHOUT_CONFIRMATION = "env_without_confirmation"
    EXPLICIT_CONFIRMATION = "explicit_confirmation"
    NOT_PROTECTED = "not_protected"
    DISABLED_GLOBALLY = "disabled_globally"


class Actor(BaseModel):
    """Who is performing a gated operation.  Opaque to the gate."""

    type: str = "unknown"
    id: str = "unknown"

    @classmethod
    def coerce(cls, value: "Actor | Mapping[str, Any] | str | None") -> "Actor":
        """Accept an ``Actor``, a ``{type, id}`` mapping, a ``"type:id"`` string or None."""
        if value is None:
            return cls()
        if isinstance(value, Actor):
            return value
        if isinstance(value, Mapping):
            return cls(type=str(value.get("type") or "unknown"), id=str(value.get("id") or "unknown"))
        kind, _, ident = str(value).partition(":")
        return cls(type=kind or "unknown", id=ident or "unknown")

    def __str__(self) -> str:
        return f"{self.type}:{self.id}"


class KillSwitchDecision(BaseModel):
    """Outcome of one gate check.  Created once, logged, never persisted."""

    operation: str
    environment: str
    actor: Actor
    status: DecisionStatus
    source: DecisionSource | None = None
    confirmation_text: str | None = None

    @property
    def allowed(self) -> bool:
        return self.status is not DecisionStatus.BLOCKED

    def log_line(self) -> str:
        """Audit line, e.g. ``[KILL_SWITCH] OVERRIDDEN: operation=migrate_up ...``."""
        line = (
            f"[KILL_SWITCH] {self.status.value}: operation={self.operation} "
            f"environment={self.environment} actor={self.actor}"
        )
        if self.source is not None:
            line += f" source={self.source.value}"
        if self.confirmation_text is not None:
            line += f" confirmation={self.confirmation_text}"
        return line


_LOG_LEVELS = {
    DecisionStatus.ALLOWED: logging.INFO,
    DecisionStatus.OVERRIDDEN: logging.WARNING,
    DecisionStatus.BLOCKED: logging.ERROR,
}


# ============================================================================
# Gate
# ============================================================================


class KillSwitch:
    """Environment-aware gate in front of every mutating operation.

    Args:
        config: Kill switch settings (default: ``KillSwitchConfig()``).
        logger: Sink for decision lines (default: this module's logger).
        environ: Process environment to read override signals from
            (default: ``os.environ``, read at every check).
        default_environment: Environment used when ``check()`` is called
            without one, before falling back to ``TRIGGER_CONTROL_ENV``,
            ``APP_ENV`` and finally ``development``.
    """

    def __init__(
        self,
        config: KillSwitchConfig | None = None,
        logger: logging.Logger | None = None,
        environ: Mapping[str, str] | None = None,
        default_environment: str | None = None,
    ) -> None:
        self.config = config or KillSwitchConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._environ = environ
        self._default_environment = default_environment

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def detect_environment(self, environment: str | None = None) -> str:
        """Resolve the environment a check applies to."""
        if environment:
            return str(environment)
        if self._default_environment:
            return self._default_environment
        for name in ENVIRONMENT_ENV_VARS:
            value = self.environ.get(name)
            if value:
                return value
        return DEFAULT_ENVIRONMENT

    def is_active(self, environment: str | None = None) -> bool:
        """True if the gate would block operations in *environment*."""
        if not self.config.enabled:
            return False
        return self.detect_environment(environment) in self.config.protected_environments

    def expected_confirmation(self, operation: str) -> str:
        """Exact text that overrides the gate for *operation*."""
        return self.config.confirmation_pattern(str(operation))

    @staticmethod
    def override_active() -> bool:
        """True inside an ``override()`` block on the current thread or task."""
        return _override_active.get()

    def _env_override_active(self) -> bool:
        return (self.environ.get(OVERRIDE_ENV_VAR) or "").strip().lower() == "true"

    # ------------------------------------------------------------------
    # Check
    # ------------------------------------------------------------------

    def check(
        self,
        operation: str,
        environment: str | None = None,
        actor: Actor | Mapping[str, Any] | str | None = None,
        confirmation: str | None = None,
    ) -> KillSwitchDecision:
        """Gate *operation* and return the logged decision.

        Args:
            operation: Operation name, e.g. ``"migrate_up"``.
            environment: Target environment (detected when omitted).
            actor: Who is performing the operation, for the audit line.
            confirmation: Override confirmation text.

        Returns:
            The ALLOWED or OVERRIDDEN decision.

        Raises:
            GatedError: When blocked, or when confirmation text is missing
                or wrong.  ``error.decision`` holds the BLOCKED decision.
        """
        operation = str(operation)
        env = self.detect_environment(environment)
        who = Actor.coerce(actor)

        def decide(status: DecisionStatus, source: DecisionSource | None, text: str | None = None) -> KillSwitchDecision:
            decision = KillSwitchDecision(
                operation=operation,
                environment=env,
                actor=who,
                status=status,
                source=source,
                confirmation_text=text,
            )
            self._logger.log(_LOG_LEVELS[status], decision.log_line())
            return decision

        if not self.config.enabled:
            return decide(DecisionStatus.ALLOWED, DecisionSource.DISABLED_GLOBALLY)

        if env not in self.config.protected_environments:
            return decide(DecisionStatus.ALLOWED, DecisionSource.NOT_PROTECTED)

        if self.override_active():
            return decide(DecisionStatus.OVERRIDDEN, DecisionSource.THREAD_LOCAL)

        if self._env_override_active():
            if not self.config.confirmation_required:
                return decide(DecisionStatus.OVERRIDDEN, DecisionSource.ENV_WITHOUT_CONFIRMATION)
            if confirmation is None:
                confirmation = self.environ.get(CONFIRMATION_ENV_VAR)
            error = self._confirmation_error(confirmation, operation)
            if error is not None:
                error.decision = decide(DecisionStatus.BLOCKED, DecisionSource.ENV_WITH_CONFIRMATION)
                raise error
            return decide(DecisionStatus.OVERRIDDEN, DecisionSource.ENV_WITH_CONFIRMATION, confirmation.strip())

        if confirmation is not None:
            error = self._confirmation_error(confirmation, operation)
            if error is not None:
                error.decision = decide(DecisionStatus.BLOCKED, DecisionSource.EXPLICIT_CONFIRMATION)
                raise error
            return decide(DecisionStatus.OVERRIDDEN, DecisionSource.EXPLICIT_CONFIRMATION, confirmation.strip())

        decision = decide(DecisionStatus.BLOCKED, None)
        raise self._blocked_error(operation, env, decision)

    def validate_confirmation(self, confirmation: str | None, operation: str) -> str:
        """Return the trimmed confirmation, or raise ``GatedError`` if it does not match."""
        error = self._confirmation_error(confirmation, str(operation))
        if error is not None:
            raise error
        return confirmation.strip()

    def _confirmation_error(self, confirmation: str | None, operation: str) -> GatedError | None:
        expected = self.expected_confirmation(operation)
        if confirmation is None or not confirmation.strip():
            return GatedError(
                f"Confirmation text required. Expected: '{expected}'",
                error_code="KILL_SWITCH_CONFIRMATION_REQUIRED",
                recovery_suggestion=f"Provide the confirmation text: {expected}",
                context={"operation": operation, "expected_confirmation": expected},
            )
        provided = confirmation.strip()
        if provided == expected:
            return None
        return GatedError(
            f"Invalid confirmation text. Expected: '{expected}', got: '{provided}'",
            error_code="KILL_SWITCH_CONFIRMATION_INVALID",
            recovery_suggestion=f"Use the exact confirmation text: {expected}",
            context={"operation": operation, "expected_confirmation": expected, "provided_confirmation": provided},
        )

    def _blocked_error(self, operation: str, environment: str, decision: KillSwitchDecision) -> GatedError:
        expected = self.expected_confirmation(operation)
        message = (
            f"Kill switch is active for {environment} environment.\n"
            f"Operation '{operation}' has been blocked for safety.\n"
            "\n"
            "To override this protection, you must provide confirmation.\n"
            "\n"
            "For scripts and scheduled jobs, set:\n"
            f'  {OVERRIDE_ENV_VAR}=true {CONFIRMATION_ENV_VAR}="{expected}"\n'
            "\n"
            "For in-process operations, use:\n"
            "  with kill_switch.override():\n"
            "      ...  # your dangerous operation here\n"
            "\n"
            f'Or pass confirmation="{expected}" to the call.\n'
            "\n"
            f"Expected confirmation text: {expected}"
        )
        return GatedError(
            message,
            decision=decision,
            context={"operation": operation, "environment": environment, "expected_confirmation": expected},
        )

    # ------------------------------------------------------------------
    # Scoped override
    # ------------------------------------------------------------------

    @contextmanager
    def override(self, confirmation: str | None = None) -> Iterator[None]:
        """Set the override flag for the current thread or task.

        The previous value is restored on every exit path, so nested blocks
        behave and an exception inside the block never leaves it set.
        """
        if confirmation:
            self._logger.info("[KILL_SWITCH] Override block initiated with confirmation: %s", confirmation)
        token = _override_active.set(True)
        try:
            yield
        finally:
            _override_active.reset(token)

    def with_override(self, fn: Callable[..., T], *args: Any, confirmation: str | None = None, **kwargs: Any) -> T:
        """Call ``fn(*args, **kwargs)`` inside ``override()`` and return its result."""
        with self.override(confirmation=confirmation):
            return fn(*args, **kwargs)
