"""Pydantic models for control-plane configuration."""

from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Database Profiles
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from trigger_control.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str = "postgres"


# ============================================================================
# Component Settings
# ============================================================================


def default_confirmation_pattern(operation: str) -> str:
    """Default override confirmation text for *operation*.

    Examples:
        >>> default_confirmation_pattern("migrate_up")
        'EXECUTE MIGRATE_UP'
    """
    return f"EXECUTE {str(operation).upper()}"


def template_confirmation_pattern(template: str) -> Callable[[str], str]:
    """Build a confirmation pattern from a ``{operation}`` template.

    Examples:
        >>> template_confirmation_pattern("CONFIRM {operation} NOW")("trigger_drop")
        'CONFIRM TRIGGER_DROP NOW'
    """
    if "{operation}" not in template:
        raise ValueError(f"confirmation_template must contain '{{operation}}': {template!r}")

    def pattern(operation: str) -> str:
        return template.replace("{operation}", str(operation).upper())

    return pattern


class KillSwitchConfig(BaseModel):
    """Kill switch settings.

    ``confirmation_pattern`` maps an operation name to the exact text an
    operator must supply to override the gate.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    enabled: bool = True
    protected_environments: set[str] = Field(default_factory=lambda: {"production", "staging"})
    confirmation_required: bool = True
    confirmation_pattern: Callable[[str], str] = default_confirmation_pattern

    @field_validator("protected_environments", mode="before")
    @classmethod
    def _normalize_environments(cls, value):
        if isinstance(value, str):
            value = [value]
        return {str(v).strip() for v in value if str(v).strip()}


class MigrationConfig(BaseModel):
    """Migration runner and safety validator settings."""

    directory: str = "db/triggers"
    allow_unsafe_migrations: bool = False
    table_name: str = "trigger_migrations"


class RegistryConfig(BaseModel):
    """Desired-state registry settings."""

    table_name: str = "trigger_control_registry"
    schema_name: str = "public"


class ControlConfig(BaseModel):
    """Complete configuration from trigger_control.toml."""

    environment: str | None = None
    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    kill_switch: KillSwitchConfig = Field(default_factory=KillSwitchConfig)
    migrations: MigrationConfig = Field(default_factory=MigrationConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
