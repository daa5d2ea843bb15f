"""TOML configuration loading."""

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path

from pydantic import ValidationError

from pg_trigger_control.config.models import (
    ControlConfig,
    DatabaseProfile,
    KillSwitchConfig,
    MigrationConfig,
    RegistryConfig,
    template_confirmation_pattern,
)

DEFAULT_CONFIG_FILE = "trigger_control.toml"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUE_VALUES


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ControlConfig:
    """Load control-plane configuration from a TOML file.

    Args:
        config_path: Path to the config file (default: ./trigger_control.toml)
        environ: Environment used for overrides (default: ``os.environ``).
            ``ALLOW_UNSAFE_MIGRATIONS=true`` enables unsafe migrations;
            ``TRIGGER_CONTROL_ENV`` replaces the configured environment.

    Returns:
        ControlConfig with all sections

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_FILE
    config_path = Path(config_path)
    environ = os.environ if environ is None else environ

    if not config_path.exists():
        raise FileNotFoundError(
            f"Trigger control config not found: {config_path}\n"
            f"Create {DEFAULT_CONFIG_FILE} with your profiles and kill switch settings."
        )

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        # Parse profiles
        profiles = {
            name: DatabaseProfile(**profile_data)
            for name, profile_data in data.get("profiles", {}).items()
        }

        # Parse kill switch settings
        kill_switch_data = dict(data.get("kill_switch", {}))
        template = kill_switch_data.pop("confirmation_template", None)
        if template is not None:
            kill_switch_data["confirmation_pattern"] = template_confirmation_pattern(template)
        kill_switch = KillSwitchConfig(**kill_switch_data)

        migrations = MigrationConfig(**data.get("migrations", {}))
        if _env_flag(environ.get("ALLOW_UNSAFE_MIGRATIONS")):
            migrations.allow_unsafe_migrations = True

        registry = RegistryConfig(**data.get("registry", {}))
    except (ValidationError, TypeError) as e:
        raise ValueError(f"Invalid configuration in {config_path}: {e}") from e

    return ControlConfig(
        environment=environ.get("TRIGGER_CONTROL_ENV") or data.get("environment"),
        profiles=profiles,
        kill_switch=kill_switch,
        migrations=migrations,
        registry=registry,
    )
