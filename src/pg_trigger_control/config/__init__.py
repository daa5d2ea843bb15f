"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from pg_trigger_control.config import load_config, ControlConfig, KillSwitchConfig
"""

from pg_trigger_control.config.loader import load_config
from pg_trigger_control.config.models import (
    ControlConfig,
    DatabaseProfile,
    KillSwitchConfig,
    MigrationConfig,
    RegistryConfig,
)

__all__ = [
    "load_config",
    "ControlConfig",
    "DatabaseProfile",
    "KillSwitchConfig",
    "MigrationConfig",
    "RegistryConfig",
]
