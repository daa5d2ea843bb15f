"""Control plane factory.

Resolves a database profile from trigger_control.toml and wires every
component against it.

Usage:
    from pg_trigger_control import create_control_plane, load_config

    config = load_config()
    plane = create_control_plane(config)          # TRIGGER_CONTROL_PROFILE
    try:
        for result in plane.detector.detect_all():
            print(result.name, result.state)
    finally:
        plane.close()
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import quote

from pg_trigger_control.adapters.postgres import PostgresAdapter
from pg_trigger_control.config.models import ControlConfig, DatabaseProfile
from pg_trigger_control.drift.detector import DriftDetector
from pg_trigger_control.drift.reporter import DriftReporter
from pg_trigger_control.errors import ProfileNotFoundError
from pg_trigger_control.killswitch import KillSwitch
from pg_trigger_control.migrator.comparator import PreApplyComparator
from pg_trigger_control.migrator.runner import Migrator
from pg_trigger_control.migrator.safety import SafetyValidator
from pg_trigger_control.operations import TriggerOperations
from pg_trigger_control.registry.store import SqlRegistry
from pg_trigger_control.schema.introspector import CatalogIntrospector

PROFILE_ENV_VAR = "TRIGGER_CONTROL_PROFILE"


# ============================================================================
# Profile Resolution
# ============================================================================


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted

    Examples:
        >>> resolve_url(DatabaseProfile(url="postgresql://app:[YOUR-PASSWORD]@db/app", db_password="p@ss"))
        'postgresql://app:p%40ss@db/app'
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def get_active_profile_name(environ: Mapping[str, str] | None = None) -> str:
    """Get active profile name from the TRIGGER_CONTROL_PROFILE env var.

    Raises:
        ProfileNotFoundError: If the variable is unset or empty
    """
    environ = os.environ if environ is None else environ
    profile_name = environ.get(PROFILE_ENV_VAR)
    if profile_name:
        return profile_name
    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Set {PROFILE_ENV_VAR}=<name> or pass profile_name explicitly."
    )


def get_profile(config: ControlConfig, profile_name: str | None = None) -> tuple[str, DatabaseProfile]:
    """Get profile name and configuration.

    Raises:
        ProfileNotFoundError: If no profile is selected or it is not configured
    """
    profile_name = profile_name or get_active_profile_name()
    if profile_name not in config.profiles:
        available = ", ".join(sorted(config.profiles)) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in config.\nAvailable profiles: {available}",
            context={"profile_name": profile_name, "available": sorted(config.profiles)},
        )
    return profile_name, config.profiles[profile_name]


# ============================================================================
# Wiring
# ============================================================================


@dataclass
class ControlPlane:
    """Every component, wired against one database profile."""

    config: ControlConfig
    profile_name: str
    client: PostgresAdapter
    inspector: CatalogIntrospector
    registry: SqlRegistry
    kill_switch: KillSwitch
    detector: DriftDetector
    reporter: DriftReporter
    validator: SafetyValidator
    comparator: PreApplyComparator
    migrator: Migrator
    operations: TriggerOperations

    def close(self) -> None:
        """Dispose of the connection pool."""
        self.client.close()


def create_control_plane(config: ControlConfig, profile_name: str | None = None) -> ControlPlane:
    """Build a ``ControlPlane`` for *profile_name* (default: TRIGGER_CONTROL_PROFILE).

    Nothing connects until the first query.

    Raises:
        ProfileNotFoundError: If the profile cannot be resolved.
    """
    profile_name, profile = get_profile(config, profile_name)
    url = resolve_url(profile)

    client = PostgresAdapter(database_url=url)
    inspector = CatalogIntrospector(url, schema_name=config.registry.schema_name)
    registry = SqlRegistry(client, table_name=config.registry.table_name)
    kill_switch = KillSwitch(config.kill_switch, default_environment=config.environment)
    detector = DriftDetector(registry, inspector)

    return ControlPlane(
        config=config,
        profile_name=profile_name,
        client=client,
        inspector=inspector,
        registry=registry,
        kill_switch=kill_switch,
        detector=detector,
        reporter=DriftReporter(detector),
        validator=SafetyValidator(inspector, allow_unsafe_migrations=config.migrations.allow_unsafe_migrations),
        comparator=PreApplyComparator(inspector),
        migrator=Migrator(
            client,
            inspector,
            kill_switch,
            registry=registry,
            directory=config.migrations.directory,
            table_name=config.migrations.table_name,
            allow_unsafe_migrations=config.migrations.allow_unsafe_migrations,
        ),
        operations=TriggerOperations(client, registry, inspector, kill_switch, environment=config.environment),
    )
