"""
Session use case — wire the components for one environment.

Loads settings, resolves the environment profile, reads the compose
manifest, and builds the runtime client, readiness prober and database
bootstrapper on top of it. Configuration problems come back as a fatal
Outcome; nothing here raises to the CLI.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from stackctl.adapters.containers.compose import ComposeRuntime
from stackctl.adapters.mock import MockEngine
from stackctl.adapters.shell.command import CommandRunner
from stackctl.core.config.loader import (
    ConfigError,
    ConfigNotFound,
    find_settings_file,
    load_environment,
    load_settings,
)
from stackctl.core.config.manifest import ManifestError, load_manifest
from stackctl.core.models.environment import EnvironmentProfile
from stackctl.core.models.outcome import ErrorKind, Outcome
from stackctl.core.models.service import ServiceManifest
from stackctl.core.models.settings import StackSettings
from stackctl.core.services.database import (
    DatabaseBootstrapper,
    ManagePyRunner,
    PostgresProbe,
    pattern_predicate,
)
from stackctl.core.services.readiness import ReadinessProber

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Everything a command needs for one environment."""

    settings: StackSettings
    profile: EnvironmentProfile
    manifest: ServiceManifest
    runtime: ComposeRuntime
    prober: ReadinessProber
    migrations: ManagePyRunner
    bootstrapper: DatabaseBootstrapper

    @property
    def db_service(self) -> str:
        return self.settings.migrations.db_service


@dataclass
class SessionResult:
    """Result of opening a session."""

    session: Session | None = None
    error: Outcome | None = None


def resolve_settings(config_path: Path | None = None) -> tuple[StackSettings, Path]:
    """Load settings and work out the project root.

    The project root is the directory holding stackctl.yml, or the
    current directory when there is none.

    Raises:
        ConfigError: If an existing settings file is invalid.
    """
    path = config_path or find_settings_file()
    settings = load_settings(path)
    root = path.parent.resolve() if path else Path.cwd().resolve()
    return settings, root


def open_session(
    environment: str,
    config_path: Path | None = None,
    runner: CommandRunner | None = None,
    mock_mode: bool = False,
) -> SessionResult:
    """Resolve ``environment`` and build the component graph for it."""
    try:
        settings, root = resolve_settings(config_path)
        profile = load_environment(environment, root, settings)
        mig = settings.migrations
        db_user = profile.get(mig.db_user_var, mig.db_user_default)
        db_name = profile.get(mig.db_name_var, mig.db_name_default)
        # pg_isready stands in when compose declares no health check for the database
        db_check = ["pg_isready", "-U", db_user, "-d", db_name]
        manifest = load_manifest(profile, settings.readiness.healthchecks, {mig.db_service: db_check})
    except ConfigNotFound as e:
        return SessionResult(error=Outcome.fatal_failure(str(e), kind=ErrorKind.CONFIG_NOT_FOUND))
    except ManifestError as e:
        return SessionResult(error=Outcome.fatal_failure(str(e), kind=ErrorKind.INVALID_MANIFEST))
    except ConfigError as e:
        return SessionResult(error=Outcome.fatal_failure(str(e), kind=ErrorKind.INVALID_CONFIG))

    if runner is None and mock_mode:
        runner = MockEngine(services=manifest.names)

    runtime = ComposeRuntime(profile, manifest, runner)
    probe = PostgresProbe(
        runtime,
        service=mig.db_service,
        user=db_user,
        database=db_name,
        history_table=mig.history_table,
    )
    migrations = ManagePyRunner(
        runtime,
        service=mig.app_service,
        manage_command=mig.manage_command,
        test_command=mig.test_command,
    )
    bootstrapper = DatabaseBootstrapper(probe, migrations, pattern_predicate(mig.conflict_patterns))

    logger.debug("Session ready for %s (%s)", profile.name, root)
    return SessionResult(
        session=Session(
            settings=settings,
            profile=profile,
            manifest=manifest,
            runtime=runtime,
            prober=ReadinessProber(runtime),
            migrations=migrations,
            bootstrapper=bootstrapper,
        )
    )
