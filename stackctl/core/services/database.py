"""
Database bootstrap — probe the schema state and apply the right migrations.

State machine over MigrationState:

    probe ──absent──────► migrate ──fail──► migration_fatal
      │                      │
      │                      └─ok──► done
      │
      └──initialized──► migrate ──ok──► done
                           │
                           └─fail─┬─ conflict? ──no──► migration_fatal
                                  │
                                  └─yes─► (conflicted) migrate --fake-initial
                                               ├─ok──► done
                                               └─fail─► migration_fatal

The fake-initial retry happens at most once, and only when the failure
matches the conflict predicate. Any other migration error is surfaced
as-is so real schema problems are never masked.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from typing import Protocol

from stackctl.adapters.containers.compose import ComposeRuntime
from stackctl.core.models.migration import MigrationMode, MigrationState
from stackctl.core.models.outcome import ErrorKind, Outcome
from stackctl.core.models.settings import MigrationSettings

logger = logging.getLogger(__name__)

ConflictPredicate = Callable[[Outcome], bool]


def pattern_predicate(patterns: Sequence[str]) -> ConflictPredicate:
    """Build a conflict predicate that searches migration output for ``patterns``."""
    compiled = [re.compile(p, re.IGNORECASE) for p in patterns]

    def _is_conflict(outcome: Outcome) -> bool:
        text = "\n".join((outcome.output, outcome.stderr, outcome.reason))
        return any(rx.search(text) for rx in compiled)

    return _is_conflict


class MigrationRunner(Protocol):
    """Anything that can apply schema migrations."""

    def run_migrations(self, mode: MigrationMode = MigrationMode.NORMAL, app: str | None = None) -> Outcome: ...


class ManagePyRunner:
    """Runs Django ``manage.py`` commands inside the application service."""

    def __init__(
        self,
        runtime: ComposeRuntime,
        service: str = "backend",
        manage_command: Sequence[str] = ("python", "manage.py"),
        test_command: Sequence[str] = ("python", "manage.py", "test"),
    ):
        self._runtime = runtime
        self._service = service
        self._manage = list(manage_command)
        self._test = list(test_command)

    def run_migrations(self, mode: MigrationMode = MigrationMode.NORMAL, app: str | None = None) -> Outcome:
        cmd = [*self._manage, "migrate"]
        if app:
            cmd.append(app)
        cmd.append("--noinput")
        if mode == MigrationMode.FAKE_INITIAL:
            cmd.append("--fake-initial")
        logger.info("Running migrations (%s)%s", mode.value, f" for {app}" if app else "")
        return self._runtime.exec(self._service, cmd)

    def make_migrations(self, app: str | None = None) -> Outcome:
        cmd = [*self._manage, "makemigrations"]
        if app:
            cmd.append(app)
        return self._runtime.exec(self._service, cmd)

    def run_tests(self, labels: Sequence[str] = ()) -> Outcome:
        return self._runtime.exec(self._service, [*self._test, *labels])


class PostgresProbe:
    """Derives MigrationState by looking for the migration history table."""

    def __init__(
        self,
        runtime: ComposeRuntime,
        service: str = "db",
        user: str = "postgres",
        database: str = "postgres",
        history_table: str = "django_migrations",
    ):
        self._runtime = runtime
        self._service = service
        self._user = user
        self._database = database
        self._table = history_table

    @property
    def service(self) -> str:
        return self._service

    def probe(self) -> Outcome:
        """Return success with ``metadata["state"]`` set to ABSENT or INITIALIZED."""
        sql = f"SELECT to_regclass('public.{self._table}') IS NOT NULL"
        outcome = self._runtime.exec(
            self._service,
            ["psql", "-U", self._user, "-d", self._database, "-tAc", sql],
        )
        if outcome.fatal or outcome.kind == ErrorKind.UNKNOWN_SERVICE:
            return outcome

        if outcome.ok and outcome.output.strip() == "t":
            logger.info("Database %s has migration history", self._database)
            state = MigrationState.INITIALIZED
        else:
            # Missing database, empty schema, or unreadable: start from scratch
            if outcome.failed:
                logger.warning("Database probe failed, treating as uninitialized: %s", outcome.reason)
            logger.info("Database %s is not initialized", self._database)
            state = MigrationState.ABSENT

        return Outcome.success(metadata={"state": state})


class DatabaseBootstrapper:
    """Idempotent schema setup with a single fake-initial fallback."""

    def __init__(
        self,
        probe: PostgresProbe,
        runner: MigrationRunner,
        is_conflict: ConflictPredicate | None = None,
    ):
        self._probe = probe
        self._runner = runner
        self._is_conflict = is_conflict or pattern_predicate(MigrationSettings().conflict_patterns)

    def probe(self) -> Outcome:
        return self._probe.probe()

    def bootstrap(self) -> Outcome:
        """Probe, then run the migration path the state calls for."""
        probed = self._probe.probe()
        if probed.failed:
            return probed.escalate()

        state: MigrationState = probed.metadata["state"]
        steps: list[str] = []

        if state == MigrationState.ABSENT:
            logger.info("Initializing fresh database...")
        else:
            logger.info("Checking migrations...")

        first = self._runner.run_migrations(MigrationMode.NORMAL)
        steps.append(MigrationMode.NORMAL.value)
        if first.ok:
            return self._done(first, state, steps)
        if first.fatal:
            return first

        if state == MigrationState.ABSENT:
            return first.escalate(
                ErrorKind.MIGRATION_FATAL,
                f"Initial migration failed: {first.reason}",
            ).model_copy(update={"metadata": {"state": state, "steps": steps}})

        if not self._is_conflict(first):
            return first.escalate(
                ErrorKind.MIGRATION_FATAL,
                f"Migration failed: {first.reason}",
            ).model_copy(update={"metadata": {"state": state, "steps": steps}})

        state = MigrationState.CONFLICTED
        conflict = first.model_copy(update={"kind": ErrorKind.MIGRATION_CONFLICT})
        logger.warning("Migration failed. Attempting to fix with --fake-initial...")
        logger.debug("Conflict: %s", conflict.reason)
        retry = self._runner.run_migrations(MigrationMode.FAKE_INITIAL)
        steps.append(MigrationMode.FAKE_INITIAL.value)
        if retry.ok:
            done = self._done(retry, state, steps)
            done.metadata["conflict"] = conflict.reason
            return done
        if retry.fatal:
            return retry

        return retry.escalate(
            ErrorKind.MIGRATION_FATAL,
            f"Migration still failing after fake-initial retry: {retry.reason}",
        ).model_copy(update={"metadata": {"state": state, "steps": steps}})

    def fix_migrations(self) -> Outcome:
        """Force the fake-initial path, regardless of probed state."""
        outcome = self._runner.run_migrations(MigrationMode.FAKE_INITIAL)
        if outcome.ok or outcome.fatal:
            return outcome
        return outcome.escalate(ErrorKind.MIGRATION_FATAL)

    @staticmethod
    def _done(outcome: Outcome, state: MigrationState, steps: list[str]) -> Outcome:
        return outcome.model_copy(update={"metadata": {"state": state, "steps": steps}})
