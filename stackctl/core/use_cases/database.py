"""Database use cases — readiness-gated migration commands."""

from __future__ import annotations

from stackctl.core.cancellation import CancelToken
from stackctl.core.models.migration import MigrationMode
from stackctl.core.models.outcome import ErrorKind, Outcome
from stackctl.core.use_cases.session import Session


def wait_for_database(
    session: Session,
    max_attempts: int | None = None,
    interval: float | None = None,
    cancel: CancelToken | None = None,
) -> Outcome:
    readiness = session.settings.readiness
    return session.prober.wait_until_healthy(
        session.db_service,
        max_attempts or readiness.max_attempts,
        interval or readiness.interval,
        cancel,
    )


def init_database(
    session: Session,
    max_attempts: int | None = None,
    interval: float | None = None,
    cancel: CancelToken | None = None,
) -> Outcome:
    """Wait for the database, then probe and bootstrap it."""
    ready = wait_for_database(session, max_attempts, interval, cancel)
    if ready.failed:
        return ready
    return session.bootstrapper.bootstrap()


def migrate(
    session: Session,
    app: str | None = None,
    max_attempts: int | None = None,
    interval: float | None = None,
    cancel: CancelToken | None = None,
) -> Outcome:
    """Plain migrate, no fallback."""
    ready = wait_for_database(session, max_attempts, interval, cancel)
    if ready.failed:
        return ready
    outcome = session.migrations.run_migrations(MigrationMode.NORMAL, app)
    if outcome.ok or outcome.fatal:
        return outcome
    return outcome.escalate(ErrorKind.MIGRATION_FATAL)


def fix_migrations(
    session: Session,
    max_attempts: int | None = None,
    interval: float | None = None,
    cancel: CancelToken | None = None,
) -> Outcome:
    """Force the fake-initial path."""
    ready = wait_for_database(session, max_attempts, interval, cancel)
    if ready.failed:
        return ready
    return session.bootstrapper.fix_migrations()
