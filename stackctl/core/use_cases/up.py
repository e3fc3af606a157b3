"""
Up use case — health-gated startup of the whole environment.

Sequence:
    1. Split the manifest into dependency layers (and build images once
       when asked to).
    2. For every layer but the last: start it, then wait for the services
       in it that others depend on and that declare a health check.
    3. Converge everything with a final ``up`` (this also removes orphans).
    4. Wait for the database and bootstrap the schema.
    5. Resolve the endpoint URLs to print.

Each step is idempotent, so running ``up`` twice ends in the same
running set.
"""

from __future__ import annotations

import logging

from stackctl.core.cancellation import CancelToken
from stackctl.core.config.loader import interpolate
from stackctl.core.models.outcome import Outcome
from stackctl.core.use_cases.database import init_database
from stackctl.core.use_cases.session import Session

logger = logging.getLogger(__name__)


def resolve_endpoints(session: Session) -> list[tuple[str, str]]:
    """``(label, url)`` pairs with ports resolved from the profile.

    Endpoints bound to a service that publishes no host port are left out.
    """
    endpoints = []
    for ep in session.settings.endpoints:
        port = interpolate(ep.port, session.profile.variables)
        if not port and ep.service in session.manifest:
            port = session.manifest.services[ep.service].published_port or ""
        if not port:
            logger.debug("No published port for endpoint %s", ep.label)
            continue
        endpoints.append((ep.label, f"{ep.scheme}://{ep.host}:{port}"))
    return endpoints


def bring_up(
    session: Session,
    build: bool = False,
    max_attempts: int | None = None,
    interval: float | None = None,
    cancel: CancelToken | None = None,
) -> Outcome:
    """Start the environment and bootstrap its database."""
    manifest = session.manifest
    runtime = session.runtime
    readiness = session.settings.readiness
    attempts = max_attempts or readiness.max_attempts
    wait = interval or readiness.interval

    layers = manifest.startup_layers()
    waited_on = manifest.dependencies_of(manifest.names)

    if build:
        outcome = runtime.build()
        if outcome.failed:
            return outcome

    for layer in layers[:-1]:
        outcome = runtime.up(layer)
        if outcome.failed:
            return outcome
        gate = [n for n in layer if n in waited_on and manifest.services[n].has_healthcheck]
        if gate:
            logger.info("Waiting for %s before starting dependents", ", ".join(gate))
            outcome = session.prober.wait_for_all(gate, attempts, wait, cancel)
            if outcome.failed:
                return outcome

    outcome = runtime.up()
    if outcome.failed:
        return outcome

    metadata: dict[str, object] = {"layers": layers}
    if session.db_service in manifest:
        db = init_database(session, attempts, wait, cancel)
        if db.failed:
            return db
        metadata["database"] = db.metadata.get("state")
    else:
        logger.info("No '%s' service in the manifest, skipping database bootstrap", session.db_service)
        metadata["database"] = "skipped"

    metadata["endpoints"] = resolve_endpoints(session)
    return Outcome.success(metadata=metadata)
