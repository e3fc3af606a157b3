"""
Readiness prober — block until a service reports healthy.

Fixed-interval polling of the service's health-check command (from the
compose manifest, or a configured override). The first zero exit wins;
after ``max_attempts`` failed polls the prober gives up with a fatal
``service_unhealthy``. There is no sleep after the last attempt, so a
budget of N attempts costs N polls and N-1 intervals.

The wait between polls goes through a CancelToken, so an interrupt
stops the loop within one interval instead of running to timeout.
"""

from __future__ import annotations

import logging

from stackctl.adapters.containers.compose import SERVICE_RUNNING, ComposeRuntime
from stackctl.core.cancellation import CancelToken
from stackctl.core.models.outcome import ErrorKind, Outcome
from stackctl.core.models.service import Service

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 30
DEFAULT_INTERVAL = 1.0


class ReadinessProber:
    """Polls services of one runtime until they are ready."""

    def __init__(self, runtime: ComposeRuntime):
        self._runtime = runtime

    def wait_until_healthy(
        self,
        service: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL,
        cancel: CancelToken | None = None,
    ) -> Outcome:
        """Poll ``service`` until healthy, out of attempts, or cancelled."""
        svc = self._runtime.manifest.get(service)
        if svc is None:
            return Outcome.recoverable(
                f"Unknown service '{service}'",
                kind=ErrorKind.UNKNOWN_SERVICE,
            )
        if max_attempts < 1:
            return Outcome.recoverable(f"max_attempts must be at least 1, got {max_attempts}")

        cancel = cancel or CancelToken()
        logger.info("Waiting for %s to be ready (%d x %.1fs)", service, max_attempts, interval)

        last_reason = ""
        for attempt in range(1, max_attempts + 1):
            if cancel.cancelled:
                return self._cancelled(service, attempt - 1)

            check = self._check(svc)
            if check.ok:
                logger.info("%s is ready after %d attempt(s)", service, attempt)
                return Outcome.success(metadata={"service": service, "attempts": attempt})
            if check.kind == ErrorKind.ENGINE_UNAVAILABLE:
                return check

            last_reason = check.reason
            logger.debug("%s not ready (attempt %d/%d): %s", service, attempt, max_attempts, last_reason)

            if attempt < max_attempts and cancel.wait(interval):
                return self._cancelled(service, attempt)

        return Outcome.fatal_failure(
            f"Service '{service}' did not become healthy after {max_attempts} attempts",
            kind=ErrorKind.SERVICE_UNHEALTHY,
            metadata={"service": service, "attempts": max_attempts, "last_error": last_reason},
        )

    def wait_for_all(
        self,
        services: list[str],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL,
        cancel: CancelToken | None = None,
    ) -> Outcome:
        """Wait for each service in order; stop at the first failure."""
        ready: list[str] = []
        for name in services:
            outcome = self.wait_until_healthy(name, max_attempts, interval, cancel)
            if outcome.failed:
                return outcome
            ready.append(name)
        return Outcome.success(metadata={"ready": ready})

    def _check(self, svc: Service) -> Outcome:
        if svc.has_healthcheck:
            return self._runtime.exec(svc.name, svc.healthcheck)

        # No health check declared: running is as ready as it gets
        status = self._runtime.status()
        if status.failed:
            return status
        state = status.metadata.get("services", {}).get(svc.name)
        if state == SERVICE_RUNNING:
            return Outcome.success()
        return Outcome.recoverable(f"{svc.name} is {state or 'not running'}")

    @staticmethod
    def _cancelled(service: str, attempts: int) -> Outcome:
        logger.info("Readiness wait for %s cancelled", service)
        return Outcome.fatal_failure(
            f"Cancelled while waiting for '{service}'",
            kind=ErrorKind.CANCELLED,
            metadata={"service": service, "attempts": attempts},
        )
