"""
Compose runtime client — container lifecycle operations for one environment.

Wraps ``docker compose`` (or the legacy ``docker-compose``) with the
environment's env file and compose overlays. Every operation returns an
Outcome and never raises:

    exit 0                      → success (stdout/stderr captured)
    non-zero exit               → recoverable, reason = stderr
    daemon unreachable/no CLI   → fatal (engine_unavailable)
    unknown service name        → recoverable (unknown_service)
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from collections.abc import Callable, Iterator
from pathlib import Path

from stackctl.adapters.shell.command import EXIT_NOT_FOUND, CommandRunner, SubprocessRunner
from stackctl.core.cancellation import CancelToken
from stackctl.core.models.environment import EnvironmentProfile
from stackctl.core.models.outcome import ErrorKind, Outcome
from stackctl.core.models.service import ServiceManifest

logger = logging.getLogger(__name__)

# stderr fragments that mean the engine itself is unreachable
_DAEMON_DOWN_MARKERS = (
    "cannot connect to the docker daemon",
    "is the docker daemon running",
    "error during connect",
    "permission denied while trying to connect to the docker daemon",
)

# docker exec: 126 = cannot execute, 127 = not found inside the container
_SHELL_MISSING_CODES = (126, 127)

# Succeeds only when the compose plugin is installed
COMPOSE_VERSION_CHECK = ("docker", "compose", "version")
COMPOSE_VERSION_TIMEOUT = 30

# Image builds can take far longer than other compose commands
BUILD_TIMEOUT = 3600

SERVICE_RUNNING = "running"
SERVICE_STOPPED = "stopped"
SERVICE_UNHEALTHY = "unhealthy"


class LogStream:
    """A lazy, restartable sequence of log lines.

    Each ``iter()`` launches a fresh ``logs`` process, so the same object
    can be consumed more than once. Once a pass runs to the end,
    ``outcome`` holds how the process exited; a pass stopped by the
    cancel token counts as a success.
    """

    def __init__(
        self,
        runner: CommandRunner,
        argv: list[str],
        cwd: Path,
        env: dict[str, str],
        finish: Callable[[subprocess.CompletedProcess[str]], Outcome],
        cancel: CancelToken | None = None,
    ):
        self._runner = runner
        self._argv = argv
        self._cwd = cwd
        self._env = env
        self._finish = finish
        self._cancel = cancel
        self.outcome: Outcome | None = None

    @property
    def argv(self) -> list[str]:
        return list(self._argv)

    def __iter__(self) -> Iterator[str]:
        self.outcome = None
        result = yield from self._runner.stream(self._argv, cwd=self._cwd, env=self._env, cancel=self._cancel)
        if self._cancel is not None and self._cancel.cancelled:
            self.outcome = Outcome.success(metadata={"cancelled": True})
        else:
            self.outcome = self._finish(result)


class ComposeRuntime:
    """Container runtime client bound to one environment profile."""

    def __init__(
        self,
        profile: EnvironmentProfile,
        manifest: ServiceManifest,
        runner: CommandRunner | None = None,
        timeout: float = 600,
    ):
        self._profile = profile
        self._manifest = manifest
        self._runner = runner or SubprocessRunner()
        self._timeout = timeout
        self._compose_cmd: list[str] | None = None

    @property
    def manifest(self) -> ServiceManifest:
        return self._manifest

    @property
    def profile(self) -> EnvironmentProfile:
        return self._profile

    @property
    def legacy_compose(self) -> bool:
        """True once commands go through the standalone ``docker-compose``."""
        return self._compose_cmd == ["docker-compose"]

    # ── Lifecycle ───────────────────────────────────────────────

    def up(self, services: list[str] | None = None, build: bool = False) -> Outcome:
        """Start (or converge) services in the background.

        ``--remove-orphans`` plus compose's own reconciliation make this
        idempotent: a second call with the same manifest changes nothing.
        """
        services = services or []
        unknown = self._check_services(services)
        if unknown:
            return unknown
        args = ["up", "-d", "--remove-orphans"]
        if build:
            args.append("--build")
        logger.info("Bringing up %s", ", ".join(services) if services else "all services")
        return self._compose([*args, *services], timeout=BUILD_TIMEOUT if build else self._timeout)

    def down(self, remove_volumes: bool = False) -> Outcome:
        """Stop and remove containers.

        With ``remove_volumes`` the named volumes go too. That is
        irreversible; callers gate it behind a confirmation.
        """
        args = ["down", "--remove-orphans"]
        if remove_volumes:
            args.append("-v")
        logger.info("Stopping services (remove_volumes=%s)", remove_volumes)
        return self._compose(args)

    def restart(self, service: str | None = None) -> Outcome:
        services = [service] if service else []
        unknown = self._check_services(services)
        if unknown:
            return unknown
        return self._compose(["restart", *services])

    def exec(self, service: str, command: list[str], interactive: bool = False) -> Outcome:
        """Run ``command`` inside a running service container.

        Captured mode passes ``-T`` (no TTY) and returns stdout, stderr and
        the exit code. Interactive mode attaches to the terminal.
        """
        unknown = self._check_services([service])
        if unknown:
            return unknown
        args = ["exec"] if interactive else ["exec", "-T"]
        return self._compose([*args, service, *command], interactive=interactive)

    def shell(self, service: str) -> Outcome:
        """Open an interactive shell, preferring bash and falling back to sh."""
        outcome = self.exec(service, ["bash"], interactive=True)
        if outcome.exit_code in _SHELL_MISSING_CODES:
            logger.info("bash not available in %s, falling back to sh", service)
            outcome = self.exec(service, ["sh"], interactive=True)
        return outcome

    def logs(
        self,
        service: str | None = None,
        follow: bool = True,
        tail: int | None = None,
        cancel: CancelToken | None = None,
    ) -> Outcome:
        """Return an Outcome whose ``stream`` yields log lines lazily."""
        if service:
            unknown = self._check_services([service])
            if unknown:
                return unknown

        base = self._base_command()
        if base is None:
            return self._engine_missing()

        args = ["logs", "--no-color"]
        if follow:
            args.append("-f")
        if tail is not None:
            args.extend(["--tail", str(tail)])
        if service:
            args.append(service)

        stream = LogStream(
            self._runner,
            [*base, *args],
            cwd=self._profile.project_root,
            env=self._child_env(),
            finish=lambda result: self._to_outcome(result, "compose logs"),
            cancel=cancel,
        )
        return Outcome.success(stream=stream, metadata={"service": service or "all"})

    def status(self) -> Outcome:
        """Per-service state: running, stopped or unhealthy.

        Services declared in the manifest but absent from ``ps`` are
        reported as stopped. The standalone ``docker-compose`` has no JSON
        output, so there only running and stopped are told apart.
        """
        if self._base_command() is None:
            return self._engine_missing()
        if self.legacy_compose:
            return self._legacy_status()

        outcome = self._compose(["ps", "--all", "--format", "json"])
        if outcome.failed:
            return outcome

        states = {name: SERVICE_STOPPED for name in self._manifest.names}
        for entry in _parse_ps_output(outcome.output):
            name = entry.get("Service") or entry.get("Name", "")
            if not name:
                continue
            state = str(entry.get("State", "")).lower()
            health = str(entry.get("Health", "")).lower()
            if state == "running" and health == "unhealthy":
                states[name] = SERVICE_UNHEALTHY
            elif state == "running":
                states[name] = SERVICE_RUNNING
            else:
                states[name] = SERVICE_STOPPED

        return outcome.model_copy(update={"metadata": {"services": states}})

    def _legacy_status(self) -> Outcome:
        outcome = self._compose(["ps", "--services", "--filter", "status=running"])
        if outcome.failed:
            return outcome
        running = set(outcome.output.split())
        states = {
            name: SERVICE_RUNNING if name in running else SERVICE_STOPPED
            for name in self._manifest.names
        }
        return outcome.model_copy(update={"metadata": {"services": states}})

    def build(self) -> Outcome:
        """Build images for every service that declares a build context."""
        logger.info("Building images")
        return self._compose(["build"], timeout=BUILD_TIMEOUT)

    # ── Host-wide engine operations ─────────────────────────────

    def prune(self) -> Outcome:
        """Remove unused containers, networks, images and build cache."""
        return self._docker(["system", "prune", "-f"])

    def nuke_host(self) -> Outcome:
        """Remove every container, volume, image and network on this host.

        Individual steps may fail (nothing to remove, image in use); they
        are recorded and the sequence continues. Only an unreachable
        engine stops it.
        """
        steps: list[dict[str, object]] = []

        def _step(label: str, args: list[str]) -> Outcome:
            outcome = self._docker(args)
            steps.append({"step": label, "ok": outcome.ok, "reason": outcome.reason})
            if outcome.failed and not outcome.fatal:
                logger.warning("%s failed: %s", label, outcome.reason)
            return outcome

        def _ids(args: list[str]) -> list[str] | Outcome:
            outcome = self._docker(args)
            if outcome.fatal:
                return outcome
            return outcome.output.split() if outcome.ok else []

        plan: list[tuple[str, list[str], list[str] | None]] = [
            ("stop containers", ["stop"], ["ps", "-a", "-q"]),
            ("remove containers", ["rm"], ["ps", "-a", "-q"]),
            ("remove volumes", ["volume", "rm"], ["volume", "ls", "-q"]),
            ("remove images", ["rmi"], ["images", "-q"]),
            ("prune build cache", ["builder", "prune", "-f"], None),
            ("prune networks", ["network", "prune", "-f"], None),
            ("system prune", ["system", "prune", "-a", "--volumes", "-f"], None),
        ]
        for label, args, list_args in plan:
            if list_args is not None:
                ids = _ids(list_args)
                if isinstance(ids, Outcome):
                    return ids
                if not ids:
                    steps.append({"step": label, "ok": True, "reason": "nothing to remove"})
                    continue
                args = [*args, *dict.fromkeys(ids)]
            outcome = _step(label, args)
            if outcome.fatal:
                return outcome.model_copy(update={"metadata": {"steps": steps}})

        return Outcome.success(metadata={"steps": steps})

    # ── Helpers ─────────────────────────────────────────────────

    def _check_services(self, services: list[str]) -> Outcome | None:
        unknown = self._manifest.unknown(services)
        if not unknown:
            return None
        known = ", ".join(self._manifest.names) or "none"
        return Outcome.recoverable(
            f"Unknown service '{unknown[0]}' (known: {known})",
            kind=ErrorKind.UNKNOWN_SERVICE,
            metadata={"unknown": unknown},
        )

    def _base_command(self) -> list[str] | None:
        """``docker compose`` / ``docker-compose`` plus env and overlay files.

        The compose plugin is only chosen when ``docker compose version``
        succeeds; a docker CLI without the plugin falls back to the
        standalone binary.
        """
        if self._compose_cmd is None:
            if self._runner.which("docker") and self._has_compose_plugin():
                self._compose_cmd = ["docker", "compose"]
            elif self._runner.which("docker-compose"):
                logger.debug("Using standalone docker-compose")
                self._compose_cmd = ["docker-compose"]
            else:
                return None

        cmd = [*self._compose_cmd, "--env-file", str(self._profile.env_file)]
        for path in self._profile.compose_files:
            cmd.extend(["-f", str(path)])
        return cmd

    def _has_compose_plugin(self) -> bool:
        result = self._runner.run(
            [*COMPOSE_VERSION_CHECK],
            cwd=self._profile.project_root,
            timeout=COMPOSE_VERSION_TIMEOUT,
        )
        if result.returncode != 0:
            logger.debug("docker compose plugin unavailable: %s", (result.stderr or "").strip())
        return result.returncode == 0

    def _child_env(self) -> dict[str, str]:
        # Read-only view of our environment plus the profile; never written back.
        return {**os.environ, **self._profile.variables}

    def _engine_missing(self) -> Outcome:
        return Outcome.fatal_failure(
            "Neither the docker compose plugin nor docker-compose was found on PATH",
            kind=ErrorKind.ENGINE_UNAVAILABLE,
        )

    def _compose(
        self,
        args: list[str],
        interactive: bool = False,
        timeout: float | None = None,
    ) -> Outcome:
        base = self._base_command()
        if base is None:
            return self._engine_missing()
        result = self._runner.run(
            [*base, *args],
            cwd=self._profile.project_root,
            env=self._child_env(),
            timeout=timeout if timeout is not None else (None if interactive else self._timeout),
            interactive=interactive,
        )
        return self._to_outcome(result, f"compose {args[0]}")

    def _docker(self, args: list[str]) -> Outcome:
        if not self._runner.which("docker"):
            return Outcome.fatal_failure(
                "'docker' was not found on PATH",
                kind=ErrorKind.ENGINE_UNAVAILABLE,
            )
        result = self._runner.run(
            ["docker", *args],
            cwd=self._profile.project_root,
            env=self._child_env(),
            timeout=self._timeout,
        )
        return self._to_outcome(result, f"docker {args[0]}")

    def _to_outcome(self, result: subprocess.CompletedProcess[str], action: str) -> Outcome:
        stdout = (result.stdout or "").strip()
        stderr = (result.stderr or "").strip()
        if result.returncode == 0:
            return Outcome.success(stdout, stderr=stderr, exit_code=0)

        engine = str(result.args[0]) if result.args else ""
        lowered = stderr.lower()
        if (result.returncode == EXIT_NOT_FOUND and stderr == f"{engine}: command not found") or any(
            marker in lowered for marker in _DAEMON_DOWN_MARKERS
        ):
            logger.error("Container engine unavailable: %s", stderr)
            return Outcome.fatal_failure(
                stderr or "Container engine unavailable",
                kind=ErrorKind.ENGINE_UNAVAILABLE,
                output=stdout,
                stderr=stderr,
                exit_code=result.returncode,
            )

        logger.debug("%s exited with %d: %s", action, result.returncode, stderr)
        return Outcome.recoverable(
            stderr or f"{action} exited with code {result.returncode}",
            kind=ErrorKind.COMMAND_FAILED,
            output=stdout,
            stderr=stderr,
            exit_code=result.returncode,
        )


def _parse_ps_output(output: str) -> list[dict]:
    """``compose ps --format json`` prints a JSON array or one object per line."""
    if not output:
        return []
    try:
        parsed = json.loads(output)
        return parsed if isinstance(parsed, list) else [parsed]
    except json.JSONDecodeError:
        entries = []
        for line in output.splitlines():
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return entries
