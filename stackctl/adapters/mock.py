"""
Mock engine — an in-memory stand-in for the docker / compose CLI.

Used by ``--mock`` mode and the test-suite to drive the runtime client
without a container engine. It implements the ``CommandRunner`` protocol
and keeps just enough state to be believable: which services are
running, whether volumes still hold data, and scripted responses for
``exec`` commands (health checks, migrations, probes).
"""

from __future__ import annotations

import json
import subprocess
from collections.abc import Generator, Mapping
from pathlib import Path

from stackctl.adapters.shell.command import EXIT_NOT_FOUND
from stackctl.core.cancellation import CancelToken

DAEMON_DOWN_ERROR = (
    "Cannot connect to the Docker daemon at unix:///var/run/docker.sock. "
    "Is the docker daemon running?"
)

# compose global options that take a value
_GLOBAL_OPTS_WITH_VALUE = {"--env-file", "-f", "--file", "-p", "--project-name", "--project-directory"}


class MockEngine:
    """Universal container-engine double.

    By default every command succeeds. ``on_exec`` scripts the results of
    commands run inside containers; a queue of results is consumed in
    order and the last one repeats.

    ``compose_plugin=False`` simulates a docker CLI without the compose
    plugin, and ``legacy_compose`` puts a standalone ``docker-compose`` on
    the path. The ``docker compose version`` check is answered but not
    recorded in the call log.
    """

    def __init__(
        self,
        services: list[str] | None = None,
        available: bool = True,
        daemon_running: bool = True,
        compose_plugin: bool = True,
        legacy_compose: bool = False,
    ):
        self.services = list(services or [])
        self.available = available
        self.daemon_running = daemon_running
        self.compose_plugin = compose_plugin
        self.legacy_compose = legacy_compose
        self.running: set[str] = set()
        self.container_ids: dict[str, str] = {}
        self.has_volumes = True
        self.log_lines: dict[str, list[str]] = {}
        self.log_exit: tuple[int, str] = (0, "")
        self._exec_scripts: list[tuple[str, list[str], list[tuple[int, str, str]]]] = []
        self._call_log: list[list[str]] = []

    # ── Introspection ───────────────────────────────────────────

    @property
    def call_log(self) -> list[list[str]]:
        """Every argv this engine has received, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_matching(self, *fragment: str) -> list[list[str]]:
        """Calls whose argv contains ``fragment`` as a contiguous run."""
        size = len(fragment)
        return [
            argv for argv in self._call_log
            if any(tuple(argv[i:i + size]) == fragment for i in range(len(argv) - size + 1))
        ]

    # ── Scripting ───────────────────────────────────────────────

    def on_exec(self, service: str, command: list[str], *results: tuple[int, str, str]) -> None:
        """Script ``exec`` results for commands starting with ``command``.

        Each result is ``(returncode, stdout, stderr)``.
        """
        self._exec_scripts.append((service, list(command), list(results)))

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._exec_scripts.clear()

    # ── CommandRunner protocol ──────────────────────────────────

    def which(self, program: str) -> bool:
        if not self.available:
            return False
        return program == "docker" or (program == "docker-compose" and self.legacy_compose)

    def run(
        self,
        argv: list[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        interactive: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        if argv == ["docker", "compose", "version"]:
            if self.compose_plugin:
                return self._result(argv, 0, "Docker Compose version v2.24.0", "")
            return self._result(argv, 1, "", "docker: 'compose' is not a docker command.")

        self._call_log.append(list(argv))

        unavailable = self._unavailable(argv)
        if unavailable is not None:
            return unavailable

        if argv[:2] == ["docker", "compose"]:
            return self._compose(argv, _strip_globals(argv[2:]))
        if argv[0] == "docker-compose":
            return self._compose(argv, _strip_globals(argv[1:]))
        return self._docker(argv, argv[1:])

    def stream(
        self,
        argv: list[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        cancel: CancelToken | None = None,
    ) -> Generator[str, None, subprocess.CompletedProcess[str]]:
        """Yield the scripted ``log_lines``, then exit with ``log_exit``."""
        self._call_log.append(list(argv))
        unavailable = self._unavailable(argv)
        if unavailable is not None:
            return unavailable

        args = _strip_globals(argv[2:] if argv[0] == "docker" else argv[1:])
        targets = [a for a in args[1:] if not a.startswith("-") and a in self.services]
        for name in targets or self.services:
            for line in self.log_lines.get(name, []):
                if cancel is not None and cancel.cancelled:
                    return self._result(argv, -9, "", "")
                yield f"{name}  | {line}"
        code, err = self.log_exit
        return self._result(argv, code, "", err)

    # ── Simulation ──────────────────────────────────────────────

    def _unavailable(self, argv: list[str]) -> subprocess.CompletedProcess[str] | None:
        if not self.available:
            return self._result(argv, EXIT_NOT_FOUND, "", f"{argv[0]}: command not found")
        if not self.daemon_running:
            return self._result(argv, 1, "", DAEMON_DOWN_ERROR)
        return None

    def _compose(self, argv: list[str], args: list[str]) -> subprocess.CompletedProcess[str]:
        command, rest = args[0], args[1:]
        positional = [a for a in rest if not a.startswith("-")]

        if command == "up":
            for name in positional or self.services:
                self.running.add(name)
                self.container_ids.setdefault(name, f"{name}-1")
            return self._result(argv, 0, "", "")

        if command == "down":
            self.running.clear()
            self.container_ids.clear()
            if "-v" in rest:
                self.has_volumes = False
            return self._result(argv, 0, "", "")

        if command == "restart":
            return self._result(argv, 0, "", "")

        if command == "ps":
            if "--services" in rest:
                return self._result(argv, 0, "\n".join(n for n in self.services if n in self.running), "")
            entries = [
                {"Service": name, "State": "running" if name in self.running else "exited", "Health": ""}
                for name in self.services
                if name in self.container_ids
            ]
            return self._result(argv, 0, json.dumps(entries), "")

        if command == "exec":
            exec_args = rest[1:] if rest[:1] == ["-T"] else rest
            service, cmd = exec_args[0], exec_args[1:]
            return self._exec(argv, service, cmd)

        return self._result(argv, 0, "", "")

    def _exec(self, argv: list[str], service: str, cmd: list[str]) -> subprocess.CompletedProcess[str]:
        for script_service, prefix, results in self._exec_scripts:
            if script_service == service and cmd[: len(prefix)] == prefix:
                code, out, err = results.pop(0) if len(results) > 1 else results[0]
                return self._result(argv, code, out, err)

        if service not in self.running:
            return self._result(argv, 1, "", f'service "{service}" is not running')
        return self._result(argv, 0, "", "")

    def _docker(self, argv: list[str], args: list[str]) -> subprocess.CompletedProcess[str]:
        if args[:3] == ["ps", "-a", "-q"]:
            return self._result(argv, 0, "\n".join(self.container_ids.values()), "")
        if args[:1] == ["rm"]:
            self.running.clear()
            self.container_ids.clear()
        if args[:2] == ["volume", "rm"] or "--volumes" in args:
            self.has_volumes = False
        if args[:1] == ["stop"]:
            self.running.clear()
        return self._result(argv, 0, "", "")

    @staticmethod
    def _result(argv: list[str], code: int, out: str, err: str) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(argv, code, out, err)


def _strip_globals(args: list[str]) -> list[str]:
    """Drop compose global options so the subcommand comes first."""
    out: list[str] = []
    skip = False
    for index, arg in enumerate(args):
        if skip:
            skip = False
            continue
        if arg in _GLOBAL_OPTS_WITH_VALUE:
            skip = True
            continue
        if arg.startswith("-"):
            continue
        out = args[index:]
        break
    return out
