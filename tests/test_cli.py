"""
Tests for CLI commands — global behavior, lifecycle, database,
and the destructive commands' confirmation gate.

Commands run against the mock engine injected through the click context
object, with a StaticConfirmer standing in for the terminal prompt.
"""

import json
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner

from stackctl.adapters.mock import MockEngine
from stackctl.main import cli
from stackctl.ui.cli.prompts import StaticConfirmer

SERVICES = ["db", "redis", "backend", "frontend"]


@pytest.fixture
def invoke(settings_file: Path, engine: MockEngine):
    """Run ``stackctl --config <fixture> <args>`` against the mock engine."""

    def _invoke(*args: str, answer: bool = False, confirm: StaticConfirmer | None = None):
        confirm = confirm or StaticConfirmer(answer)
        runner = CliRunner()
        return runner.invoke(
            cli,
            ["--config", str(settings_file), *args],
            obj={"runner": engine, "confirm": confirm},
        )

    return _invoke


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "ENVIRONMENT" in result.output
        assert "--force" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_no_arguments_is_usage_error(self):
        result = CliRunner().invoke(cli, [])
        assert result.exit_code == 1
        assert "Usage:" in result.output

    def test_unknown_environment(self):
        result = CliRunner().invoke(cli, ["staging", "up"])
        assert result.exit_code == 1
        assert "Usage:" in result.output

    def test_unknown_command(self, invoke):
        result = invoke("dev", "frobnicate")
        assert result.exit_code == 1
        assert "Usage:" in result.output
        assert "frobnicate" in result.output

    def test_missing_command_argument(self, invoke):
        result = invoke("dev", "shell")
        assert result.exit_code == 1
        assert "SERVICE" in result.output

    def test_command_help_needs_no_env_file(self, tmp_path: Path):
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "none.yml"), "dev", "up", "--help"])
        assert result.exit_code == 0
        assert "--build" in result.output

    def test_missing_env_file(self, invoke, settings_file: Path, engine):
        (settings_file.parent / ".env.development").unlink()
        result = invoke("dev", "status")
        assert result.exit_code == 1
        assert ".env.development" in result.output
        assert engine.call_count == 0

    def test_prod_without_env_file(self, invoke):
        result = invoke("prod", "up")
        assert result.exit_code == 1
        assert ".env.production" in result.output

    def test_session_without_error_or_session_exits_1(self, invoke, monkeypatch):
        from stackctl.core.use_cases import session as session_module

        monkeypatch.setattr(session_module, "open_session", lambda *a, **kw: session_module.SessionResult())
        result = invoke("dev", "status")
        assert result.exit_code == 1
        assert "Could not open a session" in result.output

    def test_engine_unavailable(self, settings_file: Path):
        engine = MockEngine(services=SERVICES, daemon_running=False)
        result = CliRunner().invoke(
            cli, ["--config", str(settings_file), "dev", "status"], obj={"runner": engine},
        )
        assert result.exit_code == 1
        assert "daemon" in result.output


class TestLifecycle:
    def test_up(self, invoke, engine):
        result = invoke("dev", "up")
        assert result.exit_code == 0, result.output
        assert "Environment started" in result.output
        assert "Database: absent" in result.output
        assert "Frontend: http://localhost:3100" in result.output
        assert "Backend: http://localhost:8000" in result.output
        assert engine.running == set(SERVICES)

    def test_up_twice(self, invoke, engine):
        assert invoke("dev", "up").exit_code == 0
        assert invoke("dev", "up").exit_code == 0
        assert engine.running == set(SERVICES)

    @pytest.mark.parametrize("args", [["-b", "dev", "up"], ["dev", "up", "--build"]])
    def test_up_build(self, invoke, engine, args):
        assert invoke(*args).exit_code == 0
        assert len(engine.calls_matching("build")) == 1
        assert not any("--build" in argv for argv in engine.calls_matching("up", "-d"))

    def test_up_unhealthy(self, invoke, engine):
        engine.on_exec("db", ["sh", "-c"], (1, "", "no response"))
        result = invoke("dev", "up", "--wait-attempts", "2", "--wait-interval", "0.01")
        assert result.exit_code == 1
        assert "did not become healthy after 2 attempts" in result.output

    def test_down_declined(self, invoke, engine):
        confirm = StaticConfirmer(False)
        invoke("dev", "up")
        result = invoke("dev", "down", confirm=confirm)
        assert result.exit_code == 0
        assert "Cancelled" in result.output
        assert confirm.prompts == ["Are you sure you want to stop the dev environment?"]
        assert not engine.calls_matching("down")
        assert engine.running == set(SERVICES)

    def test_down_confirmed(self, invoke, engine):
        invoke("dev", "up")
        result = invoke("dev", "down", answer=True)
        assert result.exit_code == 0
        assert engine.running == set()
        assert engine.has_volumes

    def test_down_forced_skips_prompt(self, invoke, engine):
        confirm = StaticConfirmer(False)
        result = invoke("dev", "down", "-f", confirm=confirm)
        assert result.exit_code == 0
        assert confirm.prompts == []
        assert engine.calls_matching("down", "--remove-orphans")

    def test_restart(self, invoke, engine):
        result = invoke("dev", "restart", "backend")
        assert result.exit_code == 0
        assert engine.calls_matching("restart", "backend")

    def test_restart_unknown_service(self, invoke):
        result = invoke("dev", "restart", "nope")
        assert result.exit_code == 1
        assert "Unknown service 'nope'" in result.output

    def test_status(self, invoke, engine):
        engine.running.add("db")
        engine.container_ids["db"] = "db-1"
        result = invoke("dev", "status")
        assert result.exit_code == 0
        assert "db" in result.output
        assert "running" in result.output
        assert "stopped" in result.output

    def test_status_json(self, invoke):
        invoke("dev", "up")
        result = invoke("dev", "status", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["environment"] == "dev"
        assert data["services"] == {name: "running" for name in SERVICES}

    def test_logs(self, invoke, engine):
        engine.log_lines["db"] = ["database system is ready"]
        result = invoke("dev", "logs", "db", "--no-follow")
        assert result.exit_code == 0
        assert "db  | database system is ready" in result.output

    def test_logs_engine_error_exits_1(self, invoke, engine):
        engine.log_exit = (1, "service \"db\" has no container")
        result = invoke("dev", "logs", "db", "--no-follow")
        assert result.exit_code == 1
        assert "has no container" in result.output

    def test_logs_unknown_service(self, invoke, engine):
        result = invoke("dev", "logs", "nope")
        assert result.exit_code == 1
        assert "Unknown service 'nope'" in result.output
        assert engine.call_count == 0

    def test_exec_passes_arguments_through(self, invoke, engine):
        engine.running.add("backend")
        result = invoke("dev", "exec", "backend", "ls", "-la", "/app")
        assert result.exit_code == 0
        assert engine.calls_matching("exec", "-T", "backend", "ls", "-la", "/app")

    def test_exec_prints_output(self, invoke, engine):
        engine.on_exec("backend", ["python", "-V"], (0, "Python 3.12.1", ""))
        result = invoke("dev", "exec", "backend", "python", "-V")
        assert result.exit_code == 0
        assert "Python 3.12.1" in result.output

    def test_exec_failure_exits_1(self, invoke, engine):
        engine.on_exec("backend", ["false"], (3, "", "failed hard"))
        result = invoke("dev", "exec", "backend", "false")
        assert result.exit_code == 1
        assert "failed hard" in result.output

    def test_exec_requires_command(self, invoke):
        assert invoke("dev", "exec", "backend").exit_code == 1

    def test_shell(self, invoke, engine):
        engine.running.add("backend")
        result = invoke("dev", "shell", "backend")
        assert result.exit_code == 0
        assert engine.calls_matching("exec", "backend", "bash")


class TestDatabaseCommands:
    @pytest.fixture(autouse=True)
    def _running(self, engine):
        engine.running.update(SERVICES)

    def test_migrate(self, invoke, engine):
        result = invoke("dev", "migrate", "accounts")
        assert result.exit_code == 0
        assert "Migrations completed" in result.output
        assert engine.calls_matching("manage.py", "migrate", "accounts", "--noinput")

    def test_migrate_failure(self, invoke, engine):
        engine.on_exec("backend", ["python", "manage.py", "migrate"], (1, "", "InconsistentMigrationHistory"))
        result = invoke("dev", "migrate")
        assert result.exit_code == 1
        assert not engine.calls_matching("--fake-initial")

    def test_makemigrations(self, invoke, engine):
        assert invoke("dev", "makemigrations", "accounts").exit_code == 0
        assert engine.calls_matching("manage.py", "makemigrations", "accounts")

    def test_init_db(self, invoke, engine):
        engine.on_exec("db", ["psql"], (0, "t", ""))
        engine.on_exec("backend", ["python", "manage.py", "migrate"], (1, "", "relation already exists"), (0, "", ""))
        result = invoke("dev", "init-db")
        assert result.exit_code == 0
        assert "State: conflicted" in result.output
        assert "normal → fake_initial" in result.output

    def test_fix_migrations(self, invoke, engine):
        assert invoke("dev", "fix-migrations").exit_code == 0
        assert engine.calls_matching("migrate", "--noinput", "--fake-initial")

    def test_test_command(self, invoke, engine):
        result = invoke("dev", "test", "accounts", "--keepdb")
        assert result.exit_code == 0
        assert engine.calls_matching("manage.py", "test", "accounts", "--keepdb")


class TestDestructive:
    def test_reset_declined_changes_nothing(self, invoke, engine):
        confirm = StaticConfirmer(False)
        result = invoke("dev", "reset", confirm=confirm)
        assert result.exit_code == 0
        assert confirm.prompts == ["This will remove all data and volumes. Are you sure?"]
        assert engine.has_volumes
        assert not engine.calls_matching("down")

    def test_reset_confirmed(self, invoke, engine):
        result = invoke("dev", "reset", answer=True)
        assert result.exit_code == 0
        assert not engine.has_volumes
        assert engine.calls_matching("down", "--remove-orphans", "-v")

    @pytest.mark.parametrize("args", [["-f", "dev", "reset"], ["dev", "reset", "--force"]])
    def test_reset_forced(self, invoke, engine, args):
        confirm = StaticConfirmer(False)
        assert invoke(*args, confirm=confirm).exit_code == 0
        assert confirm.prompts == []
        assert not engine.has_volumes

    def test_clean(self, invoke, engine):
        result = invoke("dev", "clean", "-f")
        assert result.exit_code == 0
        assert engine.calls_matching("down", "--remove-orphans")
        assert engine.call_log[-1] == ["docker", "system", "prune", "-f"]

    def test_clean_declined(self, invoke, engine):
        assert invoke("dev", "clean").exit_code == 0
        assert engine.call_count == 0

    def test_clean_caches(self, invoke, settings_file: Path):
        root = settings_file.parent
        (root / "frontend" / "node_modules" / "react").mkdir(parents=True)
        (root / "backend" / "app" / "__pycache__").mkdir(parents=True)
        result = invoke("dev", "clean", "--caches", "-f")
        assert result.exit_code == 0
        assert not (root / "frontend" / "node_modules").exists()
        assert not (root / "backend" / "app" / "__pycache__").exists()
        assert (root / "backend" / "app").exists()

    def test_nuke_declined(self, invoke, engine):
        confirm = StaticConfirmer(False)
        assert invoke("dev", "nuke", confirm=confirm).exit_code == 0
        assert "ALL Docker containers" in confirm.prompts[0]
        assert engine.call_count == 0

    def test_nuke_forced(self, invoke, engine):
        invoke("dev", "up")
        result = invoke("dev", "nuke", "--force")
        assert result.exit_code == 0
        assert "completely reset" in result.output
        assert engine.running == set()
        assert not engine.has_volumes


class TestFixPermissions:
    def test_creates_directories(self, invoke, settings_file: Path):
        result = invoke("dev", "fix-permissions")
        assert result.exit_code == 0
        assert (settings_file.parent / "data" / "uploads").is_dir()

    def test_invalid_settings(self, invoke, settings_file: Path):
        settings_file.write_text("permission_paths: 3\n")
        result = invoke("dev", "fix-permissions")
        assert result.exit_code == 1


# ── Real subprocesses against stand-in engine binaries ──────────────

DAEMON_DOWN = "Cannot connect to the Docker daemon at unix:///var/run/docker.sock. Is the docker daemon running?"


@pytest.fixture
def bin_dir(tmp_path: Path, monkeypatch) -> Path:
    """A directory that is the whole PATH, for fake engine executables."""
    path = tmp_path / "bin"
    path.mkdir()
    monkeypatch.setenv("PATH", str(path))
    return path


def _executable(bin_dir: Path, name: str, body: str) -> None:
    script = bin_dir / name
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(0o755)


def _run(settings_file: Path, *args: str):
    return CliRunner().invoke(
        cli,
        ["--config", str(settings_file), *args],
        obj={"confirm": StaticConfirmer(False)},
    )


@pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
class TestHostEngine:
    def test_logs_daemon_down_exits_1(self, settings_file: Path, bin_dir: Path):
        _executable(bin_dir, "docker", (
            'if [ "$1 $2" = "compose version" ]; then echo "Docker Compose version v2.24.0"; exit 0; fi\n'
            f'echo "{DAEMON_DOWN}" >&2\n'
            "exit 1\n"
        ))
        result = _run(settings_file, "dev", "logs", "--no-follow")
        assert result.exit_code == 1
        assert "Is the docker daemon running?" in result.output

    def test_logs_success_exits_0(self, settings_file: Path, bin_dir: Path):
        _executable(bin_dir, "docker", 'echo "db  | ready"\nexit 0\n')
        result = _run(settings_file, "dev", "logs", "db", "--no-follow")
        assert result.exit_code == 0
        assert "db  | ready" in result.output

    def test_standalone_compose_without_plugin(self, settings_file: Path, bin_dir: Path):
        _executable(bin_dir, "docker", "echo \"docker: 'compose' is not a docker command.\" >&2\nexit 1\n")
        _executable(bin_dir, "docker-compose", (
            'case "$*" in\n'
            '  *"ps --services"*) echo db ;;\n'
            "esac\n"
            "exit 0\n"
        ))
        result = _run(settings_file, "dev", "status")
        assert result.exit_code == 0, result.output
        assert "not a docker command" not in result.output
        assert "running" in result.output
        assert "stopped" in result.output

    def test_no_compose_at_all(self, settings_file: Path, bin_dir: Path):
        _executable(bin_dir, "docker", "exit 1\n")
        result = _run(settings_file, "dev", "status")
        assert result.exit_code == 1
        assert "docker-compose was found" in result.output
