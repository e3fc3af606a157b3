"""
Tests for core models — Outcome, Environment, Service manifest, settings.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from stackctl.core.models import (
    Endpoint,
    Environment,
    EnvironmentProfile,
    ErrorKind,
    Outcome,
    ReadinessSettings,
    Service,
    ServiceManifest,
    StackSettings,
)

# ── Outcome ─────────────────────────────────────────────────────────


class TestOutcome:
    def test_success(self):
        o = Outcome.success("done")
        assert o.ok
        assert not o.failed
        assert o.output == "done"
        assert o.kind is None

    def test_recoverable_defaults_to_command_failed(self):
        o = Outcome.recoverable("exit 2")
        assert o.failed
        assert not o.fatal
        assert o.kind == ErrorKind.COMMAND_FAILED

    def test_fatal_failure(self):
        o = Outcome.fatal_failure("no daemon", kind=ErrorKind.ENGINE_UNAVAILABLE)
        assert o.failed
        assert o.fatal
        assert o.kind == ErrorKind.ENGINE_UNAVAILABLE

    def test_user_aborted_is_not_fatal(self):
        o = Outcome.user_aborted()
        assert o.aborted
        assert not o.fatal
        assert o.kind == ErrorKind.USER_ABORTED

    def test_escalate_keeps_output(self):
        o = Outcome.recoverable("boom", output="partial", stderr="trace", exit_code=1)
        fatal = o.escalate(ErrorKind.MIGRATION_FATAL)
        assert fatal.fatal
        assert fatal.kind == ErrorKind.MIGRATION_FATAL
        assert fatal.reason == "boom"
        assert fatal.output == "partial"
        assert fatal.stderr == "trace"
        # original untouched
        assert not o.fatal

    def test_escalate_with_reason(self):
        fatal = Outcome.recoverable("boom").escalate(reason="worse")
        assert fatal.reason == "worse"
        assert fatal.kind == ErrorKind.COMMAND_FAILED

    def test_to_dict(self):
        o = Outcome.recoverable("bad", exit_code=3, metadata={"service": "db"})
        d = o.to_dict()
        assert d == {
            "status": "recoverable",
            "reason": "bad",
            "kind": "command_failed",
            "exit_code": 3,
            "service": "db",
        }

    def test_stream_excluded_from_dump(self):
        o = Outcome.success(stream=["a", "b"])
        assert o.stream == ["a", "b"]
        assert "stream" not in o.model_dump()


# ── Environment ─────────────────────────────────────────────────────


class TestEnvironment:
    @pytest.mark.parametrize("name,expected", [
        ("dev", Environment.DEVELOPMENT),
        ("development", Environment.DEVELOPMENT),
        ("PROD", Environment.PRODUCTION),
        ("production", Environment.PRODUCTION),
    ])
    def test_parse(self, name, expected):
        assert Environment.parse(name) == expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="staging"):
            Environment.parse("staging")

    def test_short_name(self):
        assert Environment.DEVELOPMENT.short_name == "dev"
        assert Environment.PRODUCTION.short_name == "prod"

    def test_profile_is_frozen(self, tmp_path: Path):
        profile = EnvironmentProfile(
            environment=Environment.DEVELOPMENT,
            project_root=tmp_path,
            env_file=tmp_path / ".env.development",
            variables={"A": "1"},
        )
        assert profile.name == "dev"
        assert profile.get("A") == "1"
        assert profile.get("B", "x") == "x"
        with pytest.raises(ValidationError):
            profile.env_file = tmp_path / "other"


# ── Service manifest ────────────────────────────────────────────────


def _manifest(**deps: list[str]) -> ServiceManifest:
    return ServiceManifest(services={
        name: Service(name=name, depends_on=on) for name, on in deps.items()
    })


class TestServiceManifest:
    def test_depends_on_deduplicated(self):
        svc = Service(name="web", depends_on=["db", "cache", "db"])
        assert svc.depends_on == ["db", "cache"]

    def test_has_healthcheck(self):
        assert Service(name="db", healthcheck=["pg_isready"]).has_healthcheck
        assert not Service(name="web").has_healthcheck

    @pytest.mark.parametrize(
        "ports, expected",
        [
            (["8000:8000"], "8000"),
            (["127.0.0.1:8080:80/tcp"], "8080"),
            (["3000", "5173:5173"], "5173"),
            (["3000"], None),
            ([], None),
        ],
    )
    def test_published_port(self, ports, expected):
        assert Service(name="web", ports=ports).published_port == expected

    def test_undeclared_dependency_rejected(self):
        with pytest.raises(ValidationError, match="undeclared service 'cache'"):
            _manifest(web=["cache"])

    def test_cycle_rejected_and_named(self):
        with pytest.raises(ValidationError, match="Dependency cycle: a -> b -> a"):
            _manifest(a=["b"], b=["a"])

    def test_self_dependency_is_a_cycle(self):
        with pytest.raises(ValidationError, match="Dependency cycle"):
            _manifest(a=["a"])

    def test_startup_layers(self):
        m = _manifest(db=[], redis=[], backend=["db", "redis"], worker=["redis"], frontend=["backend"])
        assert m.startup_layers() == [["db", "redis"], ["backend", "worker"], ["frontend"]]

    def test_startup_layers_empty(self):
        assert ServiceManifest().startup_layers() == []

    def test_dependencies_of(self):
        m = _manifest(db=[], backend=["db"], frontend=["backend"])
        assert m.dependencies_of(m.names) == {"db", "backend"}

    def test_lookup_helpers(self):
        m = _manifest(db=[], web=["db"])
        assert "db" in m
        assert "cache" not in m
        assert m.get("web").depends_on == ["db"]
        assert m.get("cache") is None
        assert m.unknown(["db", "cache", "queue"]) == ["cache", "queue"]


# ── Settings ────────────────────────────────────────────────────────


class TestStackSettings:
    def test_defaults(self):
        s = StackSettings()
        assert s.profile("dev").env_file == ".env.development"
        assert s.profile("prod").compose_files == ["docker-compose.yml", "docker-compose.prod.yml"]
        assert s.profile("staging") is None
        assert s.migrations.app_service == "backend"
        assert s.migrations.db_service == "db"
        assert s.readiness.max_attempts == 30
        assert [e.label for e in s.endpoints] == ["Frontend", "Backend"]

    def test_readiness_bounds(self):
        with pytest.raises(ValidationError):
            ReadinessSettings(max_attempts=0)
        with pytest.raises(ValidationError):
            ReadinessSettings(interval=0)

    def test_endpoint_needs_port_or_service(self):
        assert Endpoint(label="API", service="backend").port == ""
        with pytest.raises(ValidationError, match="needs a port or a service"):
            Endpoint(label="API")
