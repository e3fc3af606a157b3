"""
Shared test fixtures and configuration.

``stack_dir`` lays out a small but realistic project: a dev env file, a
base compose file with db/redis/backend/frontend, and a stackctl.yml
with a fast readiness budget so health-check loops finish quickly.
"""

import textwrap
from pathlib import Path

import pytest

from stackctl.adapters.mock import MockEngine
from stackctl.core.use_cases.session import Session, open_session

SERVICES = ["db", "redis", "backend", "frontend"]

COMPOSE = textwrap.dedent("""\
    services:
      db:
        image: postgres:15
        healthcheck:
          test: ["CMD-SHELL", "pg_isready -U ${POSTGRES_USER}"]
          interval: 5s
      redis:
        image: redis:7
        healthcheck:
          test: ["CMD", "redis-cli", "ping"]
      backend:
        build: ./backend
        depends_on:
          db:
            condition: service_healthy
          redis:
            condition: service_healthy
        ports:
          - "${BACKEND_PORT:-8000}:8000"
      frontend:
        build: ./frontend
        depends_on: [backend]
        ports:
          - "3000:3000"
""")

ENV_DEV = textwrap.dedent("""\
    # Development settings
    POSTGRES_USER=app
    export POSTGRES_DB="appdb"
    FRONTEND_PORT=3100
""")

SETTINGS = textwrap.dedent("""\
    name: test-stack
    readiness:
      max_attempts: 3
      interval: 0.01
    permission_paths:
      - data/uploads
    cache_paths:
      - frontend/node_modules
    cache_globs:
      - "backend/**/__pycache__"
""")


@pytest.fixture
def stack_dir(tmp_path: Path) -> Path:
    """A project directory with env file, compose file and stackctl.yml."""
    (tmp_path / "docker-compose.yml").write_text(COMPOSE)
    (tmp_path / ".env.development").write_text(ENV_DEV)
    (tmp_path / "stackctl.yml").write_text(SETTINGS)
    return tmp_path


@pytest.fixture
def settings_file(stack_dir: Path) -> Path:
    return stack_dir / "stackctl.yml"


@pytest.fixture
def engine() -> MockEngine:
    """A mock engine that knows the fixture's services."""
    return MockEngine(services=list(SERVICES))


@pytest.fixture
def session(settings_file: Path, engine: MockEngine) -> Session:
    """A dev session wired to the mock engine."""
    result = open_session("dev", config_path=settings_file, runner=engine)
    assert result.error is None, result.error
    return result.session
