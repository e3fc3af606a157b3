"""
Settings model — the optional stackctl.yml project file.

Every field has a default matching the stack this tool was written for
(Postgres ``db``, Django ``backend``, React ``frontend``), so a project
without a stackctl.yml still works.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class ProfileSettings(BaseModel):
    """Files that make up one environment profile."""

    env_file: str
    compose_files: list[str] = Field(default_factory=list)


def _default_profiles() -> dict[str, ProfileSettings]:
    return {
        "dev": ProfileSettings(
            env_file=".env.development",
            compose_files=["docker-compose.yml", "docker-compose.dev.yml"],
        ),
        "prod": ProfileSettings(
            env_file=".env.production",
            compose_files=["docker-compose.yml", "docker-compose.prod.yml"],
        ),
    }


class MigrationSettings(BaseModel):
    """Where and how schema migrations run."""

    app_service: str = "backend"
    manage_command: list[str] = Field(default_factory=lambda: ["python", "manage.py"])
    test_command: list[str] = Field(default_factory=lambda: ["python", "manage.py", "test"])
    db_service: str = "db"
    db_user_var: str = "POSTGRES_USER"
    db_name_var: str = "POSTGRES_DB"
    db_user_default: str = "postgres"
    db_name_default: str = "postgres"
    history_table: str = "django_migrations"
    conflict_patterns: list[str] = Field(
        default_factory=lambda: [
            r"InconsistentMigrationHistory",
            r"DuplicateTable",
            r"already exists",
        ]
    )


class ReadinessSettings(BaseModel):
    """Polling budget for health checks."""

    max_attempts: int = Field(default=30, ge=1)
    interval: float = Field(default=1.0, gt=0)
    healthchecks: dict[str, list[str]] = Field(default_factory=dict)  # per-service override


class Endpoint(BaseModel):
    """A URL printed after a successful ``up``.

    An explicit ``port`` wins; otherwise the first host port published by
    ``service`` in the compose manifest is used.
    """

    label: str
    port: str = ""                   # may reference ${VAR:-default}
    service: str | None = None       # published port of this compose service
    host: str = "localhost"
    scheme: str = "http"

    @model_validator(mode="after")
    def _port_source(self) -> Endpoint:
        if not self.port and not self.service:
            raise ValueError(f"endpoint '{self.label}' needs a port or a service")
        return self


def _default_endpoints() -> list[Endpoint]:
    return [
        Endpoint(label="Frontend", port="${FRONTEND_PORT:-3000}"),
        Endpoint(label="Backend", port="${BACKEND_PORT:-8000}"),
    ]


class StackSettings(BaseModel):
    """Root settings object — loaded from stackctl.yml or defaulted."""

    version: int = 1
    name: str = "stack"

    environments: dict[str, ProfileSettings] = Field(default_factory=_default_profiles)
    migrations: MigrationSettings = Field(default_factory=MigrationSettings)
    readiness: ReadinessSettings = Field(default_factory=ReadinessSettings)
    endpoints: list[Endpoint] = Field(default_factory=_default_endpoints)

    # Host directories the frontend container writes into
    permission_paths: list[str] = Field(
        default_factory=lambda: ["../frontend", "../frontend/.npm", "../frontend/node_modules"]
    )
    # Local build caches removed by ``clean --caches``
    cache_paths: list[str] = Field(
        default_factory=lambda: ["../frontend/node_modules", "../frontend/.npm", "../frontend/build"]
    )
    cache_globs: list[str] = Field(default_factory=lambda: ["../backend/**/__pycache__"])

    def profile(self, short_name: str) -> ProfileSettings | None:
        return self.environments.get(short_name)
