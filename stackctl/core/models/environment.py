"""
Environment model — the deployment profile a command runs against.

Resolved once per invocation from the CLI argument and frozen after
that. The variable mapping is handed explicitly to every child process;
nothing is exported into this process's own environment.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class Environment(str, Enum):
    """Supported deployment profiles."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @property
    def short_name(self) -> str:
        return _SHORT_NAMES[self]

    @classmethod
    def parse(cls, name: str) -> Environment:
        """Accept either the short CLI alias or the full profile name."""
        key = name.strip().lower()
        for env, alias in _SHORT_NAMES.items():
            if key in (alias, env.value):
                return env
        raise ValueError(f"Unknown environment '{name}'. Valid: dev, prod")


_SHORT_NAMES = {
    Environment.DEVELOPMENT: "dev",
    Environment.PRODUCTION: "prod",
}


class EnvironmentProfile(BaseModel):
    """A resolved environment: env file, compose files, and variables."""

    model_config = ConfigDict(frozen=True)

    environment: Environment
    project_root: Path
    env_file: Path
    compose_files: tuple[Path, ...] = ()
    variables: dict[str, str] = Field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.environment.short_name

    def get(self, key: str, default: str = "") -> str:
        """Look up a resolved variable."""
        return self.variables.get(key, default)
