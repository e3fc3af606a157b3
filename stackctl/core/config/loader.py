"""
Configuration loader — stackctl.yml settings and environment profiles.

Two jobs:

1. Read the optional stackctl.yml into a validated ``StackSettings``.
2. Resolve an environment name (dev/prod) into an immutable
   ``EnvironmentProfile``: env file variables plus the ordered list of
   compose files to apply.

Nothing here touches ``os.environ``. The resolved mapping is returned
and passed explicitly to whoever spawns processes.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import yaml

from stackctl.core.models.environment import Environment, EnvironmentProfile
from stackctl.core.models.settings import StackSettings

logger = logging.getLogger(__name__)

# Default settings filename
SETTINGS_FILE = "stackctl.yml"

# $$ is an escaped dollar; ${VAR}, ${VAR:-default}, ${VAR-default} and $VAR expand
_VAR_RE = re.compile(
    r"\$\$"
    r"|\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<op>:?-)(?P<default>[^}]*))?\}"
    r"|\$(?P<bare>[A-Za-z_][A-Za-z0-9_]*)"
)


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""


class ConfigNotFound(ConfigError):
    """Raised when a required configuration file does not exist."""


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Search for stackctl.yml starting from the given directory, walking up."""
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / SETTINGS_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_settings(path: Path | None = None) -> StackSettings:
    """Load and validate stackctl.yml.

    Args:
        path: Explicit settings path. None means "use defaults".

    Raises:
        ConfigNotFound: If an explicit path does not exist.
        ConfigError: If the file is not valid YAML or fails validation.
    """
    if path is None:
        logger.debug("No %s, using built-in defaults", SETTINGS_FILE)
        return StackSettings()

    if not path.is_file():
        raise ConfigNotFound(f"Settings file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        settings = StackSettings.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.info("Loaded settings '%s' from %s", settings.name, path)
    return settings


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a KEY=value env file.

    Handles:
    - KEY=value
    - KEY="value" / KEY='value'
    - export KEY=value
    - Comments (#) and empty lines
    """
    result: dict[str, str] = {}
    content = path.read_text(encoding="utf-8")

    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("export "):
            line = line[7:].strip()

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]

        result[key] = value

    return result


def interpolate(value: str, variables: dict[str, str]) -> str:
    """Expand variables the way compose does.

    ``${VAR:-default}`` falls back when VAR is unset or empty,
    ``${VAR-default}`` only when it is unset. ``$$`` is a literal ``$``
    left for the container shell.
    """

    def _sub(match: re.Match[str]) -> str:
        if match.group(0) == "$$":
            return "$"
        found = variables.get(match.group("name") or match.group("bare"))
        if match.group("op") == "-":
            return match.group("default") if found is None else found
        return found or match.group("default") or ""

    return _VAR_RE.sub(_sub, value)


def load_environment(
    name: str,
    project_root: Path,
    settings: StackSettings | None = None,
) -> EnvironmentProfile:
    """Resolve an environment name into a frozen profile.

    Args:
        name: ``dev``/``prod`` (or ``development``/``production``).
        project_root: Directory holding the env and compose files.
        settings: Loaded settings (defaults if None).

    Raises:
        ConfigError: Unknown environment, or no profile configured for it.
        ConfigNotFound: The env file or the base compose file is missing.
    """
    settings = settings or StackSettings()
    try:
        environment = Environment.parse(name)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    profile = settings.profile(environment.short_name)
    if profile is None:
        raise ConfigError(f"No profile configured for environment '{environment.short_name}'")

    root = project_root.resolve()
    env_file = root / profile.env_file
    if not env_file.is_file():
        raise ConfigNotFound(f"Environment file {profile.env_file} not found in {root}")

    try:
        variables = parse_env_file(env_file)
    except OSError as e:
        raise ConfigError(f"Cannot read {env_file}: {e}") from e

    compose_files: list[Path] = []
    for index, rel in enumerate(profile.compose_files):
        path = root / rel
        if path.is_file():
            compose_files.append(path)
        elif index == 0:
            raise ConfigNotFound(f"Compose file {rel} not found in {root}")
        else:
            logger.debug("Skipping missing compose overlay %s", rel)

    logger.info(
        "Resolved %s: %d variables, %d compose file(s)",
        environment.value, len(variables), len(compose_files),
    )
    return EnvironmentProfile(
        environment=environment,
        project_root=root,
        env_file=env_file,
        compose_files=tuple(compose_files),
        variables=variables,
    )
