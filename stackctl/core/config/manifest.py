"""
Compose manifest loader — reads compose files into a ServiceManifest.

Overlay files are merged in order, later files overriding service keys
of earlier ones. Only what the orchestrator needs is kept: names,
health checks, dependencies, and published ports.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from stackctl.core.config.loader import ConfigError, interpolate
from stackctl.core.models.environment import EnvironmentProfile
from stackctl.core.models.service import Service, ServiceManifest

logger = logging.getLogger(__name__)


class ManifestError(ConfigError):
    """Raised when a compose manifest cannot be read or is inconsistent."""


def _read_compose(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ManifestError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid YAML in {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ManifestError(f"Expected a YAML mapping in {path}")
    services = raw.get("services") or {}
    if not isinstance(services, dict):
        raise ManifestError(f"'services' must be a mapping in {path}")
    return services


def _merge_services(files: list[Path]) -> dict[str, dict[str, Any]]:
    merged: dict[str, dict[str, Any]] = {}
    for path in files:
        for name, spec in _read_compose(path).items():
            spec = spec or {}
            if not isinstance(spec, dict):
                raise ManifestError(f"Service '{name}' in {path} is not a mapping")
            merged.setdefault(name, {}).update(spec)
    return merged


def parse_healthcheck(raw: Any, variables: dict[str, str]) -> list[str]:
    """Turn a compose ``healthcheck`` block into an argv list.

    Supported ``test`` forms:
        ["CMD", "redis-cli", "ping"]      → ["redis-cli", "ping"]
        ["CMD-SHELL", "pg_isready ..."]   → ["sh", "-c", "pg_isready ..."]
        "pg_isready ..."                  → ["sh", "-c", "pg_isready ..."]
        ["NONE"] or disable: true         → []
    """
    if not isinstance(raw, dict) or raw.get("disable"):
        return []

    test = raw.get("test")
    if not test:
        return []

    if isinstance(test, str):
        return ["sh", "-c", interpolate(test, variables)]

    parts = [interpolate(str(p), variables) for p in test]
    head, rest = parts[0], parts[1:]
    if head == "NONE":
        return []
    if head == "CMD-SHELL":
        return ["sh", "-c", " ".join(rest)]
    if head == "CMD":
        return rest
    return parts


def _parse_depends_on(raw: Any) -> list[str]:
    # list form: [db, redis]; mapping form: {db: {condition: service_healthy}}
    if isinstance(raw, dict):
        return [str(k) for k in raw]
    if isinstance(raw, list):
        return [str(k) for k in raw]
    return []


def _parse_ports(raw: Any, variables: dict[str, str]) -> list[str]:
    ports: list[str] = []
    for item in raw or []:
        if isinstance(item, dict):
            published = item.get("published", "")
            target = item.get("target", "")
            ports.append(f"{published}:{target}" if published else str(target))
        else:
            ports.append(interpolate(str(item), variables))
    return ports


def load_manifest(
    profile: EnvironmentProfile,
    healthcheck_overrides: dict[str, list[str]] | None = None,
    healthcheck_fallbacks: dict[str, list[str]] | None = None,
) -> ServiceManifest:
    """Build the service manifest for an environment profile.

    A service's health check comes from ``healthcheck_overrides``, then
    from the compose file, then from ``healthcheck_fallbacks`` when the compose
    file has no ``healthcheck`` block for the service.

    Raises:
        ManifestError: Unreadable files, or an invalid dependency graph.
    """
    overrides = healthcheck_overrides or {}
    fallbacks = healthcheck_fallbacks or {}
    merged = _merge_services(list(profile.compose_files))

    services: dict[str, Service] = {}
    for name, spec in merged.items():
        healthcheck = overrides.get(name) or parse_healthcheck(spec.get("healthcheck"), profile.variables)
        if not healthcheck and "healthcheck" not in spec:
            healthcheck = fallbacks.get(name, [])
        services[name] = Service(
            name=name,
            healthcheck=healthcheck,
            depends_on=_parse_depends_on(spec.get("depends_on")),
            ports=_parse_ports(spec.get("ports"), profile.variables),
        )

    try:
        manifest = ServiceManifest(services=services)
    except ValidationError as e:
        raise ManifestError(f"Invalid service manifest: {e.errors()[0]['msg']}") from e

    logger.debug("Manifest services: %s", ", ".join(manifest.names))
    return manifest
