"""
Domain models — Pydantic types for the orchestrator.

All models are re-exported here for convenient access:

    from stackctl.core.models import Outcome, EnvironmentProfile, ServiceManifest
"""

from stackctl.core.models.environment import Environment, EnvironmentProfile
from stackctl.core.models.migration import MigrationMode, MigrationState
from stackctl.core.models.outcome import ErrorKind, Outcome
from stackctl.core.models.service import Service, ServiceManifest
from stackctl.core.models.settings import (
    Endpoint,
    MigrationSettings,
    ProfileSettings,
    ReadinessSettings,
    StackSettings,
)

__all__ = [
    "Endpoint",
    "Environment",
    "EnvironmentProfile",
    "ErrorKind",
    "MigrationMode",
    "MigrationSettings",
    "MigrationState",
    "Outcome",
    "ProfileSettings",
    "ReadinessSettings",
    "Service",
    "ServiceManifest",
    "StackSettings",
]
