"""Adapters — bindings to the container engine.

Public re-exports for convenient access.
"""

from stackctl.adapters.containers.compose import ComposeRuntime, LogStream
from stackctl.adapters.mock import MockEngine
from stackctl.adapters.shell.command import CommandRunner, SubprocessRunner

__all__ = [
    "CommandRunner",
    "ComposeRuntime",
    "LogStream",
    "MockEngine",
    "SubprocessRunner",
]
