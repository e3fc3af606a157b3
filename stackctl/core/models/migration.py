"""Migration state — derived by probing the database, never stored."""

from __future__ import annotations

from enum import Enum


class MigrationState(str, Enum):
    ABSENT = "absent"            # no schema history yet
    INITIALIZED = "initialized"  # history table present
    CONFLICTED = "conflicted"    # history disagrees with the schema


class MigrationMode(str, Enum):
    NORMAL = "normal"
    FAKE_INITIAL = "fake_initial"
