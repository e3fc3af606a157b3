"""
Outcome model — the result contract of every component operation.

Components never raise to their callers. They return an Outcome that is
either a success, a recoverable failure (the caller may retry or report),
or a fatal failure (the command must stop). The CLI is the only place that
turns an Outcome into user-facing text and an exit code.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ErrorKind(str, Enum):
    """Failure taxonomy shared by all components."""

    CONFIG_NOT_FOUND = "config_not_found"
    INVALID_CONFIG = "invalid_config"
    INVALID_MANIFEST = "invalid_manifest"
    ENGINE_UNAVAILABLE = "engine_unavailable"
    COMMAND_FAILED = "command_failed"
    UNKNOWN_SERVICE = "unknown_service"
    SERVICE_UNHEALTHY = "service_unhealthy"
    MIGRATION_CONFLICT = "migration_conflict"
    MIGRATION_FATAL = "migration_fatal"
    USER_ABORTED = "user_aborted"
    CANCELLED = "cancelled"


class Outcome(BaseModel):
    """Result of a component operation.

    ``output``/``stderr``/``exit_code`` carry what the underlying engine
    process produced, when there was one. ``stream`` is only set by
    operations that hand back a lazy line sequence (log streaming).
    """

    status: Literal["ok", "recoverable", "fatal"] = "ok"
    reason: str = ""
    kind: ErrorKind | None = None

    output: str = ""
    stderr: str = ""
    exit_code: int | None = None

    ended_at: str = Field(default_factory=_now_iso)
    metadata: dict[str, Any] = Field(default_factory=dict)
    stream: Any = Field(default=None, exclude=True)

    @property
    def ok(self) -> bool:
        """Whether the operation succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the operation failed, recoverably or not."""
        return self.status != "ok"

    @property
    def fatal(self) -> bool:
        return self.status == "fatal"

    @property
    def aborted(self) -> bool:
        """Whether the user declined a confirmation (not an error)."""
        return self.kind == ErrorKind.USER_ABORTED

    @classmethod
    def success(cls, output: str = "", **kwargs: Any) -> Outcome:
        """Create a success outcome."""
        return cls(status="ok", output=output, **kwargs)

    @classmethod
    def recoverable(cls, reason: str, kind: ErrorKind = ErrorKind.COMMAND_FAILED, **kwargs: Any) -> Outcome:
        """Create a recoverable failure."""
        return cls(status="recoverable", reason=reason, kind=kind, **kwargs)

    @classmethod
    def fatal_failure(cls, reason: str, kind: ErrorKind, **kwargs: Any) -> Outcome:
        """Create a fatal failure."""
        return cls(status="fatal", reason=reason, kind=kind, **kwargs)

    @classmethod
    def user_aborted(cls, reason: str = "Cancelled by user") -> Outcome:
        """Create the outcome for a declined confirmation."""
        return cls(status="recoverable", reason=reason, kind=ErrorKind.USER_ABORTED)

    def escalate(self, kind: ErrorKind | None = None, reason: str | None = None) -> Outcome:
        """Return a fatal copy of this outcome, keeping captured output."""
        return self.model_copy(update={
            "status": "fatal",
            "kind": kind or self.kind,
            "reason": reason if reason is not None else self.reason,
        })

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status}
        if self.reason:
            data["reason"] = self.reason
        if self.kind is not None:
            data["kind"] = self.kind.value
        if self.exit_code is not None:
            data["exit_code"] = self.exit_code
        if self.metadata:
            data.update(self.metadata)
        return data
