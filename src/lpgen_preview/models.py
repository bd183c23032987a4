"""Preview session state."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from lpgen_preview.errors import InvalidTransitionError

if TYPE_CHECKING:
    from lpgen_preview.process import ProcessHandle

DEFAULT_LOG_BUFFER_SIZE = 200


class PreviewStatus(str, Enum):
    """Status of a preview session."""

    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (PreviewStatus.FAILED, PreviewStatus.STOPPED)

    @property
    def is_active(self) -> bool:
        return self in (PreviewStatus.STARTING, PreviewStatus.RUNNING)


_ALLOWED_TRANSITIONS: dict[PreviewStatus, frozenset[PreviewStatus]] = {
    PreviewStatus.STARTING: frozenset(
        {PreviewStatus.RUNNING, PreviewStatus.FAILED, PreviewStatus.STOPPED}
    ),
    PreviewStatus.RUNNING: frozenset({PreviewStatus.FAILED, PreviewStatus.STOPPED}),
    PreviewStatus.FAILED: frozenset(),
    PreviewStatus.STOPPED: frozenset(),
}


def _new_log_buffer() -> deque[str]:
    return deque(maxlen=DEFAULT_LOG_BUFFER_SIZE)


@dataclass
class PreviewSession:
    """A tracked dev server for one project, bound to one allocated port.

    Sessions only move forward through their state machine. A failed or
    stopped session is never revived; starting the project again creates a
    new session with a new ``id``.
    """

    project_id: str
    port: int
    host: str = "localhost"
    status: PreviewStatus = PreviewStatus.STARTING
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    ready_at: datetime | None = None
    stopped_at: datetime | None = None
    error: str | None = None
    exit_code: int | None = None
    logs: deque[str] = field(default_factory=_new_log_buffer)
    process: ProcessHandle | None = field(default=None, repr=False)
    port_released: bool = False

    @classmethod
    def create(
        cls,
        project_id: str,
        port: int,
        host: str = "localhost",
        log_buffer_size: int = DEFAULT_LOG_BUFFER_SIZE,
    ) -> PreviewSession:
        """Create a ``starting`` session with a bounded log buffer."""
        return cls(
            project_id=project_id,
            port=port,
            host=host,
            logs=deque(maxlen=log_buffer_size),
        )

    @property
    def url(self) -> str | None:
        """Preview URL, available once the dev server is running."""
        if self.status is not PreviewStatus.RUNNING:
            return None
        return f"http://{self.host}:{self.port}"

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    @property
    def uptime_seconds(self) -> float:
        end = self.stopped_at or datetime.now(UTC)
        return (end - self.started_at).total_seconds()

    @property
    def startup_seconds(self) -> float | None:
        if self.ready_at is None:
            return None
        return (self.ready_at - self.started_at).total_seconds()

    def can_transition(self, target: PreviewStatus) -> bool:
        return target in _ALLOWED_TRANSITIONS[self.status]

    def transition(self, target: PreviewStatus, error: str | None = None) -> None:
        """Move the session to ``target``.

        Raises:
            InvalidTransitionError: If the state machine forbids the change
        """
        if not self.can_transition(target):
            raise InvalidTransitionError(self.status, target)

        now = datetime.now(UTC)
        if target is PreviewStatus.RUNNING:
            self.ready_at = now
        elif target.is_terminal:
            self.stopped_at = now
        if error is not None:
            self.error = error
        self.status = target

    def append_log(self, line: str) -> None:
        """Append a captured output line, evicting the oldest when full."""
        self.logs.append(line)

    def tail(self, lines: int | None = None) -> list[str]:
        """Most recent captured lines, oldest first."""
        if lines is None:
            return list(self.logs)
        if lines <= 0:
            return []
        return list(self.logs)[-lines:]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "status": self.status.value,
            "port": self.port,
            "url": self.url,
            "pid": self.pid,
            "started_at": self.started_at.isoformat(),
            "ready_at": self.ready_at.isoformat() if self.ready_at else None,
            "error": self.error,
            "exit_code": self.exit_code,
        }
