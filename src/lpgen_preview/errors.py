"""Preview manager exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lpgen_preview.models import PreviewSession, PreviewStatus


class PreviewError(Exception):
    """Base class for preview manager errors."""


class NoPortsAvailableError(PreviewError):
    """Every port in the pool is held by a live session."""

    def __init__(self, start: int, end: int) -> None:
        super().__init__(f"No available ports ({start}-{end})")
        self.start = start
        self.end = end


class SessionStartError(PreviewError):
    """A session was created but failed before its process could run.

    The failed session stays in the table so it can still be queried.
    """

    def __init__(self, message: str, session: PreviewSession | None = None) -> None:
        super().__init__(message)
        self.session = session


class ProjectNotFoundError(SessionStartError):
    """The project directory could not be located."""


class SpawnFailureError(SessionStartError):
    """The OS refused to create the dev server process."""


class InvalidTransitionError(PreviewError):
    """A status change that the session state machine does not allow."""

    def __init__(self, current: PreviewStatus, target: PreviewStatus) -> None:
        super().__init__(f"Cannot transition preview from {current.value} to {target.value}")
        self.current = current
        self.target = target
