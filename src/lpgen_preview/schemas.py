"""JSON shapes of the preview HTTP API.

Fields are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from lpgen_preview.models import PreviewSession
from lpgen_preview.storage import MirroredStatus

STATUS_LOG_LINES = 20
OVERVIEW_LOG_LINES = 10


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PreviewSessionResponse(CamelModel):
    """State of one project's preview."""

    project_id: str
    session_id: str | None = None
    status: str
    port: int | None = None
    url: str | None = None
    build_logs: list[str] = []
    started_at: datetime | None = None
    ready_at: datetime | None = None
    error: str | None = None
    exit_code: int | None = None
    is_active: bool = False

    @classmethod
    def from_session(
        cls,
        session: PreviewSession,
        log_lines: int | None = None,
    ) -> PreviewSessionResponse:
        return cls(
            project_id=session.project_id,
            session_id=session.id,
            status=session.status.value,
            port=session.port,
            url=session.url,
            build_logs=session.tail(log_lines),
            started_at=session.started_at,
            ready_at=session.ready_at,
            error=session.error,
            exit_code=session.exit_code,
            is_active=session.status.is_active,
        )

    @classmethod
    def inactive(
        cls,
        project_id: str,
        hint: MirroredStatus | None = None,
    ) -> PreviewSessionResponse:
        """Shape for a project without a session, optionally using a mirrored hint."""
        if hint is None:
            return cls(project_id=project_id, status="stopped")
        return cls(project_id=project_id, status=hint.status, port=hint.port, url=hint.url)


class StopResponse(CamelModel):
    stopped: bool


class StopAllResponse(CamelModel):
    stopped_count: int


class ProjectPreview(CamelModel):
    """A project cross-referenced with its live session."""

    id: str
    name: str
    created_at: datetime
    preview: PreviewSessionResponse


class StatusSummary(CamelModel):
    total_projects: int
    active_preview: int
    available_ports: int
    used_ports: int


class ActivePreview(CamelModel):
    project_id: str
    port: int
    status: str
    started_at: datetime


class PortSystemInfo(CamelModel):
    port_range: str
    used_ports: list[int]
    available_ports: list[int]
    active_previews: list[ActivePreview]


class StatusOverview(CamelModel):
    projects: list[ProjectPreview]
    summary: StatusSummary
    system: PortSystemInfo


class MemoryInfo(CamelModel):
    rss_mb: int
    vms_mb: int
    percent: float


class SystemInfo(CamelModel):
    memory: MemoryInfo
    uptime: int


class PortUsageInfo(CamelModel):
    used: list[int]
    available: list[int]
    total: int


class SessionHealth(CamelModel):
    project_id: str
    port: int
    status: str
    uptime: int
    url: str | None = None


class PreviewHealth(CamelModel):
    active_sessions: int
    max_sessions: int
    port_usage: PortUsageInfo
    sessions: list[SessionHealth]
    average_startup_time: float


class HealthReport(CamelModel):
    status: Literal["healthy", "warning", "critical"]
    score: int
    timestamp: datetime
    system: SystemInfo
    preview: PreviewHealth
    recommendations: list[str]


class MaintenanceRequest(CamelModel):
    action: Literal["cleanup", "restart", "gc"]


class MaintenanceAction(CamelModel):
    type: str
    result: str


class MaintenanceResponse(CamelModel):
    timestamp: datetime
    actions: list[MaintenanceAction]
