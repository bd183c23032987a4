"""System-wide preview status routes."""

import structlog
from fastapi import APIRouter

from lpgen_preview.deps import Manager
from lpgen_preview.schemas import (
    OVERVIEW_LOG_LINES,
    ActivePreview,
    PortSystemInfo,
    PreviewSessionResponse,
    ProjectPreview,
    StatusOverview,
    StatusSummary,
    StopAllResponse,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/preview", tags=["preview"])


@router.get("/status", response_model=StatusOverview)
async def get_status_overview(manager: Manager) -> StatusOverview:
    """List all projects cross-referenced with their live sessions."""
    projects = manager.store.list_projects()
    active = manager.list_active()
    usage = manager.port_usage()

    rows = []
    for project in projects:
        session = manager.get_status(project.id)
        if session is not None:
            preview = PreviewSessionResponse.from_session(session, log_lines=OVERVIEW_LOG_LINES)
        else:
            try:
                hint = await manager.mirror.get(project.id)
            except Exception as e:
                logger.warning(
                    "Failed to read mirrored status",
                    project_id=project.id,
                    error=str(e),
                )
                hint = None
            preview = PreviewSessionResponse.inactive(project.id, hint)
        rows.append(
            ProjectPreview(
                id=project.id,
                name=project.name,
                created_at=project.created_at,
                preview=preview,
            )
        )

    return StatusOverview(
        projects=rows,
        summary=StatusSummary(
            total_projects=len(projects),
            active_preview=len(active),
            available_ports=len(usage.available),
            used_ports=len(usage.used),
        ),
        system=PortSystemInfo(
            port_range=manager.settings.port_range_label,
            used_ports=usage.used,
            available_ports=usage.available,
            active_previews=[
                ActivePreview(
                    project_id=s.project_id,
                    port=s.port,
                    status=s.status.value,
                    started_at=s.started_at,
                )
                for s in active
            ],
        ),
    )


@router.delete("/status", response_model=StopAllResponse)
async def stop_all_previews(manager: Manager) -> StopAllResponse:
    """Stop every preview and clear mirrored status hints."""
    stopped = await manager.stop_all()

    for project in manager.store.list_projects():
        try:
            await manager.mirror.clear(project.id)
        except Exception as e:
            logger.warning("Failed to clear mirrored status", project_id=project.id, error=str(e))

    return StopAllResponse(stopped_count=stopped)
