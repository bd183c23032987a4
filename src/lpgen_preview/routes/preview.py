"""Per-project preview routes."""

import structlog
from fastapi import APIRouter, HTTPException, status

from lpgen_preview.deps import Manager, ProjectId
from lpgen_preview.errors import NoPortsAvailableError, ProjectNotFoundError, SpawnFailureError
from lpgen_preview.schemas import STATUS_LOG_LINES, PreviewSessionResponse, StopResponse

logger = structlog.get_logger()

router = APIRouter(prefix="/preview", tags=["preview"])


@router.post(
    "/{project_id}",
    response_model=PreviewSessionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_preview(project_id: ProjectId, manager: Manager) -> PreviewSessionResponse:
    """Start a project's dev server, replacing any existing preview.

    Returns while the session is still ``starting``; poll the GET route for
    progress.
    """
    try:
        session = await manager.start_preview(project_id)
    except NoPortsAvailableError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
            headers={"Retry-After": "10"},
        ) from e
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except SpawnFailureError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        ) from e

    return PreviewSessionResponse.from_session(session)


@router.get("/{project_id}", response_model=PreviewSessionResponse)
async def get_preview(project_id: ProjectId, manager: Manager) -> PreviewSessionResponse:
    """Get a project's preview status.

    Projects without a session report the last mirrored status, if any.
    """
    session = manager.get_status(project_id)
    if session is not None:
        return PreviewSessionResponse.from_session(session, log_lines=STATUS_LOG_LINES)

    try:
        hint = await manager.mirror.get(project_id)
    except Exception as e:
        logger.warning("Failed to read mirrored status", project_id=project_id, error=str(e))
        hint = None
    return PreviewSessionResponse.inactive(project_id, hint)


@router.delete("/{project_id}", response_model=StopResponse)
async def stop_preview(project_id: ProjectId, manager: Manager) -> StopResponse:
    """Stop a project's preview. Stopping an unknown project is a no-op."""
    return StopResponse(stopped=await manager.stop_preview(project_id))
