"""Dependency injection for the preview service."""

from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, status

from lpgen_preview.config import Settings, settings
from lpgen_preview.manager import PreviewSessionManager
from lpgen_preview.storage import ProjectStore, create_status_mirror
from lpgen_preview.validation import ValidationError, validate_project_id

logger = structlog.get_logger()

# Static paths under /preview/ that shadow /preview/{project_id}
RESERVED_PROJECT_IDS = frozenset({"status", "health"})


class ManagerSingleton:
    """Singleton holder for the preview session manager."""

    _instance: PreviewSessionManager | None = None

    @classmethod
    def get(cls) -> PreviewSessionManager:
        if cls._instance is None:
            raise RuntimeError("Preview manager not initialized")
        return cls._instance

    @classmethod
    def set(cls, manager: PreviewSessionManager | None) -> None:
        cls._instance = manager


def init_manager(config: Settings | None = None) -> PreviewSessionManager:
    """Create the process-wide manager unless one is already installed."""
    if ManagerSingleton._instance is not None:
        return ManagerSingleton._instance

    config = config or settings
    manager = PreviewSessionManager(
        config,
        store=ProjectStore(config.projects_dir),
        mirror=create_status_mirror(config.redis_url, ttl_seconds=config.status_ttl_seconds),
    )
    ManagerSingleton.set(manager)
    logger.info(
        "Preview manager initialized",
        port_range=config.port_range_label,
        projects_dir=config.projects_dir,
        mirror="redis" if config.redis_url else "none",
    )
    return manager


async def cleanup_manager() -> None:
    """Stop every preview and drop the singleton."""
    manager = ManagerSingleton._instance
    if manager is None:
        return
    try:
        await manager.close()
    finally:
        ManagerSingleton.set(None)


def get_manager() -> PreviewSessionManager:
    """FastAPI dependency returning the manager."""
    return ManagerSingleton.get()


def valid_project_id(project_id: str) -> str:
    """Path parameter dependency rejecting unsafe or reserved project IDs with 400."""
    try:
        validate_project_id(project_id)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    if project_id in RESERVED_PROJECT_IDS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid project_id: '{project_id}' is reserved",
        )
    return project_id


Manager = Annotated[PreviewSessionManager, Depends(get_manager)]
ProjectId = Annotated[str, Depends(valid_project_id)]
