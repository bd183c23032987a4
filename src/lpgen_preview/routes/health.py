"""Health check and maintenance endpoints."""

import gc
from datetime import UTC, datetime

import structlog
from fastapi import APIRouter

from lpgen_preview import health
from lpgen_preview.deps import Manager
from lpgen_preview.schemas import (
    HealthReport,
    MaintenanceAction,
    MaintenanceRequest,
    MaintenanceResponse,
    MemoryInfo,
    PortUsageInfo,
    PreviewHealth,
    SessionHealth,
    SystemInfo,
)

logger = structlog.get_logger()

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness check endpoint."""
    return {"status": "healthy", "service": "preview"}


@router.get("/ready")
async def readiness_check(manager: Manager) -> dict[str, str]:
    """Readiness check endpoint."""
    return {
        "status": "ready",
        "service": "preview",
        "portRange": manager.settings.port_range_label,
    }


@router.get("/preview/health", response_model=HealthReport)
async def preview_health(manager: Manager) -> HealthReport:
    """Score the preview system and suggest maintenance."""
    config = manager.settings
    sessions = manager.list_sessions()
    active = [s for s in sessions if s.status.is_active]
    usage = manager.port_usage()
    metrics = health.system_metrics()

    score = health.health_score(
        active_sessions=len(active),
        capacity=manager.capacity,
        free_ports=len(usage.available),
        soft_cap=config.active_soft_cap,
        memory_mb=metrics.rss_mb,
    )

    return HealthReport(
        status=health.health_status(score).value,
        score=score,
        timestamp=datetime.now(UTC),
        system=SystemInfo(
            memory=MemoryInfo(
                rss_mb=metrics.rss_mb,
                vms_mb=metrics.vms_mb,
                percent=round(metrics.memory_percent, 1),
            ),
            uptime=metrics.uptime_seconds,
        ),
        preview=PreviewHealth(
            active_sessions=len(active),
            max_sessions=manager.capacity,
            port_usage=PortUsageInfo(
                used=usage.used,
                available=usage.available,
                total=usage.total,
            ),
            sessions=[
                SessionHealth(
                    project_id=s.project_id,
                    port=s.port,
                    status=s.status.value,
                    uptime=int(s.uptime_seconds),
                    url=s.url,
                )
                for s in active
            ],
            average_startup_time=health.average_startup_seconds(sessions),
        ),
        recommendations=health.recommendations(
            sessions,
            usage,
            soft_cap=config.active_soft_cap,
            long_running_seconds=config.long_running_seconds,
        ),
    )


@router.post("/preview/health", response_model=MaintenanceResponse)
async def run_maintenance(request: MaintenanceRequest, manager: Manager) -> MaintenanceResponse:
    """Run a best-effort maintenance action."""
    actions = []

    if request.action == "cleanup":
        stopped = await manager.stop_all()
        actions.append(MaintenanceAction(type="cleanup", result=f"Stopped {stopped} preview(s)"))
    elif request.action == "restart":
        stopped = await manager.stop_all()
        actions.append(
            MaintenanceAction(
                type="restart",
                result=f"Stopped {stopped} preview(s); ready to restart",
            )
        )
    else:
        collected = gc.collect()
        actions.append(
            MaintenanceAction(type="gc", result=f"Garbage collection freed {collected} objects")
        )

    logger.info("Maintenance action completed", action=request.action)
    return MaintenanceResponse(timestamp=datetime.now(UTC), actions=actions)
