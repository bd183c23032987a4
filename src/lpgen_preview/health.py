"""System-wide health scoring for the preview service.

Everything here is a deterministic function of the counters passed in, so
the same inputs always produce the same score and recommendations.
"""

from __future__ import annotations

import os
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

import psutil

from lpgen_preview.models import PreviewSession, PreviewStatus
from lpgen_preview.ports import PortUsage

HEALTHY_THRESHOLD = 80
WARNING_THRESHOLD = 50

MEMORY_HIGH_MB = 500
MEMORY_ELEVATED_MB = 300

NORMAL_OPERATION = "System is operating normally."


class HealthStatus(str, Enum):
    """Overall health of the preview service."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class SystemMetrics:
    """Resource usage of the service process."""

    rss_mb: int
    vms_mb: int
    memory_percent: float
    uptime_seconds: int


def health_score(
    active_sessions: int,
    capacity: int,
    free_ports: int,
    soft_cap: int,
    memory_mb: float | None = None,
) -> int:
    """Score the service from 0 (critical) to 100 (healthy).

    Args:
        active_sessions: Sessions currently starting or running
        capacity: Size of the port pool
        free_ports: Ports left in the pool
        soft_cap: Active session count above which the score drops
        memory_mb: Optional resident memory of the service in MB
    """
    score = 100

    if active_sessions > soft_cap + 2:
        score -= 20
    elif active_sessions > soft_cap:
        score -= 10

    if capacity > 0 and active_sessions >= capacity:
        score -= 10

    # Near exhaustion is penalized hardest
    if free_ports < 2:
        score -= 30
    elif free_ports < 4:
        score -= 15

    if memory_mb is not None:
        if memory_mb > MEMORY_HIGH_MB:
            score -= 25
        elif memory_mb > MEMORY_ELEVATED_MB:
            score -= 10

    return max(0, min(100, score))


def health_status(score: int) -> HealthStatus:
    if score >= HEALTHY_THRESHOLD:
        return HealthStatus.HEALTHY
    if score >= WARNING_THRESHOLD:
        return HealthStatus.WARNING
    return HealthStatus.CRITICAL


def recommendations(
    sessions: Sequence[PreviewSession],
    usage: PortUsage,
    soft_cap: int,
    long_running_seconds: int,
    now: datetime | None = None,
) -> list[str]:
    """Threshold rules turning the current counters into advice."""
    now = now or datetime.now(UTC)
    active = [s for s in sessions if s.status.is_active]
    failed = [s for s in sessions if s.status is PreviewStatus.FAILED]
    advice = []

    if len(active) > soft_cap:
        advice.append("Too many active previews. Stop previews that are no longer needed.")

    if len(usage.available) < 3:
        advice.append("Few preview ports are left. Consider stopping older previews.")

    long_running = [
        s for s in active if (now - s.started_at).total_seconds() > long_running_seconds
    ]
    if long_running:
        advice.append(f"{len(long_running)} preview(s) have been running for a long time.")

    if failed:
        advice.append(f"{len(failed)} failed preview(s) are waiting for cleanup.")

    if not advice:
        advice.append(NORMAL_OPERATION)

    return advice


def average_startup_seconds(sessions: Sequence[PreviewSession]) -> float:
    """Mean time from spawn to readiness across running sessions."""
    startups = [
        s.startup_seconds
        for s in sessions
        if s.status is PreviewStatus.RUNNING and s.startup_seconds is not None
    ]
    if not startups:
        return 0.0
    return round(sum(startups) / len(startups), 2)


def system_metrics(process: psutil.Process | None = None) -> SystemMetrics:
    """Collect memory and uptime of this service's process."""
    process = process or psutil.Process(os.getpid())
    memory = process.memory_info()
    return SystemMetrics(
        rss_mb=memory.rss // (1024 * 1024),
        vms_mb=memory.vms // (1024 * 1024),
        memory_percent=process.memory_percent(),
        uptime_seconds=int(time.time() - process.create_time()),
    )
