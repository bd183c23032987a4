"""Readiness detection for spawned dev servers.

Two detectors are available and the manager can use either or both:

- ``LogPatternProbe`` inspects each captured output line for a known marker
  such as Next.js's ``Ready in`` banner.
- ``HttpProbe`` polls the allocated port until the server answers any HTTP
  request.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING

import httpx
import structlog

if TYPE_CHECKING:
    from lpgen_preview.config import Settings

logger = structlog.get_logger()


class ReadinessProbe:
    """Base class for readiness detectors."""

    name = "base"

    def matches(self, line: str) -> bool:  # noqa: ARG002
        """Whether a captured output line signals readiness."""
        return False

    async def wait_ready(self, url: str) -> bool:  # noqa: ARG002
        """Block until ``url`` is serving. Returns False if this probe cannot tell."""
        return False

    @property
    def polls(self) -> bool:
        """Whether this probe needs a background polling task."""
        return False


class LogPatternProbe(ReadinessProbe):
    """Detect readiness from a substring in the dev server's output."""

    name = "log"

    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns = [p for p in patterns if p]

    def matches(self, line: str) -> bool:
        return any(pattern in line for pattern in self.patterns)


class HttpProbe(ReadinessProbe):
    """Detect readiness by polling the preview URL.

    Any HTTP response counts, including 404 and 500: a status code means
    the server accepted the connection.
    """

    name = "http"

    def __init__(self, interval: float = 1.0, timeout: float = 2.0) -> None:
        self.interval = interval
        self.timeout = timeout

    @property
    def polls(self) -> bool:
        return True

    async def check(self, client: httpx.AsyncClient, url: str) -> bool:
        try:
            await client.get(url)
        except httpx.HTTPError:
            return False
        return True

    async def wait_ready(self, url: str) -> bool:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while True:
                if await self.check(client, url):
                    logger.debug("HTTP probe succeeded", url=url)
                    return True
                await asyncio.sleep(self.interval)


def build_probes(settings: Settings) -> list[ReadinessProbe]:
    """Build the probes selected by ``readiness_probe``."""
    probes: list[ReadinessProbe] = []
    if settings.readiness_probe in ("log", "both"):
        probes.append(LogPatternProbe(settings.readiness_patterns))
    if settings.readiness_probe in ("http", "both"):
        probes.append(HttpProbe(interval=settings.http_probe_interval))
    return probes
