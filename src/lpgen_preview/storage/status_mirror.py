"""Best-effort mirroring of preview status to Redis.

The manager's in-memory session table is the source of truth for live
previews. Mirrored values only serve as stale hints for projects that have
no live session, e.g. after the service restarts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

STATUS_TTL_SECONDS = 24 * 60 * 60  # 24 hours


def _status_key(project_id: str) -> str:
    return f"preview:project:{project_id}"


@dataclass(frozen=True)
class MirroredStatus:
    """Last status written for a project."""

    status: str
    port: int | None = None
    url: str | None = None
    updated_at: str | None = None


class StatusMirror(Protocol):
    """Where preview status is mirrored for other readers."""

    async def mirror(
        self,
        project_id: str,
        status: str,
        port: int | None = None,
        url: str | None = None,
    ) -> None: ...

    async def get(self, project_id: str) -> MirroredStatus | None: ...

    async def clear(self, project_id: str) -> None: ...

    async def close(self) -> None: ...


class NullStatusMirror:
    """Mirror used when no Redis is configured."""

    async def mirror(
        self,
        project_id: str,
        status: str,
        port: int | None = None,
        url: str | None = None,
    ) -> None:
        return None

    async def get(self, project_id: str) -> MirroredStatus | None:  # noqa: ARG002
        return None

    async def clear(self, project_id: str) -> None:
        return None

    async def close(self) -> None:
        return None


class RedisStatusMirror:
    """Stores the last known preview status per project in a Redis hash."""

    def __init__(self, redis_url: str, ttl_seconds: int = STATUS_TTL_SECONDS) -> None:
        self._redis_url = redis_url
        self._ttl = ttl_seconds
        self._client: Any = None

    async def _get_client(self) -> Any:
        """Get or create the Redis client."""
        if self._client is None:
            self._client = redis.from_url(  # type: ignore[no-untyped-call]
                self._redis_url,
                decode_responses=True,
            )
            logger.info("Connected to Redis", url=self._redis_url)
        return self._client

    async def mirror(
        self,
        project_id: str,
        status: str,
        port: int | None = None,
        url: str | None = None,
    ) -> None:
        client = await self._get_client()
        key = _status_key(project_id)
        mapping = {
            "status": status,
            "port": str(port) if port is not None else "",
            "url": url or "",
            "updated_at": datetime.now(UTC).isoformat(),
        }
        await client.hset(key, mapping=mapping)
        await client.expire(key, self._ttl)

    async def get(self, project_id: str) -> MirroredStatus | None:
        client = await self._get_client()
        data = await client.hgetall(_status_key(project_id))
        if not data or not data.get("status"):
            return None

        port = data.get("port")
        return MirroredStatus(
            status=data["status"],
            port=int(port) if port else None,
            url=data.get("url") or None,
            updated_at=data.get("updated_at") or None,
        )

    async def clear(self, project_id: str) -> None:
        client = await self._get_client()
        await client.delete(_status_key(project_id))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Redis")


def create_status_mirror(
    redis_url: str | None,
    ttl_seconds: int = STATUS_TTL_SECONDS,
) -> StatusMirror:
    """Return a Redis mirror when ``redis_url`` is set, else a no-op mirror."""
    if redis_url:
        return RedisStatusMirror(redis_url, ttl_seconds=ttl_seconds)
    return NullStatusMirror()
