"""Project and preview status storage."""

from lpgen_preview.storage.project_store import ProjectInfo, ProjectStore
from lpgen_preview.storage.status_mirror import (
    MirroredStatus,
    NullStatusMirror,
    RedisStatusMirror,
    StatusMirror,
    create_status_mirror,
)

__all__ = [
    "MirroredStatus",
    "NullStatusMirror",
    "ProjectInfo",
    "ProjectStore",
    "RedisStatusMirror",
    "StatusMirror",
    "create_status_mirror",
]
