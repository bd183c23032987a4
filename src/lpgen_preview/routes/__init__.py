"""Preview service routes."""

from lpgen_preview.routes.health import router as health_router
from lpgen_preview.routes.preview import router as preview_router
from lpgen_preview.routes.status import router as status_router

__all__ = [
    "health_router",
    "preview_router",
    "status_router",
]
