"""FastAPI API endpoints under /api.

Endpoint groups: health, workspaces (members, settings, notifications,
audit), entities (rename, protection, watch, resolve, compare, trash),
revisions, reviews, overlays, and reference data (viewpoints, eras,
chapters). Everything belonging to a workspace is nested under
/api/workspaces/{workspace_id}/. The caller is identified by the
X-User-Id header.
"""

from fastapi import APIRouter

from .entities import router as entities_router
from .overlays import router as overlays_router
from .reference import router as reference_router
from .reviews import router as reviews_router
from .revisions import router as revisions_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(entities_router)
router.include_router(revisions_router)
router.include_router(reviews_router)
router.include_router(overlays_router)
router.include_router(reference_router)
