"""Overlay endpoints."""

from fastapi import APIRouter

from backend import wiki
from canonwiki.engine import OverlayUpdate

from .models import CreateOverlay, UserId

router = APIRouter()


@router.post("/workspaces/{workspace_id}/entities/{entity_id}/overlays", status_code=201)
async def create_overlay(workspace_id: str, entity_id: str, body: CreateOverlay, user: UserId = ""):
    """Create an overlay; its first revision waits in the review queue."""
    return wiki.get_engine().create_overlay(
        workspace_id, entity_id, body.title, user,
        body=body.body,
        change_summary=body.summary,
        truth_flag=body.truth_flag,
        viewpoint_id=body.viewpoint_id,
        scope=body.scope,
    )


@router.get("/workspaces/{workspace_id}/entities/{entity_id}/overlays")
async def list_overlays(workspace_id: str, entity_id: str, user: UserId = ""):
    return wiki.get_engine().list_overlays(workspace_id, entity_id, user)


@router.get("/workspaces/{workspace_id}/overlays/{overlay_id}")
async def get_overlay(workspace_id: str, overlay_id: str, user: UserId = ""):
    return wiki.get_engine().get_overlay(workspace_id, overlay_id, user)


@router.patch("/workspaces/{workspace_id}/overlays/{overlay_id}")
async def update_overlay(workspace_id: str, overlay_id: str, body: OverlayUpdate, user: UserId = ""):
    """Change overlay metadata. Omitted fields are left alone; null clears a reference."""
    return wiki.get_engine().update_overlay(workspace_id, overlay_id, body, user)
