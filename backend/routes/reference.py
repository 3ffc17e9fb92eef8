"""Viewpoint, era, and chapter endpoints."""

from fastapi import APIRouter

from backend import wiki

from .models import CreateChapter, CreateEra, CreateViewpoint, UserId

router = APIRouter()


@router.get("/workspaces/{workspace_id}/viewpoints")
async def list_viewpoints(workspace_id: str, user: UserId = ""):
    return wiki.get_engine().list_viewpoints(workspace_id, user)


@router.post("/workspaces/{workspace_id}/viewpoints", status_code=201)
async def create_viewpoint(workspace_id: str, body: CreateViewpoint, user: UserId = ""):
    return wiki.get_engine().create_viewpoint(
        workspace_id, body.name, user, description=body.description, entity_id=body.entity_id,
    )


@router.get("/workspaces/{workspace_id}/eras")
async def list_eras(workspace_id: str, user: UserId = ""):
    return wiki.get_engine().list_eras(workspace_id, user)


@router.post("/workspaces/{workspace_id}/eras", status_code=201)
async def create_era(workspace_id: str, body: CreateEra, user: UserId = ""):
    return wiki.get_engine().create_era(workspace_id, body.name, user)


@router.get("/workspaces/{workspace_id}/chapters")
async def list_chapters(workspace_id: str, user: UserId = ""):
    """Chapters in story order."""
    return wiki.get_engine().list_chapters(workspace_id, user)


@router.post("/workspaces/{workspace_id}/chapters", status_code=201)
async def create_chapter(workspace_id: str, body: CreateChapter, user: UserId = ""):
    return wiki.get_engine().create_chapter(workspace_id, body.title, user, position=body.position)
