"""Entity CRUD, rename, protection, watch, and resolution endpoints."""

from fastapi import APIRouter, HTTPException

from backend import wiki
from canonwiki.engine import SOFT_DELETABLE

from .models import CreateEntity, RenameEntity, SetProtection, UpdateEntity, UserId

router = APIRouter()


@router.post("/workspaces/{workspace_id}/entities", status_code=201)
async def create_entity(workspace_id: str, body: CreateEntity, user: UserId = ""):
    """Create an entity with its article and an approved first revision."""
    return wiki.get_engine().create_entity_with_article(
        workspace_id, body.title, body.type, body.body, user,
        aliases=body.aliases, tags=body.tags,
    )


@router.get("/workspaces/{workspace_id}/entities")
async def list_entities(
    workspace_id: str,
    type: str | None = None,
    tag: str | None = None,
    q: str | None = None,
    user: UserId = "",
):
    """List live entities, most recently updated first."""
    return wiki.get_engine().list_entities(workspace_id, user, type=type, tag=tag, query=q)


@router.get("/workspaces/{workspace_id}/entities/deleted")
async def list_deleted_entities(workspace_id: str, user: UserId = ""):
    """List soft-deleted entities."""
    return wiki.get_engine().list_deleted_entities(workspace_id, user)


@router.get("/workspaces/{workspace_id}/lookup")
async def find_entity(workspace_id: str, title: str, user: UserId = ""):
    """Find an entity by title or alias."""
    entity = wiki.get_engine().find_entity(workspace_id, title, user)
    if entity is None:
        raise HTTPException(404, f"No entity titled '{title}'")
    return entity


@router.get("/workspaces/{workspace_id}/entities/{entity_id}")
async def get_entity(workspace_id: str, entity_id: str, user: UserId = ""):
    return wiki.get_engine().get_entity(workspace_id, entity_id, user)


@router.patch("/workspaces/{workspace_id}/entities/{entity_id}")
async def update_entity(workspace_id: str, entity_id: str, body: UpdateEntity, user: UserId = ""):
    """Change type, aliases or tags."""
    return wiki.get_engine().update_entity(
        workspace_id, entity_id, user, type=body.type, aliases=body.aliases, tags=body.tags,
    )


@router.post("/workspaces/{workspace_id}/entities/{entity_id}/rename")
async def rename_entity(workspace_id: str, entity_id: str, body: RenameEntity, user: UserId = ""):
    """Rename an entity, keeping the old title as an alias unless add_redirect is false."""
    return wiki.get_engine().rename_entity(
        workspace_id, entity_id, body.title, user, add_redirect_alias=body.add_redirect,
    )


@router.put("/workspaces/{workspace_id}/entities/{entity_id}/protection")
async def set_protection(workspace_id: str, entity_id: str, body: SetProtection, user: UserId = ""):
    return wiki.get_engine().set_protection(workspace_id, entity_id, body.level, user)


@router.post("/workspaces/{workspace_id}/entities/{entity_id}/watch")
async def toggle_watch(workspace_id: str, entity_id: str, user: UserId = ""):
    """Start or stop watching an entity."""
    return {"watching": wiki.get_engine().toggle_watch(workspace_id, entity_id, user)}


@router.get("/workspaces/{workspace_id}/entities/{entity_id}/resolve")
async def resolve_entity(
    workspace_id: str,
    entity_id: str,
    mode: str = "canon",
    viewpoint: str = "canon",
    era: str = "all",
    chapter: str = "all",
    user: UserId = "",
):
    """The body shown for an entity in a viewing context."""
    return wiki.get_engine().resolve_for_context(
        workspace_id, entity_id, user,
        mode=mode, viewpoint_id=viewpoint, era_id=era, chapter_id=chapter,
    )


@router.get("/workspaces/{workspace_id}/entities/{entity_id}/edit-target")
async def edit_target(
    workspace_id: str,
    entity_id: str,
    mode: str = "canon",
    viewpoint: str = "canon",
    era: str = "all",
    chapter: str = "all",
    user: UserId = "",
):
    """Which article or overlay an edit in this context writes to."""
    return wiki.get_engine().resolve_edit_target(
        workspace_id, entity_id, user,
        mode=mode, viewpoint_id=viewpoint, era_id=era, chapter_id=chapter,
    )


@router.get("/workspaces/{workspace_id}/entities/{entity_id}/compare")
async def compare(
    workspace_id: str,
    entity_id: str,
    viewpoint: str,
    era: str = "all",
    chapter: str = "all",
    user: UserId = "",
):
    """Canon side by side with a viewpoint's version."""
    return wiki.get_engine().compare_for_context(
        workspace_id, entity_id, user, viewpoint_id=viewpoint, era_id=era, chapter_id=chapter,
    )


@router.post("/workspaces/{workspace_id}/trash/{target_type}/{target_id}")
async def soft_delete(workspace_id: str, target_type: str, target_id: str, user: UserId = ""):
    """Soft-delete an entity, overlay, viewpoint, era or chapter."""
    kind = _singular(target_type)
    wiki.get_engine().soft_delete(workspace_id, kind, target_id, user)
    return {"ok": True}


@router.post("/workspaces/{workspace_id}/trash/{target_type}/{target_id}/restore")
async def restore_deleted(workspace_id: str, target_type: str, target_id: str, user: UserId = ""):
    """Undo a soft delete."""
    kind = _singular(target_type)
    wiki.get_engine().restore_deleted(workspace_id, kind, target_id, user)
    return {"ok": True}


def _singular(collection: str) -> str:
    kind = {"entities": "entity"}.get(collection, collection.rstrip("s"))
    if kind not in SOFT_DELETABLE:
        raise HTTPException(404, f"Unknown collection '{collection}'")
    return kind
