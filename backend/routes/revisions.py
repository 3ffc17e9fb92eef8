"""Revision endpoints: append, draft, restore, history, and submit for review."""

from fastapi import APIRouter

from backend import wiki

from .models import DraftBody, RevisionBody, UserId

router = APIRouter()


@router.post("/workspaces/{workspace_id}/entities/{entity_id}/revisions", status_code=201)
async def create_base_revision(workspace_id: str, entity_id: str, body: RevisionBody, user: UserId = ""):
    """Edit the canonical article."""
    return wiki.get_engine().create_base_revision(workspace_id, entity_id, body.body, body.summary, user)


@router.post("/workspaces/{workspace_id}/entities/{entity_id}/drafts", status_code=201)
async def create_base_draft(workspace_id: str, entity_id: str, body: DraftBody, user: UserId = ""):
    """Save a base-article draft (e.g. LLM output) for review."""
    return wiki.get_engine().create_base_draft(
        workspace_id, entity_id, body.body, user, summary=body.summary, submit=body.submit,
    )


@router.get("/workspaces/{workspace_id}/entities/{entity_id}/revisions")
async def list_base_revisions(workspace_id: str, entity_id: str, user: UserId = ""):
    """Article history, newest first."""
    return wiki.get_engine().list_revisions(workspace_id, "base", entity_id, user)


@router.post("/workspaces/{workspace_id}/overlays/{overlay_id}/revisions", status_code=201)
async def create_overlay_revision(workspace_id: str, overlay_id: str, body: RevisionBody, user: UserId = ""):
    """Propose new overlay text; it goes live once its review is approved."""
    return wiki.get_engine().create_overlay_revision(workspace_id, overlay_id, body.body, body.summary, user)


@router.get("/workspaces/{workspace_id}/overlays/{overlay_id}/revisions")
async def list_overlay_revisions(workspace_id: str, overlay_id: str, user: UserId = ""):
    """Overlay history, newest first."""
    return wiki.get_engine().list_revisions(workspace_id, "overlay", overlay_id, user)


@router.get("/workspaces/{workspace_id}/revisions/{revision_id}")
async def get_revision(workspace_id: str, revision_id: str, user: UserId = ""):
    return wiki.get_engine().get_revision(workspace_id, revision_id, user)


@router.get("/workspaces/{workspace_id}/revisions/{revision_id}/lineage")
async def revision_lineage(workspace_id: str, revision_id: str, user: UserId = ""):
    """Parent chain from this revision back to the first one."""
    return wiki.get_engine().revision_lineage(workspace_id, revision_id, user)


@router.post("/workspaces/{workspace_id}/revisions/{revision_id}/restore", status_code=201)
async def restore_revision(workspace_id: str, revision_id: str, user: UserId = ""):
    """Open a draft restoring an older revision's text."""
    return wiki.get_engine().restore_revision(workspace_id, revision_id, user)


@router.post("/workspaces/{workspace_id}/revisions/{revision_id}/submit", status_code=201)
async def submit_for_review(workspace_id: str, revision_id: str, user: UserId = ""):
    return wiki.get_engine().submit_for_review(workspace_id, revision_id, user)
