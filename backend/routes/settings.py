"""Health check, workspaces, members, settings, notifications, and audit endpoints."""

from fastapi import APIRouter

from backend import wiki

from .models import CreateWorkspace, SetMember, UserId

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/workspaces")
async def list_workspaces():
    """List workspace ids."""
    return wiki.get_engine().storage.list_workspaces()


@router.post("/workspaces", status_code=201)
async def create_workspace(body: CreateWorkspace, user: UserId = ""):
    """Create a workspace; the caller becomes its admin."""
    state = wiki.get_engine().create_workspace(body.workspace_id, user)
    return {"workspace_id": state.workspace_id, "members": state.members}


@router.put("/workspaces/{workspace_id}/members/{member_id}")
async def set_member(workspace_id: str, member_id: str, body: SetMember, user: UserId = ""):
    """Grant or change a member's role (admin)."""
    role = wiki.get_engine().add_member(workspace_id, member_id, body.role, user)
    return {"user_id": member_id, "role": role}


@router.get("/workspaces/{workspace_id}/me")
async def my_role(workspace_id: str, user: UserId = ""):
    """The caller's role in the workspace (null if not a member)."""
    return {"user_id": user, "role": wiki.get_engine().get_role(workspace_id, user)}


@router.get("/workspaces/{workspace_id}/settings")
async def get_settings(workspace_id: str, user: UserId = ""):
    """Workspace settings with defaults applied."""
    return wiki.get_engine().get_settings(workspace_id, user)


@router.patch("/workspaces/{workspace_id}/settings")
async def update_settings(workspace_id: str, body: dict, user: UserId = ""):
    """Update workspace settings (partial merge, admin)."""
    return wiki.get_engine().update_settings(workspace_id, body, user)


@router.get("/workspaces/{workspace_id}/notifications")
async def list_notifications(workspace_id: str, user: UserId = ""):
    """The caller's notifications."""
    return wiki.get_engine().list_notifications(workspace_id, user)


@router.get("/workspaces/{workspace_id}/audit")
async def audit_log(workspace_id: str, user: UserId = ""):
    """Audit log (admin)."""
    return wiki.get_engine().audit_log(workspace_id, user)
