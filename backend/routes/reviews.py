"""Review queue endpoints."""

from fastapi import APIRouter

from backend import wiki

from .models import AssignReviewer, CommentBody, RejectBody, UserId

router = APIRouter()


@router.get("/workspaces/{workspace_id}/reviews")
async def list_reviews(workspace_id: str, status: str | None = None, user: UserId = ""):
    """Review requests, newest first, optionally filtered by status."""
    return wiki.get_engine().list_reviews(workspace_id, user, status=status)


@router.get("/workspaces/{workspace_id}/reviews/{review_id}")
async def get_review(workspace_id: str, review_id: str, user: UserId = ""):
    return wiki.get_engine().get_review(workspace_id, review_id, user)


@router.post("/workspaces/{workspace_id}/reviews/{review_id}/approve")
async def approve_review(workspace_id: str, review_id: str, user: UserId = ""):
    """Approve: the revision becomes current."""
    return wiki.get_engine().approve_review(workspace_id, review_id, user)


@router.post("/workspaces/{workspace_id}/reviews/{review_id}/reject")
async def reject_review(workspace_id: str, review_id: str, body: RejectBody, user: UserId = ""):
    """Reject; the reason is kept as a review comment."""
    return wiki.get_engine().reject_review(workspace_id, review_id, body.reason, user)


@router.post("/workspaces/{workspace_id}/reviews/{review_id}/comments", status_code=201)
async def add_comment(workspace_id: str, review_id: str, body: CommentBody, user: UserId = ""):
    return wiki.get_engine().add_review_comment(workspace_id, review_id, body.body, user)


@router.post("/workspaces/{workspace_id}/reviews/{review_id}/reviewers")
async def assign_reviewer(workspace_id: str, review_id: str, body: AssignReviewer, user: UserId = ""):
    """Assign a reviewer (admin)."""
    return wiki.get_engine().assign_reviewer(workspace_id, review_id, body.reviewer_id, user)
