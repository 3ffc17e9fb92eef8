"""Review workflow state machine.

Revisions and review requests share the same lifecycle shape: one opening
state and two terminal outcomes.

    Revision:       draft ──approve──▶ approved
                      └────reject───▶ rejected

    ReviewRequest:  open  ──approve──▶ approved
                      └────reject───▶ rejected

Terminal states have no outgoing transitions. A further edit creates a new
draft revision; it never reopens an old one. All transitions return new
objects and leave their inputs untouched.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Iterable

from .errors import Conflict, InvalidInput, InvalidTransition
from .models import (
    ReviewComment,
    ReviewRequest,
    ReviewStatus,
    Revision,
    RevisionStatus,
    utcnow,
)


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


REVISION_TRANSITIONS: dict[RevisionStatus, frozenset[RevisionStatus]] = {
    RevisionStatus.DRAFT: frozenset({RevisionStatus.APPROVED, RevisionStatus.REJECTED}),
    RevisionStatus.APPROVED: frozenset(),
    RevisionStatus.REJECTED: frozenset(),
}

REVIEW_TRANSITIONS: dict[ReviewStatus, frozenset[ReviewStatus]] = {
    ReviewStatus.OPEN: frozenset({ReviewStatus.APPROVED, ReviewStatus.REJECTED}),
    ReviewStatus.APPROVED: frozenset(),
    ReviewStatus.REJECTED: frozenset(),
}

_REVISION_OUTCOME = {
    Decision.APPROVE: RevisionStatus.APPROVED,
    Decision.REJECT: RevisionStatus.REJECTED,
}

_REVIEW_OUTCOME = {
    Decision.APPROVE: ReviewStatus.APPROVED,
    Decision.REJECT: ReviewStatus.REJECTED,
}


def transition_revision(
    revision: Revision, decision: Decision, actor: str, at: datetime | None = None
) -> Revision:
    """Move a draft revision to its terminal status."""
    target = _REVISION_OUTCOME[decision]
    if target not in REVISION_TRANSITIONS[revision.status]:
        raise InvalidTransition(f"Revision {revision.id} is already {revision.status.value}")
    update: dict = {"status": target}
    if target is RevisionStatus.APPROVED:
        update["approved_by"] = actor
        update["approved_at"] = at or utcnow()
    return revision.model_copy(update=update)


def close_review(
    review: ReviewRequest, decision: Decision, actor: str, at: datetime | None = None
) -> ReviewRequest:
    """Close an open review with the given decision."""
    target = _REVIEW_OUTCOME[decision]
    if target not in REVIEW_TRANSITIONS[review.status]:
        raise InvalidTransition(f"Review {review.id} is already {review.status.value}")
    at = at or utcnow()
    return review.model_copy(
        update={"status": target, "closed_by": actor, "closed_at": at, "updated_at": at}
    )


def open_review(
    revision: Revision, requested_by: str, existing: Iterable[ReviewRequest]
) -> ReviewRequest:
    """Create the review request for a draft revision.

    A revision may have at most one open request at a time.
    """
    if revision.status is not RevisionStatus.DRAFT:
        raise InvalidTransition(
            f"Revision {revision.id} is {revision.status.value}; only drafts can be submitted for review"
        )
    for review in existing:
        if review.revision_id == revision.id and review.status is ReviewStatus.OPEN:
            raise Conflict(f"Revision {revision.id} already has open review {review.id}")
    return ReviewRequest(
        workspace_id=revision.workspace_id,
        revision_id=revision.id,
        requested_by=requested_by,
    )


def append_comment(
    review: ReviewRequest, author: str, body: str, at: datetime | None = None
) -> ReviewComment:
    """Append a comment to an open review's thread and return it."""
    text = body.strip()
    if not text:
        raise InvalidInput("Comment body is required")
    if review.status is not ReviewStatus.OPEN:
        raise InvalidTransition(f"Review {review.id} is {review.status.value}; comments are closed")
    comment = ReviewComment(author_id=author, body=text, created_at=at or utcnow())
    review.comments.append(comment)
    review.updated_at = comment.created_at
    return comment
