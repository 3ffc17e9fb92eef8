"""Consistency checks over a committed workspace document.

Used by ``main.py --check`` and by the property tests. Each violation is a
human-readable line; an empty list means the workspace is consistent.
"""

from __future__ import annotations

from collections import Counter

from .models import BaseTarget, OverlayTarget, ReviewStatus, RevisionStatus
from .storage import WorkspaceState


def check_invariants(state: WorkspaceState) -> list[str]:
    problems: list[str] = []

    for entity_id, entity in state.entities.items():
        if entity_id not in state.articles:
            problems.append(f"entity {entity_id} has no article")

    for article in state.articles.values():
        if article.base_revision_id is None:
            problems.append(f"article {article.id} has no base revision")
            continue
        revision = state.revisions.get(article.base_revision_id)
        if revision is None:
            problems.append(f"article {article.id} points at missing revision {article.base_revision_id}")
        elif revision.status is not RevisionStatus.APPROVED:
            problems.append(f"article {article.id} points at {revision.status.value} revision {revision.id}")
        elif revision.target != BaseTarget(article_id=article.id):
            problems.append(f"article {article.id} points at revision {revision.id} of another target")

    for overlay in state.overlays.values():
        if overlay.entity_id not in state.entities:
            problems.append(f"overlay {overlay.id} belongs to missing entity {overlay.entity_id}")
        if overlay.active_revision_id is None:
            continue
        revision = state.revisions.get(overlay.active_revision_id)
        if revision is None:
            problems.append(f"overlay {overlay.id} points at missing revision {overlay.active_revision_id}")
        elif revision.status is not RevisionStatus.APPROVED:
            problems.append(f"overlay {overlay.id} points at {revision.status.value} revision {revision.id}")
        elif revision.target != OverlayTarget(overlay_id=overlay.id):
            problems.append(f"overlay {overlay.id} points at revision {revision.id} of another target")

    for revision in state.revisions.values():
        approved = revision.status is RevisionStatus.APPROVED
        if approved != (revision.approved_by is not None):
            problems.append(f"revision {revision.id} is {revision.status.value} but approved_by={revision.approved_by!r}")
        if revision.parent_revision_id is not None:
            parent = state.revisions.get(revision.parent_revision_id)
            if parent is None:
                problems.append(f"revision {revision.id} has missing parent {revision.parent_revision_id}")
            elif parent.target != revision.target:
                problems.append(f"revision {revision.id} has parent {parent.id} on another target")

    open_per_revision: Counter[str] = Counter()
    for review in state.reviews.values():
        revision = state.revisions.get(review.revision_id)
        if revision is None:
            problems.append(f"review {review.id} is for missing revision {review.revision_id}")
            continue
        if review.status is ReviewStatus.OPEN:
            open_per_revision[revision.id] += 1
            if revision.status is not RevisionStatus.DRAFT:
                problems.append(f"open review {review.id} is for {revision.status.value} revision {revision.id}")
        elif review.status.value != revision.status.value:
            problems.append(
                f"review {review.id} is {review.status.value} but revision {revision.id} is {revision.status.value}"
            )
    for revision_id, count in open_per_revision.items():
        if count > 1:
            problems.append(f"revision {revision_id} has {count} open reviews")

    titles = Counter(e.title.casefold() for e in state.entities.values())
    for title, count in titles.items():
        if count > 1:
            problems.append(f"title '{title}' is used by {count} entities")

    return problems
