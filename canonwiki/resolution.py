"""Overlay selection and resolution.

Given an entity and a viewing context (mode, viewpoint, era, chapter), pick
the single revision whose body is shown or edited:

1. Canon mode, or viewpoint ``canon``: the article's base revision.
2. Otherwise keep live overlays that pass both scope filters. A filter
   passes when the context asks for ``all``, when the overlay has no scope
   on that axis, or when the requested id equals either endpoint. This is
   an endpoint-equality test, not interval containment.
3. Among those, keep overlays of the requested viewpoint. Ties are broken
   by most recent ``updated_at``, then ``created_at``, then id, and the
   result is flagged ``ambiguous``.
4. No candidate: fall back to canon.
5. The chosen overlay's body is its active revision's body, or empty when
   it has never been approved.

Reading only considers overlays with an approved revision. The edit target
is whatever reading picks; only when reading falls back to canon does it
consider pending overlays, so that "Edit" in a viewpoint view reaches the
viewpoint's overlay even before its first approval.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from .models import (
    Article,
    Overlay,
    Resolution,
    Revision,
    ViewContext,
    ViewMode,
)

logger = logging.getLogger(__name__)

CANON = "canon"
ALL = "all"


def era_matches(overlay: Overlay, era_id: str) -> bool:
    if era_id == ALL:
        return True
    if overlay.world_from is None and overlay.world_to is None:
        return True
    return era_id in (overlay.world_from, overlay.world_to)


def chapter_matches(overlay: Overlay, chapter_id: str) -> bool:
    if chapter_id == ALL:
        return True
    if overlay.story_from_chapter_id is None and overlay.story_to_chapter_id is None:
        return True
    return chapter_id in (overlay.story_from_chapter_id, overlay.story_to_chapter_id)


def scope_matches(overlay: Overlay, context: ViewContext) -> bool:
    return era_matches(overlay, context.era_id) and chapter_matches(overlay, context.chapter_id)


def is_canon(context: ViewContext) -> bool:
    return context.mode is ViewMode.CANON or context.viewpoint_id == CANON


def _recency(overlay: Overlay) -> tuple:
    return (overlay.updated_at, overlay.created_at, overlay.id)


def candidates(
    overlays: Iterable[Overlay], context: ViewContext, *, include_pending: bool = False
) -> list[Overlay]:
    """Live overlays of the context's viewpoint that pass both scope filters, newest first."""
    found = [
        o
        for o in overlays
        if not o.is_deleted
        and o.viewpoint_id == context.viewpoint_id
        and scope_matches(o, context)
        and (include_pending or o.active_revision_id is not None)
    ]
    return sorted(found, key=_recency, reverse=True)


def resolve_canon(article: Article, revisions: Mapping[str, Revision]) -> Resolution:
    revision = revisions.get(article.base_revision_id) if article.base_revision_id else None
    return Resolution(
        entity_id=article.entity_id,
        target_type="base",
        target_id=article.id,
        revision_id=revision.id if revision else None,
        body=revision.body if revision else "",
    )


def resolve(
    article: Article,
    overlays: Iterable[Overlay],
    revisions: Mapping[str, Revision],
    context: ViewContext,
    *,
    for_edit: bool = False,
) -> Resolution:
    """Resolve the article or overlay to show (or edit) for context."""
    if is_canon(context):
        return resolve_canon(article, revisions)

    overlays = list(overlays)
    matching = candidates(overlays, context)
    if not matching and for_edit:
        matching = candidates(overlays, context, include_pending=True)
    if not matching:
        logger.debug(
            "no overlay for entity=%s viewpoint=%s era=%s chapter=%s, using canon",
            article.entity_id, context.viewpoint_id, context.era_id, context.chapter_id,
        )
        return resolve_canon(article, revisions)

    chosen = matching[0]
    ambiguous = len(matching) > 1
    if ambiguous:
        logger.warning(
            "%d overlays match entity=%s viewpoint=%s; using most recently updated %s",
            len(matching), article.entity_id, context.viewpoint_id, chosen.id,
        )

    revision = revisions.get(chosen.active_revision_id) if chosen.active_revision_id else None
    return Resolution(
        entity_id=article.entity_id,
        target_type="overlay",
        target_id=chosen.id,
        revision_id=revision.id if revision else None,
        body=revision.body if revision else "",
        truth_flag=chosen.truth_flag,
        ambiguous=ambiguous,
    )
