"""Tests for overlays, scoped resolution, reference data, and compare."""

import pytest

from canonwiki.engine import OverlayScope, OverlayUpdate
from canonwiki.errors import Forbidden, InvalidInput, NotFound
from canonwiki.models import TruthFlag

from conftest import ADMIN, EDITOR, REVIEWER, VIEWER, WS


@pytest.fixture
def calder(engine):
    return engine.create_entity_with_article(WS, "Mount Calder", "location", "A volcano.", EDITOR)


@pytest.fixture
def empire(engine):
    return engine.create_viewpoint(WS, "The Empire", REVIEWER, description="Imperial doctrine")


def _approved_overlay(engine, entity_id, body, **kwargs):
    created = engine.create_overlay(WS, entity_id, body, REVIEWER, body=body, **kwargs)
    engine.approve_review(WS, created.review.id, REVIEWER)
    return created.overlay


def _view(engine, entity_id, viewpoint_id, era="all", chapter="all"):
    return engine.resolve_for_context(
        WS, entity_id, VIEWER, mode="viewpoint", viewpoint_id=viewpoint_id, era_id=era, chapter_id=chapter,
    )


# ── create / update ──────────────────────────────────────


def test_editor_cannot_create_overlay(engine, calder):
    with pytest.raises(Forbidden):
        engine.create_overlay(WS, calder.entity_id, "Rumor", EDITOR)


def test_default_truth_flag_from_settings(engine, calder):
    engine.update_settings(WS, {"default_truth_flag": "rumor"}, ADMIN)
    created = engine.create_overlay(WS, calder.entity_id, "Rumor", REVIEWER)
    assert created.overlay.truth_flag is TruthFlag.RUMOR


def test_invalid_truth_flag(engine, calder):
    with pytest.raises(InvalidInput):
        engine.create_overlay(WS, calder.entity_id, "Rumor", REVIEWER, truth_flag="lies")


def test_unknown_viewpoint(engine, calder):
    with pytest.raises(NotFound):
        engine.create_overlay(WS, calder.entity_id, "Rumor", REVIEWER, viewpoint_id="missing")


def test_reserved_ids_rejected(engine, calder):
    with pytest.raises(InvalidInput):
        engine.create_overlay(WS, calder.entity_id, "Rumor", REVIEWER, viewpoint_id="canon")
    with pytest.raises(InvalidInput):
        engine.create_overlay(WS, calder.entity_id, "Rumor", REVIEWER, scope=OverlayScope(world_from="all"))


def test_blank_scope_means_unscoped(engine, calder):
    created = engine.create_overlay(
        WS, calder.entity_id, "Rumor", REVIEWER, scope=OverlayScope(world_from="  ", story_to_chapter_id=""),
    )
    assert created.overlay.world_from is None
    assert created.overlay.story_to_chapter_id is None


def test_update_overlay_partial(engine, calder, empire):
    era = engine.create_era(WS, "First Age", EDITOR)
    created = engine.create_overlay(WS, calder.entity_id, "Rumor", REVIEWER, viewpoint_id=empire.id)

    overlay = engine.update_overlay(WS, created.overlay.id, OverlayUpdate(world_from=era.id), REVIEWER)
    assert overlay.world_from == era.id
    assert overlay.viewpoint_id == empire.id

    overlay = engine.update_overlay(WS, created.overlay.id, OverlayUpdate(viewpoint_id=None), REVIEWER)
    assert overlay.viewpoint_id is None
    assert overlay.world_from == era.id


def test_update_overlay_validates_refs(engine, calder):
    created = engine.create_overlay(WS, calder.entity_id, "Rumor", REVIEWER)
    with pytest.raises(NotFound):
        engine.update_overlay(WS, created.overlay.id, OverlayUpdate(story_from_chapter_id="nope"), REVIEWER)


def test_overlay_revision_needs_reviewer(engine, calder):
    created = engine.create_overlay(WS, calder.entity_id, "Rumor", REVIEWER)
    with pytest.raises(Forbidden):
        engine.create_overlay_revision(WS, created.overlay.id, "x", "", EDITOR)


def test_overlay_revision_parent_is_active(engine, calder, empire):
    overlay = _approved_overlay(engine, calder.entity_id, "A sleeping god.", viewpoint_id=empire.id)
    receipt = engine.create_overlay_revision(WS, overlay.id, "A waking god.", "", REVIEWER)
    active = engine.get_overlay(WS, overlay.id, VIEWER).active_revision_id
    assert receipt.revision.parent_revision_id == active
    assert _view(engine, calder.entity_id, empire.id).body == "A sleeping god."


# ── scoped resolution ────────────────────────────────────


def test_era_scoped_overlay(engine, calder, empire):
    first = engine.create_era(WS, "First Age", EDITOR)
    ash = engine.create_era(WS, "Age of Ash", EDITOR)
    _approved_overlay(engine, calder.entity_id, "A sleeping god.", viewpoint_id=empire.id,
                      scope=OverlayScope(world_from=first.id))

    assert _view(engine, calder.entity_id, empire.id, era=first.id).body == "A sleeping god."
    assert _view(engine, calder.entity_id, empire.id, era=ash.id).body == "A volcano."
    assert _view(engine, calder.entity_id, empire.id).body == "A sleeping god."


def test_chapter_scoped_overlay(engine, calder, empire):
    ch1 = engine.create_chapter(WS, "Chapter 1", EDITOR, position=1)
    ch2 = engine.create_chapter(WS, "Chapter 2", EDITOR, position=2)
    _approved_overlay(engine, calder.entity_id, "A sleeping god.", viewpoint_id=empire.id,
                      scope=OverlayScope(story_to_chapter_id=ch2.id))

    assert _view(engine, calder.entity_id, empire.id, chapter=ch2.id).body == "A sleeping god."
    assert _view(engine, calder.entity_id, empire.id, chapter=ch1.id).body == "A volcano."


def test_unknown_viewpoint_falls_back_to_canon(engine, calder):
    result = _view(engine, calder.entity_id, "nobody")
    assert result.target_type == "base"
    assert result.body == "A volcano."


def test_canon_boundary_without_overlays(engine, calder):
    result = engine.resolve_for_context(
        WS, calder.entity_id, VIEWER, mode="viewpoint", viewpoint_id="canon", era_id="all", chapter_id="all",
    )
    assert result.body == "A volcano."


def test_invalid_mode(engine, calder):
    with pytest.raises(InvalidInput):
        engine.resolve_for_context(WS, calder.entity_id, VIEWER, mode="sideways")


def test_ambiguous_overlays_pick_latest(engine, calder, empire):
    _approved_overlay(engine, calder.entity_id, "An old tale.", viewpoint_id=empire.id)
    newer = _approved_overlay(engine, calder.entity_id, "A sleeping god.", viewpoint_id=empire.id)
    result = _view(engine, calder.entity_id, empire.id)
    assert result.target_id == newer.id
    assert result.ambiguous


def test_deleted_overlay_not_shown(engine, calder, empire):
    overlay = _approved_overlay(engine, calder.entity_id, "A sleeping god.", viewpoint_id=empire.id)
    engine.soft_delete(WS, "overlay", overlay.id, REVIEWER)
    assert _view(engine, calder.entity_id, empire.id).target_type == "base"
    engine.restore_deleted(WS, "overlay", overlay.id, REVIEWER)
    assert _view(engine, calder.entity_id, empire.id).target_type == "overlay"


def test_edit_target_reaches_pending_overlay(engine, calder, empire):
    created = engine.create_overlay(WS, calder.entity_id, "Belief", REVIEWER, viewpoint_id=empire.id)
    target = engine.resolve_edit_target(WS, calder.entity_id, VIEWER, mode="viewpoint", viewpoint_id=empire.id)
    assert target.target_type == "overlay"
    assert target.target_id == created.overlay.id
    assert target.body == ""


def test_edit_target_is_the_overlay_being_read(engine, calder, empire):
    shown = _approved_overlay(engine, calder.entity_id, "A sleeping god.", viewpoint_id=empire.id)
    engine.create_overlay(WS, calder.entity_id, "Newer Belief", REVIEWER, viewpoint_id=empire.id)

    read = _view(engine, calder.entity_id, empire.id)
    edit = engine.resolve_edit_target(WS, calder.entity_id, VIEWER, mode="viewpoint", viewpoint_id=empire.id)
    assert read.target_id == shown.id
    assert edit.target_id == read.target_id
    assert edit.body == "A sleeping god."


def test_compare(engine, calder, empire):
    _approved_overlay(engine, calder.entity_id, "A sleeping god.", viewpoint_id=empire.id)
    comparison = engine.compare_for_context(WS, calder.entity_id, VIEWER, viewpoint_id=empire.id)
    assert comparison.canon.body == "A volcano."
    assert comparison.viewpoint.body == "A sleeping god."


# ── reference data ───────────────────────────────────────


def test_viewpoint_needs_reviewer(engine):
    with pytest.raises(Forbidden):
        engine.create_viewpoint(WS, "Rebels", EDITOR)


def test_viewpoint_anchor_must_exist(engine):
    with pytest.raises(NotFound):
        engine.create_viewpoint(WS, "Rebels", REVIEWER, entity_id="missing")


def test_chapters_listed_in_story_order(engine):
    engine.create_chapter(WS, "Two", EDITOR, position=2)
    engine.create_chapter(WS, "One", EDITOR, position=1)
    assert [c.title for c in engine.list_chapters(WS, VIEWER)] == ["One", "Two"]


def test_deleted_era_cannot_be_referenced(engine, calder):
    era = engine.create_era(WS, "First Age", EDITOR)
    engine.soft_delete(WS, "era", era.id, EDITOR)
    assert engine.list_eras(WS, VIEWER) == []
    with pytest.raises(NotFound):
        engine.create_overlay(WS, calder.entity_id, "Rumor", REVIEWER, scope=OverlayScope(world_to=era.id))


def test_list_viewpoints(engine, empire):
    assert [v.name for v in engine.list_viewpoints(WS, VIEWER)] == ["The Empire"]
