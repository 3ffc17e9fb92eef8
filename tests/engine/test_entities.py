"""Tests for workspace membership, entity CRUD, protection, watches, and soft delete."""

import pytest

from canonwiki.errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthorized
from canonwiki.models import EntityType, ProtectionLevel, Role

from conftest import ADMIN, EDITOR, REVIEWER, VIEWER, WS


def _create(engine, title="Mount Calder", **kwargs):
    return engine.create_entity_with_article(WS, title, "location", "A volcano.", EDITOR, **kwargs)


# ── workspaces and members ───────────────────────────────


def test_workspace_creator_is_admin(engine):
    assert engine.get_role(WS, ADMIN) is Role.ADMIN
    assert engine.get_role(WS, "stranger") is None


def test_workspace_id_must_be_slug(engine):
    with pytest.raises(InvalidInput):
        engine.create_workspace("My Workspace", ADMIN)


def test_duplicate_workspace(engine):
    with pytest.raises(Conflict):
        engine.create_workspace(WS, ADMIN)


def test_only_admin_adds_members(engine):
    with pytest.raises(Forbidden):
        engine.add_member(WS, "newbie", "viewer", REVIEWER)


def test_last_admin_cannot_be_demoted(engine):
    with pytest.raises(Conflict):
        engine.add_member(WS, ADMIN, "editor", ADMIN)


def test_invalid_role(engine):
    with pytest.raises(InvalidInput):
        engine.add_member(WS, "newbie", "overlord", ADMIN)


# ── identity and roles ───────────────────────────────────


def test_blank_user_is_unauthorized(engine):
    with pytest.raises(Unauthorized):
        engine.create_entity_with_article(WS, "X", "item", "", "  ")


def test_viewer_cannot_create(engine):
    with pytest.raises(Forbidden, match="editor"):
        engine.create_entity_with_article(WS, "X", "item", "", VIEWER)


def test_non_member_cannot_read(engine):
    created = _create(engine)
    with pytest.raises(Forbidden):
        engine.get_entity(WS, created.entity_id, "stranger")


def test_unknown_workspace(engine):
    with pytest.raises(NotFound):
        engine.list_entities("nowhere", ADMIN)


# ── create / find / list ─────────────────────────────────


def test_create_requires_title(engine):
    with pytest.raises(InvalidInput):
        engine.create_entity_with_article(WS, "  ", "item", "", EDITOR)


def test_create_rejects_unknown_type(engine):
    with pytest.raises(InvalidInput):
        engine.create_entity_with_article(WS, "Calder", "planet", "", EDITOR)


def test_title_uniqueness_is_case_insensitive(engine):
    _create(engine)
    with pytest.raises(Conflict):
        _create(engine, title="MOUNT CALDER")


def test_create_with_admin_tag_needs_admin(engine):
    with pytest.raises(Forbidden):
        _create(engine, tags=["protected:admin"])
    created = engine.create_entity_with_article(
        WS, "Throne", "item", "", ADMIN, tags=["protected:admin", "regalia"],
    )
    entity = engine.get_entity(WS, created.entity_id, VIEWER)
    assert entity.protection is ProtectionLevel.ADMIN
    assert entity.tags == ["regalia"]


def test_find_by_alias(engine):
    created = _create(engine, aliases=["Old Smoky"])
    assert engine.find_entity(WS, "old smoky", VIEWER).id == created.entity_id
    assert engine.find_entity(WS, "Nothing", VIEWER) is None


def test_list_filters(engine):
    _create(engine, tags=["north"])
    engine.create_entity_with_article(WS, "Sister Ilse", "character", "A healer.", EDITOR)
    assert [e.title for e in engine.list_entities(WS, VIEWER, type="character")] == ["Sister Ilse"]
    assert [e.title for e in engine.list_entities(WS, VIEWER, tag="north")] == ["Mount Calder"]
    assert [e.title for e in engine.list_entities(WS, VIEWER, query="ilse")] == ["Sister Ilse"]


# ── rename / update ──────────────────────────────────────


def test_rename_without_redirect(engine):
    created = _create(engine)
    entity = engine.rename_entity(WS, created.entity_id, "Mount Ashveil", EDITOR, add_redirect_alias=False)
    assert entity.aliases == []


def test_rename_drops_alias_equal_to_new_title(engine):
    created = _create(engine, aliases=["Ashveil"])
    entity = engine.rename_entity(WS, created.entity_id, "Ashveil", EDITOR)
    assert entity.aliases == ["Mount Calder"]


def test_rename_collision_names_the_title(engine):
    _create(engine)
    other = engine.create_entity_with_article(WS, "Ashveil", "location", "", EDITOR)
    with pytest.raises(Conflict, match="Mount Calder"):
        engine.rename_entity(WS, other.entity_id, "mount calder", EDITOR)


def test_rename_notifies_watchers(engine):
    created = _create(engine)
    engine.toggle_watch(WS, created.entity_id, VIEWER)
    engine.rename_entity(WS, created.entity_id, "Mount Ashveil", EDITOR)
    events = [n.event_type for n in engine.list_notifications(WS, VIEWER)]
    assert events == ["entity_renamed"]


def test_update_entity_fields(engine):
    created = _create(engine)
    entity = engine.update_entity(WS, created.entity_id, EDITOR, type="event", aliases=["Calder"], tags=["b", "a"])
    assert entity.type is EntityType.EVENT
    assert entity.aliases == ["Calder"]
    assert entity.tags == ["a", "b"]


def test_update_entity_protection_tag_needs_clearance(engine):
    created = _create(engine)
    with pytest.raises(Forbidden):
        engine.update_entity(WS, created.entity_id, EDITOR, tags=["protected:admin"])
    entity = engine.update_entity(WS, created.entity_id, ADMIN, tags=["protected:admin"])
    assert entity.protection is ProtectionLevel.ADMIN


def test_misspelled_protection_tag_rejected(engine):
    created = _create(engine)
    engine.set_protection(WS, created.entity_id, "admin", ADMIN)
    with pytest.raises(InvalidInput):
        engine.update_entity(WS, created.entity_id, ADMIN, tags=["lore", "protected:admn"])
    entity = engine.get_entity(WS, created.entity_id, VIEWER)
    assert entity.protection is ProtectionLevel.ADMIN
    assert entity.tags == []


def test_create_with_misspelled_protection_tag_rejected(engine):
    with pytest.raises(InvalidInput):
        _create(engine, tags=["protected:edtor"])
    assert engine.list_entities(WS, VIEWER) == []


# ── protection ───────────────────────────────────────────


def test_get_protection_from_tags(engine):
    assert engine.get_protection(["protected:editor", "protected:admin"]) is ProtectionLevel.ADMIN


def test_editor_cannot_set_admin_protection(engine):
    created = _create(engine)
    with pytest.raises(Forbidden):
        engine.set_protection(WS, created.entity_id, "admin", EDITOR)


def test_editor_cannot_lift_admin_protection(engine):
    created = _create(engine)
    engine.set_protection(WS, created.entity_id, "admin", ADMIN)
    with pytest.raises(Forbidden):
        engine.set_protection(WS, created.entity_id, "none", EDITOR)


def test_editor_protection_allows_editors(engine):
    created = _create(engine)
    engine.set_protection(WS, created.entity_id, "editor", EDITOR)
    engine.create_base_revision(WS, created.entity_id, "Still a volcano.", "", EDITOR)


def test_admin_protection_blocks_rename(engine):
    created = _create(engine)
    engine.set_protection(WS, created.entity_id, "admin", ADMIN)
    with pytest.raises(Forbidden):
        engine.rename_entity(WS, created.entity_id, "Mount Ashveil", EDITOR)


# ── watch ────────────────────────────────────────────────


def test_toggle_watch(engine):
    created = _create(engine)
    assert engine.toggle_watch(WS, created.entity_id, VIEWER) is True
    assert engine.toggle_watch(WS, created.entity_id, VIEWER) is False


# ── soft delete ──────────────────────────────────────────


def test_soft_delete_and_restore_entity(engine):
    created = _create(engine)
    engine.soft_delete(WS, "entity", created.entity_id, EDITOR)

    with pytest.raises(NotFound):
        engine.get_entity(WS, created.entity_id, VIEWER)
    with pytest.raises(NotFound):
        engine.resolve_for_context(WS, created.entity_id, VIEWER)
    assert [e.id for e in engine.list_deleted_entities(WS, VIEWER)] == [created.entity_id]

    engine.restore_deleted(WS, "entity", created.entity_id, EDITOR)
    assert engine.resolve_for_context(WS, created.entity_id, VIEWER).body == "A volcano."


def test_deleted_title_still_reserved(engine):
    created = _create(engine)
    engine.soft_delete(WS, "entity", created.entity_id, EDITOR)
    with pytest.raises(Conflict):
        _create(engine)


def test_soft_delete_unknown_type(engine):
    with pytest.raises(InvalidInput):
        engine.soft_delete(WS, "revision", "r1", ADMIN)


def test_soft_delete_protected_entity_needs_clearance(engine):
    created = _create(engine)
    engine.set_protection(WS, created.entity_id, "admin", ADMIN)
    with pytest.raises(Forbidden):
        engine.soft_delete(WS, "entity", created.entity_id, EDITOR)


def test_audit_trail(engine):
    created = _create(engine)
    engine.rename_entity(WS, created.entity_id, "Mount Ashveil", EDITOR)
    engine.set_protection(WS, created.entity_id, "editor", EDITOR)
    actions = [e.action for e in engine.audit_log(WS, ADMIN) if e.target_type == "entity"]
    assert actions == ["create", "rename", "protect"]


def test_audit_log_is_admin_only(engine):
    with pytest.raises(Forbidden):
        engine.audit_log(WS, REVIEWER)
