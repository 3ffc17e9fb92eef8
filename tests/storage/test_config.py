"""Tests for workspace settings merge and validation."""

import pytest

from canonwiki.config import get_settings, merge_settings
from canonwiki.errors import Forbidden, InvalidInput
from canonwiki.models import TruthFlag

from conftest import ADMIN, EDITOR, WS


def test_defaults_when_nothing_stored():
    settings = get_settings({})
    assert settings.require_base_review is False
    assert settings.default_truth_flag is TruthFlag.CANONICAL
    assert settings.overlay_tie_break == "most_recently_updated"


def test_stored_values_override_defaults():
    assert get_settings({"require_base_review": True}).require_base_review is True


def test_unknown_keys_ignored():
    merged = merge_settings({}, {"theme": "dark"})
    assert "theme" not in merged


def test_partial_update_keeps_other_keys():
    stored = merge_settings({}, {"require_base_review": True})
    stored = merge_settings(stored, {"default_truth_flag": "rumor"})
    settings = get_settings(stored)
    assert settings.require_base_review is True
    assert settings.default_truth_flag is TruthFlag.RUMOR


def test_invalid_value_rejected():
    with pytest.raises(InvalidInput):
        merge_settings({}, {"default_truth_flag": "lies"})


def test_engine_settings_roundtrip(engine):
    engine.update_settings(WS, {"require_base_review": True}, ADMIN)
    assert engine.get_settings(WS, EDITOR).require_base_review is True


def test_only_admin_updates_settings(engine):
    with pytest.raises(Forbidden):
        engine.update_settings(WS, {"require_base_review": True}, EDITOR)
