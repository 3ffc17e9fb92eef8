"""Per-workspace settings (review policy, overlay defaults)."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from .errors import InvalidInput
from .models import TruthFlag

_SETTINGS_DEFAULTS: dict[str, Any] = {
    "require_base_review": False,
    "default_truth_flag": TruthFlag.CANONICAL.value,
    "overlay_tie_break": "most_recently_updated",
}


class WorkspaceSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    require_base_review: bool
    default_truth_flag: TruthFlag
    overlay_tie_break: Literal["most_recently_updated"]


def get_settings(stored: dict[str, Any]) -> WorkspaceSettings:
    """Return defaults merged with stored values."""
    settings = dict(_SETTINGS_DEFAULTS)
    for key, value in stored.items():
        if key in settings:
            settings[key] = value
    return WorkspaceSettings.model_validate(settings)


def merge_settings(stored: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    """Apply a partial update and return the new stored dict.

    Unknown keys are ignored; invalid values raise InvalidInput.
    """
    merged = dict(stored)
    for key, value in fields.items():
        if key in _SETTINGS_DEFAULTS:
            merged[key] = value
    try:
        validated = get_settings(merged)
    except PydanticValidationError as e:
        raise InvalidInput(f"Invalid settings: {e.errors()[0]['msg']}")
    return validated.model_dump(mode="json")
