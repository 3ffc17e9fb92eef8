"""Edit protection policy.

Protection lives in the explicit ``Entity.protection`` field. Older data
stored it as a ``protected:<level>`` tag among the freeform tags; such tags
are folded into the field when an entity is loaded (migrate_legacy_tags).
The pure ``tags -> level`` function stays the stable contract either way.

Clearance:
  none   → editor role
  editor → editor role
  admin  → admin role
"""

from __future__ import annotations

from typing import Any, Iterable

from .models import PROTECTION_ORDER, ProtectionLevel, Role

PROTECTION_PREFIX = "protected:"


def is_protection_tag(tag: str) -> bool:
    return str(tag).strip().lower().startswith(PROTECTION_PREFIX)


def protection_level(tags: Iterable[str]) -> ProtectionLevel:
    """Return the highest protection level encoded in tags.

    Several ``protected:*`` tags resolve to the strongest one; unknown
    levels are ignored.
    """
    found = ProtectionLevel.NONE
    for tag in tags:
        if not is_protection_tag(tag):
            continue
        raw = str(tag).strip().lower()[len(PROTECTION_PREFIX):]
        try:
            level = ProtectionLevel(raw)
        except ValueError:
            continue
        found = higher(found, level)
    return found


def apply_protection(tags: Iterable[str], level: ProtectionLevel) -> list[str]:
    """Replace every protection tag with the single tag for level.

    ``none`` removes protection tags entirely. Other tags are kept; the
    result is sorted since tags are a set.
    """
    base = {str(t) for t in tags if not is_protection_tag(t)}
    if level is not ProtectionLevel.NONE:
        base.add(f"{PROTECTION_PREFIX}{level.value}")
    return sorted(base)


def higher(a: ProtectionLevel, b: ProtectionLevel) -> ProtectionLevel:
    return a if PROTECTION_ORDER[a] >= PROTECTION_ORDER[b] else b


def required_role(level: ProtectionLevel) -> Role:
    """Workspace role needed to edit an entity protected at level."""
    if level is ProtectionLevel.ADMIN:
        return Role.ADMIN
    return Role.EDITOR


def migrate_legacy_tags(data: dict[str, Any]) -> dict[str, Any]:
    """Fold ``protected:*`` tags of a raw entity dict into its protection field."""
    tags = data.get("tags") or []
    if not any(is_protection_tag(t) for t in tags):
        return data
    stored = ProtectionLevel(data.get("protection") or ProtectionLevel.NONE)
    migrated = dict(data)
    migrated["protection"] = higher(stored, protection_level(tags))
    migrated["tags"] = apply_protection(tags, ProtectionLevel.NONE)
    return migrated
