"""Core domain models.

All engine operations and storage functions operate on these types.
Pydantic is used for validation and serialisation at every data boundary.

Record shapes:

    Entity ──1:1── Article ──base_revision_id──▶ Revision (target=base)
       └──1:N── Overlay ──active_revision_id──▶ Revision (target=overlay)

    Revision ◀──1:N── ReviewRequest (at most one open per revision)

Revisions are frozen. The only field that ever changes on a stored revision
is ``status``, and only through ``canonwiki.workflow``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def new_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _unique(values: list[str]) -> list[str]:
    """Drop blanks and duplicates, keep first-seen order."""
    seen: set[str] = set()
    result = []
    for value in values:
        text = str(value).strip()
        if text and text not in seen:
            seen.add(text)
            result.append(text)
    return result


# ── Enums ────────────────────────────────────────────────


class Role(str, Enum):
    VIEWER = "viewer"
    EDITOR = "editor"
    REVIEWER = "reviewer"
    ADMIN = "admin"


ROLE_ORDER = {Role.VIEWER: 1, Role.EDITOR: 2, Role.REVIEWER: 3, Role.ADMIN: 4}


def role_at_least(role: Role | None, minimum: Role) -> bool:
    if role is None:
        return False
    return ROLE_ORDER[role] >= ROLE_ORDER[minimum]


class ProtectionLevel(str, Enum):
    NONE = "none"
    EDITOR = "editor"
    ADMIN = "admin"


PROTECTION_ORDER = {ProtectionLevel.NONE: 0, ProtectionLevel.EDITOR: 1, ProtectionLevel.ADMIN: 2}


class EntityType(str, Enum):
    CHARACTER = "character"
    LOCATION = "location"
    ORGANIZATION = "organization"
    EVENT = "event"
    ITEM = "item"
    CONCEPT = "concept"
    OTHER = "other"


class TruthFlag(str, Enum):
    CANONICAL = "canonical"
    RUMOR = "rumor"
    MISTAKEN = "mistaken"
    PROPAGANDA = "propaganda"
    DISPUTED = "disputed"
    UNKNOWN = "unknown"


class RevisionStatus(str, Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewStatus(str, Enum):
    OPEN = "open"
    APPROVED = "approved"
    REJECTED = "rejected"


class ViewMode(str, Enum):
    CANON = "canon"
    VIEWPOINT = "viewpoint"


# ── Entities and articles ────────────────────────────────


class Entity(BaseModel):
    """A wiki subject. Owns exactly one Article and any number of Overlays."""

    id: str = Field(default_factory=new_id)
    workspace_id: str
    title: str
    slug: str = ""
    aliases: list[str] = Field(default_factory=list)
    type: EntityType = EntityType.CONCEPT
    tags: list[str] = Field(default_factory=list)
    protection: ProtectionLevel = ProtectionLevel.NONE
    created_by: str
    updated_by: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    soft_deleted_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_protection(cls, data: Any) -> Any:
        from .protection import migrate_legacy_tags

        if isinstance(data, dict):
            return migrate_legacy_tags(data)
        return data

    @field_validator("aliases")
    @classmethod
    def _dedupe_aliases(cls, value: list[str]) -> list[str]:
        return _unique(value)

    @field_validator("tags")
    @classmethod
    def _tags_are_a_set(cls, value: list[str]) -> list[str]:
        return sorted(set(_unique(value)))

    @property
    def is_deleted(self) -> bool:
        return self.soft_deleted_at is not None


class Article(BaseModel):
    """The canonical channel of an entity. Its id is the owning entity's id."""

    id: str
    workspace_id: str
    base_revision_id: str | None = None
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def entity_id(self) -> str:
        return self.id


class Overlay(BaseModel):
    """A viewpoint-scoped variant of an entity's article.

    Scope fields are data, not identity: two overlays may share a viewpoint
    and overlapping scopes. ``canonwiki.resolution`` breaks such ties.
    """

    id: str = Field(default_factory=new_id)
    workspace_id: str
    entity_id: str
    title: str
    truth_flag: TruthFlag = TruthFlag.CANONICAL
    viewpoint_id: str | None = None
    world_from: str | None = None  # era id
    world_to: str | None = None  # era id
    story_from_chapter_id: str | None = None
    story_to_chapter_id: str | None = None
    active_revision_id: str | None = None
    created_by: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    soft_deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.soft_deleted_at is not None


# ── Revisions ────────────────────────────────────────────


class BaseTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["base"] = "base"
    article_id: str


class OverlayTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["overlay"] = "overlay"
    overlay_id: str


RevisionTarget = Annotated[BaseTarget | OverlayTarget, Field(discriminator="kind")]


class Revision(BaseModel):
    """An immutable snapshot of body text for one article or overlay."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    workspace_id: str
    target: RevisionTarget
    body: str
    change_summary: str = ""
    author_id: str
    created_at: datetime = Field(default_factory=utcnow)
    status: RevisionStatus = RevisionStatus.DRAFT
    approved_by: str | None = None
    approved_at: datetime | None = None
    parent_revision_id: str | None = None

    @property
    def target_id(self) -> str:
        if isinstance(self.target, BaseTarget):
            return self.target.article_id
        return self.target.overlay_id

    @property
    def is_base(self) -> bool:
        return isinstance(self.target, BaseTarget)


# ── Reviews ──────────────────────────────────────────────


class ReviewComment(BaseModel):
    id: str = Field(default_factory=new_id)
    author_id: str
    body: str
    created_at: datetime = Field(default_factory=utcnow)


class ReviewRequest(BaseModel):
    """A moderation queue entry for one revision."""

    id: str = Field(default_factory=new_id)
    workspace_id: str
    revision_id: str
    status: ReviewStatus = ReviewStatus.OPEN
    requested_by: str
    reviewer_ids: list[str] = Field(default_factory=list)
    comments: list[ReviewComment] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    closed_by: str | None = None
    closed_at: datetime | None = None


# ── Reference data ───────────────────────────────────────


class Viewpoint(BaseModel):
    """A named perspective, optionally anchored to the entity whose eyes it is."""

    id: str = Field(default_factory=new_id)
    workspace_id: str
    name: str
    description: str = ""
    entity_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    soft_deleted_at: datetime | None = None


class Era(BaseModel):
    id: str = Field(default_factory=new_id)
    workspace_id: str
    name: str
    created_at: datetime = Field(default_factory=utcnow)
    soft_deleted_at: datetime | None = None


class Chapter(BaseModel):
    id: str = Field(default_factory=new_id)
    workspace_id: str
    title: str
    position: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    soft_deleted_at: datetime | None = None


# ── Side-effect records ──────────────────────────────────


class AuditEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    workspace_id: str
    actor_id: str
    action: str
    target_type: str
    target_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    workspace_id: str
    user_id: str
    event_type: str
    target_type: str
    target_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


# ── Operation results ────────────────────────────────────


class CreatedEntity(BaseModel):
    entity_id: str
    article_id: str
    revision_id: str


class RevisionReceipt(BaseModel):
    """A newly appended revision and the review it opened, if any."""

    revision: Revision
    review: ReviewRequest | None = None


class CreatedOverlay(BaseModel):
    overlay: Overlay
    revision: Revision
    review: ReviewRequest


class ViewContext(BaseModel):
    mode: ViewMode = ViewMode.CANON
    viewpoint_id: str = "canon"
    era_id: str = "all"
    chapter_id: str = "all"


class Resolution(BaseModel):
    """What to show (or edit) for an entity in a given viewing context."""

    entity_id: str
    target_type: Literal["base", "overlay"]
    target_id: str
    revision_id: str | None
    body: str
    truth_flag: TruthFlag | None = None
    ambiguous: bool = False


class Comparison(BaseModel):
    canon: Resolution
    viewpoint: Resolution
