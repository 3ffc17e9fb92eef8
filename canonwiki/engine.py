"""Canon/overlay versioning service.

WikiEngine implements every operation the API layer exposes. Writes follow
one path:

    role + protection check → transaction (append revision, move pointer,
    change status) → commit → audit + notifications

Audit and notification failures are logged and dropped; they never fail or
undo a committed write. Reads work on a committed snapshot and never lock.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, TypeVar

from pydantic import BaseModel

from .collaborators import (
    AuditSink,
    Notifier,
    RoleChecker,
    StoreAuditSink,
    StoreNotifier,
    StoreRoleChecker,
)
from .config import WorkspaceSettings, get_settings, merge_settings
from .errors import Conflict, Forbidden, InvalidInput, InvalidTransition, NotFound, Unauthorized
from .models import (
    Article,
    AuditEntry,
    BaseTarget,
    Chapter,
    Comparison,
    CreatedEntity,
    CreatedOverlay,
    Entity,
    EntityType,
    Era,
    Notification,
    Overlay,
    OverlayTarget,
    ProtectionLevel,
    Resolution,
    ReviewComment,
    ReviewRequest,
    ReviewStatus,
    Revision,
    RevisionReceipt,
    RevisionStatus,
    Role,
    TruthFlag,
    ViewContext,
    ViewMode,
    Viewpoint,
    utcnow,
)
from .protection import PROTECTION_PREFIX, higher, is_protection_tag, protection_level, required_role
from .resolution import ALL, CANON, resolve, resolve_canon
from .storage import Storage, WorkspaceState, slugify
from .workflow import Decision, append_comment, close_review, open_review, transition_revision

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

SOFT_DELETABLE = ("entity", "overlay", "viewpoint", "era", "chapter")

_SOFT_DELETE_ROLES = {
    "entity": Role.EDITOR,
    "overlay": Role.REVIEWER,
    "viewpoint": Role.REVIEWER,
    "era": Role.EDITOR,
    "chapter": Role.EDITOR,
}

_RESERVED_REFS = {"viewpoint": CANON, "era": ALL, "chapter": ALL}


class OverlayScope(BaseModel):
    """Era and chapter window of an overlay. Blank means unscoped."""

    world_from: str | None = None
    world_to: str | None = None
    story_from_chapter_id: str | None = None
    story_to_chapter_id: str | None = None


class OverlayUpdate(BaseModel):
    """Partial overlay metadata change.

    Only fields explicitly set are applied; setting a reference to None or
    "" clears it.
    """

    title: str | None = None
    truth_flag: str | None = None
    viewpoint_id: str | None = None
    world_from: str | None = None
    world_to: str | None = None
    story_from_chapter_id: str | None = None
    story_to_chapter_id: str | None = None


_SCOPE_REFS = {
    "world_from": "era",
    "world_to": "era",
    "story_from_chapter_id": "chapter",
    "story_to_chapter_id": "chapter",
}


def _parse_enum(enum_cls: type[E], value: Any, label: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidInput(f"Invalid {label} '{value}' (expected one of: {allowed})")


def _tag_protection(tags: list[str]) -> ProtectionLevel:
    """Protection encoded in incoming tags; unknown ``protected:<x>`` levels are rejected."""
    for tag in tags:
        if is_protection_tag(tag):
            _parse_enum(ProtectionLevel, str(tag).strip()[len(PROTECTION_PREFIX):], "protection level")
    return protection_level(tags)


def _clean_title(title: str, label: str = "Title") -> str:
    text = (title or "").strip()
    if not text:
        raise InvalidInput(f"{label} is required")
    return text


class WikiEngine:
    def __init__(
        self,
        storage: Storage,
        roles: RoleChecker | None = None,
        audit: AuditSink | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._storage = storage
        self._roles = roles or StoreRoleChecker(storage)
        self._audit_sink = audit or StoreAuditSink(storage)
        self._notifier = notifier or StoreNotifier(storage)

    @property
    def storage(self) -> Storage:
        return self._storage

    # ------------------------------------------------------------------
    # Permission helpers
    # ------------------------------------------------------------------

    def _require_role(self, workspace_id: str, actor: str, minimum: Role) -> None:
        if not actor or not actor.strip():
            raise Unauthorized("Sign in required")
        if self._storage.snapshot(workspace_id) is None:
            raise NotFound(f"Workspace '{workspace_id}' not found")
        if not self._roles.has_role(actor, workspace_id, minimum):
            raise Forbidden(f"Requires {minimum.value} role in workspace '{workspace_id}'")

    def _require_clearance(self, workspace_id: str, actor: str, level: ProtectionLevel) -> None:
        needed = required_role(level)
        if not self._roles.has_role(actor, workspace_id, needed):
            raise Forbidden(f"Requires {needed.value} approval: this article is protected")

    # ------------------------------------------------------------------
    # Fire-and-forget collaborators
    # ------------------------------------------------------------------

    def _fire(self, what: str, fn: Callable[..., None], *args: Any) -> None:
        try:
            fn(*args)
        except Exception as e:
            logger.warning(f"{what} failed: {e}")

    def _audit(
        self,
        workspace_id: str,
        actor: str,
        action: str,
        target_type: str,
        target_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._fire(
            "audit", self._audit_sink.record,
            workspace_id, actor, action, target_type, target_id, metadata,
        )

    def _notify_watchers(
        self, workspace_id: str, entity_id: str, event_type: str, payload: dict[str, Any]
    ) -> None:
        self._fire(
            "watcher notification", self._notifier.notify_watchers,
            workspace_id, "entity", entity_id, event_type, payload,
        )

    def _notify_users(
        self,
        workspace_id: str,
        user_ids: Iterable[str],
        event_type: str,
        target_type: str,
        target_id: str,
        payload: dict[str, Any],
    ) -> None:
        for user_id in dict.fromkeys(user_ids):
            self._fire(
                "notification", self._notifier.notify_user,
                workspace_id, user_id, event_type, target_type, target_id, payload,
            )

    # ------------------------------------------------------------------
    # Record lookups inside a loaded state
    # ------------------------------------------------------------------

    def _read(self, workspace_id: str) -> WorkspaceState:
        state = self._storage.snapshot(workspace_id)
        if state is None:
            raise NotFound(f"Workspace '{workspace_id}' not found")
        return state

    @staticmethod
    def _entity(state: WorkspaceState, entity_id: str, *, include_deleted: bool = False) -> Entity:
        entity = state.entities.get(entity_id)
        if entity is None or (entity.is_deleted and not include_deleted):
            raise NotFound(f"Entity '{entity_id}' not found")
        return entity

    @staticmethod
    def _article(state: WorkspaceState, entity_id: str) -> Article:
        article = state.articles.get(entity_id)
        if article is None:
            raise NotFound(f"Article for entity '{entity_id}' not found")
        return article

    def _overlay(self, state: WorkspaceState, overlay_id: str) -> Overlay:
        overlay = state.overlays.get(overlay_id)
        if overlay is None or overlay.is_deleted:
            raise NotFound(f"Overlay '{overlay_id}' not found")
        self._entity(state, overlay.entity_id)
        return overlay

    @staticmethod
    def _revision(state: WorkspaceState, revision_id: str) -> Revision:
        revision = state.revisions.get(revision_id)
        if revision is None:
            raise NotFound(f"Revision '{revision_id}' not found")
        return revision

    @staticmethod
    def _review(state: WorkspaceState, review_id: str) -> ReviewRequest:
        review = state.reviews.get(review_id)
        if review is None:
            raise NotFound(f"Review '{review_id}' not found")
        return review

    @staticmethod
    def _entity_id_for(state: WorkspaceState, revision: Revision) -> str:
        if isinstance(revision.target, BaseTarget):
            return revision.target.article_id
        return state.overlays[revision.target.overlay_id].entity_id

    def _live_target(self, state: WorkspaceState, revision: Revision) -> Entity:
        """Check the revision's article or overlay is still live; return its entity."""
        if isinstance(revision.target, BaseTarget):
            entity = self._entity(state, revision.target.article_id)
            self._article(state, entity.id)
            return entity
        overlay = self._overlay(state, revision.target.overlay_id)
        return state.entities[overlay.entity_id]

    @staticmethod
    def _title_taken(state: WorkspaceState, title: str, exclude_id: str | None = None) -> Entity | None:
        wanted = title.casefold()
        for entity in state.entities.values():
            if entity.id != exclude_id and entity.title.casefold() == wanted:
                return entity
        return None

    @staticmethod
    def _reference(state: WorkspaceState, kind: str, value: str | None) -> str | None:
        """Validate a viewpoint/era/chapter id. Blank clears the reference."""
        if value is not None and not isinstance(value, str):
            raise InvalidInput(f"Invalid {kind} id {value!r}")
        text = (value or "").strip()
        if not text:
            return None
        if text.lower() == _RESERVED_REFS[kind]:
            raise InvalidInput(f"'{text}' is reserved and cannot be used as a {kind} id")
        records = {"viewpoint": state.viewpoints, "era": state.eras, "chapter": state.chapters}[kind]
        record = records.get(text)
        if record is None or record.soft_deleted_at is not None:
            raise NotFound(f"{kind.capitalize()} '{text}' not found")
        return text

    @staticmethod
    def _advance_pointer(state: WorkspaceState, revision: Revision, at: datetime) -> None:
        """Point the revision's article or overlay at it. Revision must be approved."""
        if revision.status is not RevisionStatus.APPROVED:
            raise InvalidTransition(f"Revision {revision.id} is {revision.status.value}, not approved")
        if isinstance(revision.target, BaseTarget):
            article = state.articles[revision.target.article_id]
            article.base_revision_id = revision.id
            article.updated_at = at
            state.entities[article.entity_id].updated_at = at
        else:
            overlay = state.overlays[revision.target.overlay_id]
            overlay.active_revision_id = revision.id
            overlay.updated_at = at

    # ------------------------------------------------------------------
    # Workspaces and membership
    # ------------------------------------------------------------------

    def create_workspace(self, workspace_id: str, owner_id: str) -> WorkspaceState:
        """Create a workspace with owner_id as its first admin."""
        if not owner_id or not owner_id.strip():
            raise Unauthorized("Sign in required")
        if not workspace_id or slugify(workspace_id) != workspace_id:
            raise InvalidInput(
                f"Invalid workspace id '{workspace_id}' (use lowercase letters, digits and hyphens)"
            )
        try:
            state = self._storage.create_workspace(workspace_id, owner_id)
        except FileExistsError:
            raise Conflict(f"Workspace '{workspace_id}' already exists")
        logger.info("created workspace %s owned by %s", workspace_id, owner_id)
        self._audit(workspace_id, owner_id, "create", "workspace", workspace_id)
        return state

    def add_member(self, workspace_id: str, user_id: str, role: Role | str, actor: str) -> Role:
        """Grant (or change) a member's role."""
        self._require_role(workspace_id, actor, Role.ADMIN)
        user_id = _clean_title(user_id, "User id")
        parsed = _parse_enum(Role, role, "role")
        with self._storage.transaction(workspace_id) as state:
            admins = [u for u, r in state.members.items() if r is Role.ADMIN]
            if admins == [user_id] and parsed is not Role.ADMIN:
                raise Conflict("A workspace needs at least one admin")
            state.members[user_id] = parsed
        self._audit(workspace_id, actor, "update_role", "member", user_id, {"role": parsed.value})
        return parsed

    def get_role(self, workspace_id: str, user_id: str) -> Role | None:
        return self._roles.role_of(user_id, workspace_id)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self, workspace_id: str, actor: str) -> WorkspaceSettings:
        self._require_role(workspace_id, actor, Role.VIEWER)
        return get_settings(self._read(workspace_id).settings)

    def update_settings(self, workspace_id: str, fields: dict[str, Any], actor: str) -> WorkspaceSettings:
        self._require_role(workspace_id, actor, Role.ADMIN)
        with self._storage.transaction(workspace_id) as state:
            state.settings = merge_settings(state.settings, fields)
            settings = get_settings(state.settings)
        self._audit(workspace_id, actor, "update", "settings", workspace_id, dict(fields))
        return settings

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def create_entity_with_article(
        self,
        workspace_id: str,
        title: str,
        type: EntityType | str,
        initial_body: str,
        author: str,
        *,
        aliases: Iterable[str] = (),
        tags: Iterable[str] = (),
        change_summary: str = "Initial version",
    ) -> CreatedEntity:
        """Create an entity, its article and an approved first revision in one commit."""
        self._require_role(workspace_id, author, Role.EDITOR)
        title = _clean_title(title)
        entity_type = _parse_enum(EntityType, type, "entity type")
        tags = list(tags)
        self._require_clearance(workspace_id, author, _tag_protection(tags))

        with self._storage.transaction(workspace_id) as state:
            clash = self._title_taken(state, title)
            if clash is not None:
                raise Conflict(f"Title '{clash.title}' already exists")
            now = utcnow()
            entity = Entity(
                workspace_id=workspace_id,
                title=title,
                slug=slugify(title),
                aliases=list(aliases),
                type=entity_type,
                tags=tags,
                created_by=author,
                updated_by=author,
                created_at=now,
                updated_at=now,
            )
            revision = Revision(
                workspace_id=workspace_id,
                target=BaseTarget(article_id=entity.id),
                body=initial_body,
                change_summary=change_summary,
                author_id=author,
                created_at=now,
                status=RevisionStatus.APPROVED,
                approved_by=author,
                approved_at=now,
            )
            state.entities[entity.id] = entity
            state.articles[entity.id] = Article(
                id=entity.id, workspace_id=workspace_id, base_revision_id=revision.id, updated_at=now
            )
            state.revisions[revision.id] = revision

        logger.info("created entity %s '%s' in %s", entity.id, title, workspace_id)
        self._audit(workspace_id, author, "create", "entity", entity.id,
                    {"title": title, "type": entity_type.value})
        self._audit(workspace_id, author, "create", "revision", revision.id, {"targetType": "base"})
        return CreatedEntity(entity_id=entity.id, article_id=entity.id, revision_id=revision.id)

    def get_entity(
        self, workspace_id: str, entity_id: str, actor: str, *, include_deleted: bool = False
    ) -> Entity:
        self._require_role(workspace_id, actor, Role.VIEWER)
        return self._entity(self._read(workspace_id), entity_id, include_deleted=include_deleted)

    def find_entity(self, workspace_id: str, title: str, actor: str) -> Entity | None:
        """Case-insensitive title lookup, falling back to aliases (redirects)."""
        self._require_role(workspace_id, actor, Role.VIEWER)
        wanted = title.strip().casefold()
        live = [e for e in self._read(workspace_id).entities.values() if not e.is_deleted]
        for entity in live:
            if entity.title.casefold() == wanted:
                return entity
        for entity in sorted(live, key=lambda e: e.created_at):
            if any(alias.casefold() == wanted for alias in entity.aliases):
                return entity
        return None

    def list_entities(
        self,
        workspace_id: str,
        actor: str,
        *,
        type: EntityType | str | None = None,
        tag: str | None = None,
        query: str | None = None,
    ) -> list[Entity]:
        """Live entities, most recently updated first."""
        self._require_role(workspace_id, actor, Role.VIEWER)
        wanted_type = _parse_enum(EntityType, type, "entity type") if type else None
        needle = query.strip().casefold() if query else ""
        result = []
        for entity in self._read(workspace_id).entities.values():
            if entity.is_deleted:
                continue
            if wanted_type is not None and entity.type is not wanted_type:
                continue
            if tag and tag not in entity.tags:
                continue
            if needle and not (
                needle in entity.title.casefold()
                or any(needle == a.casefold() for a in entity.aliases)
                or any(needle == t.casefold() for t in entity.tags)
            ):
                continue
            result.append(entity)
        return sorted(result, key=lambda e: (e.updated_at, e.id), reverse=True)

    def list_deleted_entities(self, workspace_id: str, actor: str) -> list[Entity]:
        self._require_role(workspace_id, actor, Role.VIEWER)
        deleted = [e for e in self._read(workspace_id).entities.values() if e.is_deleted]
        return sorted(deleted, key=lambda e: e.soft_deleted_at, reverse=True)

    def rename_entity(
        self,
        workspace_id: str,
        entity_id: str,
        new_title: str,
        actor: str,
        *,
        add_redirect_alias: bool = True,
    ) -> Entity:
        """Retitle an entity, optionally keeping the old title as an alias."""
        self._require_role(workspace_id, actor, Role.EDITOR)
        new_title = _clean_title(new_title)
        with self._storage.transaction(workspace_id) as state:
            entity = self._entity(state, entity_id)
            self._require_clearance(workspace_id, actor, entity.protection)
            clash = self._title_taken(state, new_title, exclude_id=entity.id)
            if clash is not None:
                raise Conflict(f"Title '{clash.title}' already exists")
            old_title = entity.title
            aliases = list(entity.aliases)
            if add_redirect_alias and old_title.casefold() != new_title.casefold():
                if not any(a.casefold() == old_title.casefold() for a in aliases):
                    aliases.append(old_title)
            entity.aliases = [a for a in aliases if a.casefold() != new_title.casefold()]
            entity.title = new_title
            entity.slug = slugify(new_title)
            entity.updated_by = actor
            entity.updated_at = utcnow()

        logger.info("renamed entity %s '%s' → '%s'", entity_id, old_title, new_title)
        self._audit(workspace_id, actor, "rename", "entity", entity_id, {"from": old_title, "to": new_title})
        self._notify_watchers(workspace_id, entity_id, "entity_renamed",
                              {"entityId": entity_id, "from": old_title, "to": new_title})
        return entity

    def update_entity(
        self,
        workspace_id: str,
        entity_id: str,
        actor: str,
        *,
        type: EntityType | str | None = None,
        aliases: Iterable[str] | None = None,
        tags: Iterable[str] | None = None,
    ) -> Entity:
        """Change type, aliases or tags.

        Protection markers among the new tags set the protection level; a
        change needs clearance for the higher of the current and new level.
        """
        self._require_role(workspace_id, actor, Role.EDITOR)
        entity_type = _parse_enum(EntityType, type, "entity type") if type else None
        with self._storage.transaction(workspace_id) as state:
            entity = self._entity(state, entity_id)
            self._require_clearance(workspace_id, actor, entity.protection)
            data = entity.model_dump()
            if entity_type is not None:
                data["type"] = entity_type
            if aliases is not None:
                data["aliases"] = list(aliases)
            if tags is not None:
                tags = list(tags)
                requested = _tag_protection(tags)
                marked = any(is_protection_tag(t) for t in tags)
                if marked and requested is not entity.protection:
                    self._require_clearance(workspace_id, actor, higher(entity.protection, requested))
                data["tags"] = [t for t in tags if not is_protection_tag(t)]
                data["protection"] = requested if marked else entity.protection
            data["updated_by"] = actor
            data["updated_at"] = utcnow()
            updated = Entity.model_validate(data)
            state.entities[entity_id] = updated

        self._audit(workspace_id, actor, "update", "entity", entity_id,
                    {"protection": updated.protection.value})
        return updated

    def set_protection(
        self, workspace_id: str, entity_id: str, level: ProtectionLevel | str, actor: str
    ) -> Entity:
        """Set an entity's protection level.

        Needs clearance for both the current and the new level, so only an
        admin can add or lift admin protection.
        """
        self._require_role(workspace_id, actor, Role.EDITOR)
        parsed = _parse_enum(ProtectionLevel, level, "protection level")
        with self._storage.transaction(workspace_id) as state:
            entity = self._entity(state, entity_id)
            previous = entity.protection
            self._require_clearance(workspace_id, actor, higher(previous, parsed))
            entity.protection = parsed
            entity.updated_by = actor
            entity.updated_at = utcnow()

        self._audit(workspace_id, actor, "protect", "entity", entity_id,
                    {"level": parsed.value, "previous": previous.value})
        return entity

    @staticmethod
    def get_protection(tags: Iterable[str]) -> ProtectionLevel:
        return protection_level(tags)

    def toggle_watch(self, workspace_id: str, entity_id: str, user_id: str) -> bool:
        """Start or stop watching an entity. Returns True if now watching."""
        self._require_role(workspace_id, user_id, Role.VIEWER)
        with self._storage.transaction(workspace_id) as state:
            self._entity(state, entity_id)
            watchers = state.watches.setdefault(entity_id, [])
            if user_id in watchers:
                watchers.remove(user_id)
                watching = False
            else:
                watchers.append(user_id)
                watching = True
        return watching

    # ------------------------------------------------------------------
    # Revisions
    # ------------------------------------------------------------------

    def create_base_revision(
        self, workspace_id: str, entity_id: str, body: str, summary: str, author: str
    ) -> RevisionReceipt:
        """Append a base-article revision.

        Approved immediately and made canon, unless the workspace setting
        ``require_base_review`` routes it through review as a draft.
        """
        self._require_role(workspace_id, author, Role.EDITOR)
        review = None
        with self._storage.transaction(workspace_id) as state:
            entity = self._entity(state, entity_id)
            article = self._article(state, entity_id)
            self._require_clearance(workspace_id, author, entity.protection)
            now = utcnow()
            revision = Revision(
                workspace_id=workspace_id,
                target=BaseTarget(article_id=article.id),
                body=body,
                change_summary=summary or "Update",
                author_id=author,
                created_at=now,
                parent_revision_id=article.base_revision_id,
            )
            if get_settings(state.settings).require_base_review:
                review = open_review(revision, author, state.reviews.values())
                state.reviews[review.id] = review
                state.revisions[revision.id] = revision
            else:
                revision = revision.model_copy(update={
                    "status": RevisionStatus.APPROVED, "approved_by": author, "approved_at": now,
                })
                state.revisions[revision.id] = revision
                self._advance_pointer(state, revision, now)

        self._audit(workspace_id, author, "create", "revision", revision.id, {"targetType": "base"})
        if review is not None:
            self._audit(workspace_id, author, "submit_review", "revision", revision.id)
        else:
            logger.info("base revision %s is now canon for entity %s", revision.id, entity_id)
            self._notify_watchers(workspace_id, entity_id, "article_updated",
                                  {"entityId": entity_id, "revisionId": revision.id})
        return RevisionReceipt(revision=revision, review=review)

    def create_base_draft(
        self,
        workspace_id: str,
        entity_id: str,
        body: str,
        author: str,
        *,
        summary: str = "LLM draft",
        submit: bool = True,
    ) -> RevisionReceipt:
        """Append a base-article draft that needs review before it becomes canon."""
        self._require_role(workspace_id, author, Role.EDITOR)
        review = None
        with self._storage.transaction(workspace_id) as state:
            entity = self._entity(state, entity_id)
            article = self._article(state, entity_id)
            self._require_clearance(workspace_id, author, entity.protection)
            revision = Revision(
                workspace_id=workspace_id,
                target=BaseTarget(article_id=article.id),
                body=body,
                change_summary=(summary or "").strip() or "LLM draft",
                author_id=author,
                parent_revision_id=article.base_revision_id,
            )
            state.revisions[revision.id] = revision
            if submit:
                review = open_review(revision, author, state.reviews.values())
                state.reviews[review.id] = review

        self._audit(workspace_id, author, "create_draft", "revision", revision.id, {"targetType": "base"})
        if review is not None:
            self._audit(workspace_id, author, "submit_review", "revision", revision.id)
        return RevisionReceipt(revision=revision, review=review)

    def create_overlay_revision(
        self, workspace_id: str, overlay_id: str, body: str, summary: str, author: str
    ) -> RevisionReceipt:
        """Append a draft overlay revision and open its review.

        The overlay's active pointer moves only when the review is approved.
        """
        self._require_role(workspace_id, author, Role.REVIEWER)
        with self._storage.transaction(workspace_id) as state:
            overlay = self._overlay(state, overlay_id)
            revision = Revision(
                workspace_id=workspace_id,
                target=OverlayTarget(overlay_id=overlay.id),
                body=body,
                change_summary=summary or "Overlay update",
                author_id=author,
                parent_revision_id=overlay.active_revision_id,
            )
            review = open_review(revision, author, state.reviews.values())
            state.revisions[revision.id] = revision
            state.reviews[review.id] = review

        self._audit(workspace_id, author, "create", "revision", revision.id, {"targetType": "overlay"})
        self._audit(workspace_id, author, "submit_review", "revision", revision.id)
        return RevisionReceipt(revision=revision, review=review)

    def restore_revision(self, workspace_id: str, revision_id: str, author: str) -> RevisionReceipt:
        """Branch a new draft off an old revision, copying its body.

        The draft's parent is the restored revision, not the current head.
        Restores always go through review, base article included.
        """
        if not author or not author.strip():
            raise Unauthorized("Sign in required")
        with self._storage.transaction(workspace_id) as state:
            source = self._revision(state, revision_id)
            if source.is_base:
                self._require_role(workspace_id, author, Role.EDITOR)
                entity = self._live_target(state, source)
                self._require_clearance(workspace_id, author, entity.protection)
            else:
                self._require_role(workspace_id, author, Role.REVIEWER)
                self._live_target(state, source)
            revision = Revision(
                workspace_id=workspace_id,
                target=source.target,
                body=source.body,
                change_summary=f"Restore from {source.id}",
                author_id=author,
                parent_revision_id=source.id,
            )
            review = open_review(revision, author, state.reviews.values())
            state.revisions[revision.id] = revision
            state.reviews[review.id] = review

        self._audit(workspace_id, author, "restore_revision", "revision", revision.id, {"from": revision_id})
        return RevisionReceipt(revision=revision, review=review)

    def get_revision(self, workspace_id: str, revision_id: str, actor: str) -> Revision:
        self._require_role(workspace_id, actor, Role.VIEWER)
        return self._revision(self._read(workspace_id), revision_id)

    def list_revisions(
        self, workspace_id: str, target_type: str, target_id: str, actor: str
    ) -> list[Revision]:
        """Every revision of an article or overlay, newest first."""
        self._require_role(workspace_id, actor, Role.VIEWER)
        if target_type not in ("base", "overlay"):
            raise InvalidInput(f"Invalid target type '{target_type}' (expected base or overlay)")
        state = self._read(workspace_id)
        if target_type == "base":
            self._article(state, target_id)
        elif target_id not in state.overlays:
            raise NotFound(f"Overlay '{target_id}' not found")
        found = [
            r for r in state.revisions.values()
            if r.target.kind == target_type and r.target_id == target_id
        ]
        return sorted(found, key=lambda r: (r.created_at, r.id), reverse=True)

    def revision_lineage(self, workspace_id: str, revision_id: str, actor: str) -> list[Revision]:
        """Walk parent links from a revision back to its root."""
        self._require_role(workspace_id, actor, Role.VIEWER)
        state = self._read(workspace_id)
        chain = []
        seen: set[str] = set()
        current: str | None = revision_id
        while current is not None and current not in seen:
            revision = self._revision(state, current)
            chain.append(revision)
            seen.add(current)
            current = revision.parent_revision_id
        return chain

    # ------------------------------------------------------------------
    # Review workflow
    # ------------------------------------------------------------------

    def submit_for_review(self, workspace_id: str, revision_id: str, actor: str) -> ReviewRequest:
        """Open a review for a draft that has none open."""
        if not actor or not actor.strip():
            raise Unauthorized("Sign in required")
        with self._storage.transaction(workspace_id) as state:
            revision = self._revision(state, revision_id)
            entity = self._live_target(state, revision)
            if revision.is_base:
                self._require_role(workspace_id, actor, Role.EDITOR)
                self._require_clearance(workspace_id, actor, entity.protection)
            else:
                self._require_role(workspace_id, actor, Role.REVIEWER)
            review = open_review(revision, actor, state.reviews.values())
            state.reviews[review.id] = review

        self._audit(workspace_id, actor, "submit_review", "revision", revision_id)
        return review

    def approve_review(self, workspace_id: str, review_id: str, approver: str) -> ReviewRequest:
        """Approve a review: the revision becomes approved and current.

        A second approval of the same review loses with InvalidTransition.
        """
        self._require_role(workspace_id, approver, Role.REVIEWER)
        with self._storage.transaction(workspace_id) as state:
            review = self._review(state, review_id)
            revision = self._revision(state, review.revision_id)
            entity = self._live_target(state, revision)
            if revision.is_base:
                self._require_clearance(workspace_id, approver, entity.protection)
            now = utcnow()
            closed = close_review(review, Decision.APPROVE, approver, now)
            approved = transition_revision(revision, Decision.APPROVE, approver, now)
            state.reviews[closed.id] = closed
            state.revisions[approved.id] = approved
            self._advance_pointer(state, approved, now)

        logger.info("approved review %s; revision %s is now current", review_id, approved.id)
        payload = {"reviewId": review_id, "revisionId": approved.id}
        self._audit(workspace_id, approver, "approve", "review", review_id, {"revisionId": approved.id})
        self._notify_users(workspace_id, [approved.author_id, closed.requested_by],
                           "review_approved", "review", review_id, payload)
        self._notify_watchers(workspace_id, entity.id, "revision_approved", payload)
        return closed

    def reject_review(
        self, workspace_id: str, review_id: str, reason: str, approver: str
    ) -> ReviewRequest:
        """Reject a review. Current pointers stay where they were."""
        self._require_role(workspace_id, approver, Role.REVIEWER)
        reason = (reason or "").strip()
        with self._storage.transaction(workspace_id) as state:
            review = self._review(state, review_id)
            revision = self._revision(state, review.revision_id)
            now = utcnow()
            if reason and review.status is ReviewStatus.OPEN:
                append_comment(review, approver, reason, now)
            closed = close_review(review, Decision.REJECT, approver, now)
            rejected = transition_revision(revision, Decision.REJECT, approver, now)
            state.reviews[closed.id] = closed
            state.revisions[rejected.id] = rejected

        payload = {"reviewId": review_id, "revisionId": rejected.id, "reason": reason}
        self._audit(workspace_id, approver, "reject", "review", review_id, {"reason": reason})
        self._notify_users(workspace_id, [rejected.author_id, closed.requested_by],
                           "review_rejected", "review", review_id, payload)
        return closed

    def add_review_comment(
        self, workspace_id: str, review_id: str, body: str, author: str
    ) -> ReviewComment:
        """Append a comment to an open review. Never touches revision content."""
        self._require_role(workspace_id, author, Role.VIEWER)
        with self._storage.transaction(workspace_id) as state:
            review = self._review(state, review_id)
            comment = append_comment(review, author, body)
            entity_id = self._entity_id_for(state, self._revision(state, review.revision_id))

        payload = {"reviewId": review_id, "commentId": comment.id}
        self._audit(workspace_id, author, "comment", "review", review_id)
        if review.requested_by != author:
            self._notify_users(workspace_id, [review.requested_by], "review_comment", "review", review_id, payload)
        self._notify_watchers(workspace_id, entity_id, "review_comment", payload)
        return comment

    def assign_reviewer(
        self, workspace_id: str, review_id: str, reviewer_id: str, actor: str
    ) -> ReviewRequest:
        self._require_role(workspace_id, actor, Role.ADMIN)
        if not self._roles.has_role(reviewer_id, workspace_id, Role.REVIEWER):
            raise InvalidInput(f"User '{reviewer_id}' cannot review in this workspace")
        with self._storage.transaction(workspace_id) as state:
            review = self._review(state, review_id)
            if review.status is not ReviewStatus.OPEN:
                raise InvalidTransition(f"Review {review_id} is already {review.status.value}")
            if reviewer_id not in review.reviewer_ids:
                review.reviewer_ids.append(reviewer_id)
                review.updated_at = utcnow()

        self._audit(workspace_id, actor, "assign_reviewer", "review", review_id, {"reviewerId": reviewer_id})
        self._notify_users(workspace_id, [reviewer_id], "review_assigned", "review", review_id,
                           {"reviewId": review_id})
        return review

    def get_review(self, workspace_id: str, review_id: str, actor: str) -> ReviewRequest:
        self._require_role(workspace_id, actor, Role.VIEWER)
        return self._review(self._read(workspace_id), review_id)

    def list_reviews(
        self, workspace_id: str, actor: str, *, status: ReviewStatus | str | None = None
    ) -> list[ReviewRequest]:
        """Review queue, newest first, optionally filtered by status."""
        self._require_role(workspace_id, actor, Role.VIEWER)
        wanted = _parse_enum(ReviewStatus, status, "review status") if status else None
        reviews = [
            r for r in self._read(workspace_id).reviews.values()
            if wanted is None or r.status is wanted
        ]
        return sorted(reviews, key=lambda r: (r.created_at, r.id), reverse=True)

    # ------------------------------------------------------------------
    # Overlays
    # ------------------------------------------------------------------

    def create_overlay(
        self,
        workspace_id: str,
        entity_id: str,
        title: str,
        author: str,
        *,
        body: str = "",
        change_summary: str = "Overlay draft",
        truth_flag: TruthFlag | str | None = None,
        viewpoint_id: str | None = None,
        scope: OverlayScope | None = None,
    ) -> CreatedOverlay:
        """Create an overlay with a draft first revision awaiting review."""
        self._require_role(workspace_id, author, Role.REVIEWER)
        title = _clean_title(title)
        scope = scope or OverlayScope()
        with self._storage.transaction(workspace_id) as state:
            entity = self._entity(state, entity_id)
            flag = _parse_enum(
                TruthFlag, truth_flag or get_settings(state.settings).default_truth_flag, "truth flag"
            )
            refs = {
                field: self._reference(state, kind, getattr(scope, field))
                for field, kind in _SCOPE_REFS.items()
            }
            overlay = Overlay(
                workspace_id=workspace_id,
                entity_id=entity.id,
                title=title,
                truth_flag=flag,
                viewpoint_id=self._reference(state, "viewpoint", viewpoint_id),
                created_by=author,
                **refs,
            )
            revision = Revision(
                workspace_id=workspace_id,
                target=OverlayTarget(overlay_id=overlay.id),
                body=body,
                change_summary=change_summary or "Overlay draft",
                author_id=author,
            )
            review = open_review(revision, author, state.reviews.values())
            state.overlays[overlay.id] = overlay
            state.revisions[revision.id] = revision
            state.reviews[review.id] = review

        logger.info("created overlay %s '%s' on entity %s", overlay.id, title, entity_id)
        self._audit(workspace_id, author, "create", "overlay", overlay.id, {"entityId": entity_id})
        self._audit(workspace_id, author, "create", "revision", revision.id, {"targetType": "overlay"})
        self._audit(workspace_id, author, "submit_review", "revision", revision.id)
        return CreatedOverlay(overlay=overlay, revision=revision, review=review)

    def update_overlay(
        self, workspace_id: str, overlay_id: str, changes: OverlayUpdate, actor: str
    ) -> Overlay:
        """Apply metadata changes; every referenced id must exist."""
        self._require_role(workspace_id, actor, Role.REVIEWER)
        with self._storage.transaction(workspace_id) as state:
            overlay = self._overlay(state, overlay_id)
            for field in changes.model_fields_set:
                value = getattr(changes, field)
                if field == "title":
                    overlay.title = _clean_title(value)
                elif field == "truth_flag":
                    overlay.truth_flag = _parse_enum(TruthFlag, value, "truth flag")
                elif field == "viewpoint_id":
                    overlay.viewpoint_id = self._reference(state, "viewpoint", value)
                else:
                    setattr(overlay, field, self._reference(state, _SCOPE_REFS[field], value))
            overlay.updated_at = utcnow()

        self._audit(workspace_id, actor, "update", "overlay", overlay_id,
                    {"fields": sorted(changes.model_fields_set)})
        return overlay

    def get_overlay(self, workspace_id: str, overlay_id: str, actor: str) -> Overlay:
        self._require_role(workspace_id, actor, Role.VIEWER)
        return self._overlay(self._read(workspace_id), overlay_id)

    def list_overlays(
        self, workspace_id: str, entity_id: str, actor: str, *, include_deleted: bool = False
    ) -> list[Overlay]:
        self._require_role(workspace_id, actor, Role.VIEWER)
        state = self._read(workspace_id)
        self._entity(state, entity_id)
        overlays = [
            o for o in state.overlays.values()
            if o.entity_id == entity_id and (include_deleted or not o.is_deleted)
        ]
        return sorted(overlays, key=lambda o: (o.created_at, o.id))

    # ------------------------------------------------------------------
    # Reference data: viewpoints, eras, chapters
    # ------------------------------------------------------------------

    def create_viewpoint(
        self,
        workspace_id: str,
        name: str,
        actor: str,
        *,
        description: str = "",
        entity_id: str | None = None,
    ) -> Viewpoint:
        self._require_role(workspace_id, actor, Role.REVIEWER)
        name = _clean_title(name, "Name")
        with self._storage.transaction(workspace_id) as state:
            if entity_id:
                self._entity(state, entity_id)
            viewpoint = Viewpoint(
                workspace_id=workspace_id, name=name, description=description,
                entity_id=entity_id or None,
            )
            state.viewpoints[viewpoint.id] = viewpoint
        self._audit(workspace_id, actor, "create", "viewpoint", viewpoint.id, {"name": name})
        return viewpoint

    def create_era(self, workspace_id: str, name: str, actor: str) -> Era:
        self._require_role(workspace_id, actor, Role.EDITOR)
        name = _clean_title(name, "Name")
        with self._storage.transaction(workspace_id) as state:
            era = Era(workspace_id=workspace_id, name=name)
            state.eras[era.id] = era
        self._audit(workspace_id, actor, "create", "era", era.id, {"name": name})
        return era

    def create_chapter(self, workspace_id: str, title: str, actor: str, *, position: int = 0) -> Chapter:
        self._require_role(workspace_id, actor, Role.EDITOR)
        title = _clean_title(title)
        with self._storage.transaction(workspace_id) as state:
            chapter = Chapter(workspace_id=workspace_id, title=title, position=position)
            state.chapters[chapter.id] = chapter
        self._audit(workspace_id, actor, "create", "chapter", chapter.id, {"title": title})
        return chapter

    def list_viewpoints(self, workspace_id: str, actor: str) -> list[Viewpoint]:
        self._require_role(workspace_id, actor, Role.VIEWER)
        live = [v for v in self._read(workspace_id).viewpoints.values() if v.soft_deleted_at is None]
        return sorted(live, key=lambda v: v.name.casefold())

    def list_eras(self, workspace_id: str, actor: str) -> list[Era]:
        self._require_role(workspace_id, actor, Role.VIEWER)
        live = [e for e in self._read(workspace_id).eras.values() if e.soft_deleted_at is None]
        return sorted(live, key=lambda e: e.created_at)

    def list_chapters(self, workspace_id: str, actor: str) -> list[Chapter]:
        self._require_role(workspace_id, actor, Role.VIEWER)
        live = [c for c in self._read(workspace_id).chapters.values() if c.soft_deleted_at is None]
        return sorted(live, key=lambda c: (c.position, c.created_at))

    # ------------------------------------------------------------------
    # Soft delete / restore
    # ------------------------------------------------------------------

    def soft_delete(self, workspace_id: str, target_type: str, target_id: str, actor: str) -> None:
        self._set_deleted(workspace_id, target_type, target_id, actor, deleted=True)

    def restore_deleted(self, workspace_id: str, target_type: str, target_id: str, actor: str) -> None:
        self._set_deleted(workspace_id, target_type, target_id, actor, deleted=False)

    def _set_deleted(
        self, workspace_id: str, target_type: str, target_id: str, actor: str, *, deleted: bool
    ) -> None:
        if target_type not in SOFT_DELETABLE:
            raise InvalidInput(f"Unsupported target type '{target_type}'")
        self._require_role(workspace_id, actor, _SOFT_DELETE_ROLES[target_type])
        with self._storage.transaction(workspace_id) as state:
            records = {
                "entity": state.entities,
                "overlay": state.overlays,
                "viewpoint": state.viewpoints,
                "era": state.eras,
                "chapter": state.chapters,
            }[target_type]
            record = records.get(target_id)
            if record is None:
                raise NotFound(f"{target_type.capitalize()} '{target_id}' not found")
            if isinstance(record, Entity):
                self._require_clearance(workspace_id, actor, record.protection)
            if deleted and record.soft_deleted_at is None:
                record.soft_deleted_at = utcnow()
            elif not deleted:
                record.soft_deleted_at = None

        action = "delete" if deleted else "restore"
        self._audit(workspace_id, actor, action, target_type, target_id)
        if target_type == "entity":
            self._notify_watchers(workspace_id, target_id, f"entity_{action}d", {"entityId": target_id})

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @staticmethod
    def _context(mode: ViewMode | str, viewpoint_id: str | None, era_id: str | None,
                 chapter_id: str | None) -> ViewContext:
        return ViewContext(
            mode=_parse_enum(ViewMode, mode or ViewMode.CANON, "view mode"),
            viewpoint_id=(viewpoint_id or "").strip() or CANON,
            era_id=(era_id or "").strip() or ALL,
            chapter_id=(chapter_id or "").strip() or ALL,
        )

    def _resolve(
        self, workspace_id: str, entity_id: str, actor: str, context: ViewContext, *, for_edit: bool
    ) -> Resolution:
        self._require_role(workspace_id, actor, Role.VIEWER)
        state = self._read(workspace_id)
        entity = self._entity(state, entity_id)
        article = self._article(state, entity.id)
        overlays = [o for o in state.overlays.values() if o.entity_id == entity.id]
        return resolve(article, overlays, state.revisions, context, for_edit=for_edit)

    def resolve_for_context(
        self,
        workspace_id: str,
        entity_id: str,
        actor: str,
        *,
        mode: ViewMode | str = ViewMode.CANON,
        viewpoint_id: str | None = CANON,
        era_id: str | None = ALL,
        chapter_id: str | None = ALL,
    ) -> Resolution:
        """The body to display for an entity in a viewing context."""
        context = self._context(mode, viewpoint_id, era_id, chapter_id)
        return self._resolve(workspace_id, entity_id, actor, context, for_edit=False)

    def resolve_edit_target(
        self,
        workspace_id: str,
        entity_id: str,
        actor: str,
        *,
        mode: ViewMode | str = ViewMode.CANON,
        viewpoint_id: str | None = CANON,
        era_id: str | None = ALL,
        chapter_id: str | None = ALL,
    ) -> Resolution:
        """The article or overlay an "Edit" action in this context should write to."""
        context = self._context(mode, viewpoint_id, era_id, chapter_id)
        return self._resolve(workspace_id, entity_id, actor, context, for_edit=True)

    def compare_for_context(
        self,
        workspace_id: str,
        entity_id: str,
        actor: str,
        *,
        viewpoint_id: str,
        era_id: str | None = ALL,
        chapter_id: str | None = ALL,
    ) -> Comparison:
        """Canon next to what a viewpoint believes."""
        self._require_role(workspace_id, actor, Role.VIEWER)
        state = self._read(workspace_id)
        entity = self._entity(state, entity_id)
        article = self._article(state, entity.id)
        overlays = [o for o in state.overlays.values() if o.entity_id == entity.id]
        context = self._context(ViewMode.VIEWPOINT, viewpoint_id, era_id, chapter_id)
        return Comparison(
            canon=resolve_canon(article, state.revisions),
            viewpoint=resolve(article, overlays, state.revisions, context),
        )

    # ------------------------------------------------------------------
    # Notifications and audit
    # ------------------------------------------------------------------

    def list_notifications(self, workspace_id: str, user_id: str) -> list[Notification]:
        self._require_role(workspace_id, user_id, Role.VIEWER)
        return self._storage.get_notifications(workspace_id, user_id)

    def audit_log(self, workspace_id: str, actor: str) -> list[AuditEntry]:
        self._require_role(workspace_id, actor, Role.ADMIN)
        return self._storage.get_audit(workspace_id)
