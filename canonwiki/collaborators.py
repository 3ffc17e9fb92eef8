"""Services the engine consumes but does not own.

- RoleChecker  hasWorkspaceRole(user, workspace, minimum)
- AuditSink    recordAudit(...), fire-and-forget
- Notifier     notifyWatchers(...) / notify_user(...), fire-and-forget

The Store* classes are the default implementations, backed by the same
JSON store as the engine. Any of them can be swapped for a real membership
service, audit pipeline or notification queue.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from .models import AuditEntry, Notification, Role, role_at_least
from .storage import Storage

logger = logging.getLogger(__name__)


class RoleChecker(Protocol):
    def role_of(self, user_id: str, workspace_id: str) -> Role | None: ...

    def has_role(self, user_id: str, workspace_id: str, minimum: Role) -> bool: ...


class AuditSink(Protocol):
    def record(
        self,
        workspace_id: str,
        actor_id: str,
        action: str,
        target_type: str,
        target_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...


class Notifier(Protocol):
    def notify_watchers(
        self,
        workspace_id: str,
        target_type: str,
        target_id: str,
        event_type: str,
        payload: dict[str, Any],
    ) -> None: ...

    def notify_user(
        self,
        workspace_id: str,
        user_id: str,
        event_type: str,
        target_type: str,
        target_id: str,
        payload: dict[str, Any],
    ) -> None: ...


class StoreRoleChecker:
    """Reads workspace membership from the workspace document."""

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def role_of(self, user_id: str, workspace_id: str) -> Role | None:
        state = self._storage.snapshot(workspace_id)
        if state is None:
            return None
        return state.members.get(user_id)

    def has_role(self, user_id: str, workspace_id: str, minimum: Role) -> bool:
        return role_at_least(self.role_of(user_id, workspace_id), minimum)


class StoreAuditSink:
    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def record(
        self,
        workspace_id: str,
        actor_id: str,
        action: str,
        target_type: str,
        target_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._storage.append_audit(
            AuditEntry(
                workspace_id=workspace_id,
                actor_id=actor_id,
                action=action,
                target_type=target_type,
                target_id=target_id,
                metadata=metadata or {},
            )
        )
        logger.debug("audit %s %s/%s by %s", action, target_type, target_id, actor_id)


class StoreNotifier:
    """Writes notifications for watchers (entity watches) and single users."""

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def notify_watchers(
        self,
        workspace_id: str,
        target_type: str,
        target_id: str,
        event_type: str,
        payload: dict[str, Any],
    ) -> None:
        state = self._storage.snapshot(workspace_id)
        if state is None:
            return
        watchers = state.watches.get(target_id, []) if target_type == "entity" else []
        self._storage.append_notifications(
            workspace_id,
            [
                Notification(
                    workspace_id=workspace_id,
                    user_id=user_id,
                    event_type=event_type,
                    target_type=target_type,
                    target_id=target_id,
                    payload=payload,
                )
                for user_id in watchers
            ],
        )

    def notify_user(
        self,
        workspace_id: str,
        user_id: str,
        event_type: str,
        target_type: str,
        target_id: str,
        payload: dict[str, Any],
    ) -> None:
        self._storage.append_notifications(
            workspace_id,
            [
                Notification(
                    workspace_id=workspace_id,
                    user_id=user_id,
                    event_type=event_type,
                    target_type=target_type,
                    target_id=target_id,
                    payload=payload,
                )
            ],
        )
