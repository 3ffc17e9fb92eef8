"""JSON file storage.

Each workspace is one JSON document holding every record the engine owns.
There is no database or ORM: a transaction loads the document, lets the
caller mutate it in memory, and commits by writing a temporary file and
renaming it over the original. An exception inside the transaction leaves
the file untouched, so partial writes are never visible.

Directory layout:

    {base}/
      workspaces/
        {workspace_id}.json                ← WorkspaceState
        .{workspace_id}.lock               ← commit lock shared across processes
        {workspace_id}.audit.jsonl         ← append-only AuditEntry lines
        {workspace_id}.notifications.jsonl ← Notification lines

Writers to one workspace are serialised by a per-workspace lock. The
document carries a ``version`` that must still match on disk at commit
time; a mismatch means another process got there first and raises Conflict.
The version check and the rename run under an exclusive ``flock`` on the
lock file, so two processes sharing a data directory cannot both commit
on top of the same version.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import re
import threading
import unicodedata
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from pydantic import BaseModel, Field

from .errors import Conflict, NotFound
from .models import (
    Article,
    AuditEntry,
    Chapter,
    Entity,
    Era,
    Notification,
    Overlay,
    ReviewRequest,
    Revision,
    Role,
    Viewpoint,
)

logger = logging.getLogger(__name__)


def slugify(title: str) -> str:
    """Convert a title to a filesystem- and URL-safe slug.

    "Mount Calder (Imperial Belief)" → "mount-calder-imperial-belief"
    """
    text = unicodedata.normalize("NFKD", title)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"['\"]", "", text)  # strip apostrophes/quotes before hyphenation
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")
    return text or "untitled"


class WorkspaceState(BaseModel):
    """Everything stored for one workspace."""

    workspace_id: str
    version: int = 0
    members: dict[str, Role] = Field(default_factory=dict)
    settings: dict[str, Any] = Field(default_factory=dict)
    entities: dict[str, Entity] = Field(default_factory=dict)
    articles: dict[str, Article] = Field(default_factory=dict)
    overlays: dict[str, Overlay] = Field(default_factory=dict)
    revisions: dict[str, Revision] = Field(default_factory=dict)
    reviews: dict[str, ReviewRequest] = Field(default_factory=dict)
    viewpoints: dict[str, Viewpoint] = Field(default_factory=dict)
    eras: dict[str, Era] = Field(default_factory=dict)
    chapters: dict[str, Chapter] = Field(default_factory=dict)
    watches: dict[str, list[str]] = Field(default_factory=dict)  # entity id → user ids


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._ws_root = base_path / "workspaces"
        self._ws_root.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._log_lock = threading.Lock()

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _ws_file(self, workspace_id: str) -> Path:
        return self._ws_root / f"{workspace_id}.json"

    def _lock_file(self, workspace_id: str) -> Path:
        return self._ws_root / f".{workspace_id}.lock"

    def _audit_file(self, workspace_id: str) -> Path:
        return self._ws_root / f"{workspace_id}.audit.jsonl"

    def _notifications_file(self, workspace_id: str) -> Path:
        return self._ws_root / f"{workspace_id}.notifications.jsonl"

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        tmp = path.with_name(f".{path.name}.{threading.get_ident()}.tmp")
        tmp.write_text(json.dumps(data, indent=2))
        os.replace(tmp, path)

    def _lock_for(self, workspace_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(workspace_id)
            if lock is None:
                lock = self._locks[workspace_id] = threading.RLock()
            return lock

    @contextmanager
    def _file_lock(self, workspace_id: str) -> Iterator[None]:
        """Hold an exclusive advisory lock on the workspace's lock file."""
        with open(self._lock_file(workspace_id), "a") as handle:
            fcntl.flock(handle, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle, fcntl.LOCK_UN)

    # ------------------------------------------------------------------
    # Workspaces
    # ------------------------------------------------------------------

    def create_workspace(self, workspace_id: str, owner_id: str) -> WorkspaceState:
        """Create an empty workspace with owner_id as its admin."""
        with self._lock_for(workspace_id), self._file_lock(workspace_id):
            path = self._ws_file(workspace_id)
            if path.exists():
                raise FileExistsError(f"Workspace '{workspace_id}' already exists")
            state = WorkspaceState(workspace_id=workspace_id, members={owner_id: Role.ADMIN})
            self._write_json(path, state.model_dump(mode="json"))
            return state

    def list_workspaces(self) -> list[str]:
        return sorted(p.stem for p in self._ws_root.glob("*.json"))

    def snapshot(self, workspace_id: str) -> WorkspaceState | None:
        """Read the committed state of a workspace. Returns None if missing."""
        path = self._ws_file(workspace_id)
        if not path.is_file():
            return None
        return WorkspaceState.model_validate_json(path.read_text())

    @contextmanager
    def transaction(self, workspace_id: str) -> Iterator[WorkspaceState]:
        """Yield a mutable copy of the workspace and commit it on clean exit."""
        with self._lock_for(workspace_id):
            state = self.snapshot(workspace_id)
            if state is None:
                raise NotFound(f"Workspace '{workspace_id}' not found")
            loaded_version = state.version
            yield state
            self._commit(state, loaded_version)

    def _commit(self, state: WorkspaceState, expected_version: int) -> None:
        path = self._ws_file(state.workspace_id)
        with self._file_lock(state.workspace_id):
            on_disk = self._read_json(path).get("version", 0)
            if on_disk != expected_version:
                raise Conflict(
                    f"Workspace '{state.workspace_id}' changed while this request ran; re-read and retry"
                )
            state.version = expected_version + 1
            self._write_json(path, state.model_dump(mode="json"))
        logger.debug("committed workspace=%s version=%d", state.workspace_id, state.version)

    # ------------------------------------------------------------------
    # Audit log (append-only)
    # ------------------------------------------------------------------

    def append_audit(self, entry: AuditEntry) -> None:
        self._append_lines(self._audit_file(entry.workspace_id), [entry])

    def get_audit(self, workspace_id: str) -> list[AuditEntry]:
        return [AuditEntry.model_validate(e) for e in self._read_list(self._audit_file(workspace_id))]

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def append_notifications(self, workspace_id: str, notifications: list[Notification]) -> None:
        if not notifications:
            return
        self._append_lines(self._notifications_file(workspace_id), notifications)

    def get_notifications(self, workspace_id: str, user_id: str | None = None) -> list[Notification]:
        items = [
            Notification.model_validate(n)
            for n in self._read_list(self._notifications_file(workspace_id))
        ]
        if user_id is not None:
            items = [n for n in items if n.user_id == user_id]
        return items

    def _append_lines(self, path: Path, records: list[BaseModel]) -> None:
        with self._log_lock, open(path, "a", encoding="utf-8") as f:
            for record in records:
                f.write(record.model_dump_json() + "\n")

    def _read_list(self, path: Path) -> list[dict]:
        if not path.is_file():
            return []
        with open(path, encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
