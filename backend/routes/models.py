"""Pydantic request models for API endpoints."""

from typing import Annotated

from fastapi import Header
from pydantic import BaseModel

from canonwiki.engine import OverlayScope


class CreateWorkspace(BaseModel):
    workspace_id: str


class SetMember(BaseModel):
    role: str


class CreateEntity(BaseModel):
    title: str
    type: str = "concept"
    body: str = ""
    aliases: list[str] = []
    tags: list[str] = []


class UpdateEntity(BaseModel):
    type: str | None = None
    aliases: list[str] | None = None
    tags: list[str] | None = None


class RenameEntity(BaseModel):
    title: str
    add_redirect: bool = True


class SetProtection(BaseModel):
    level: str


class RevisionBody(BaseModel):
    body: str
    summary: str = ""


class DraftBody(BaseModel):
    body: str
    summary: str = "LLM draft"
    submit: bool = True


class CreateOverlay(BaseModel):
    title: str
    body: str = ""
    summary: str = "Overlay draft"
    truth_flag: str | None = None
    viewpoint_id: str | None = None
    scope: OverlayScope = OverlayScope()


class RejectBody(BaseModel):
    reason: str = ""


class CommentBody(BaseModel):
    body: str


class AssignReviewer(BaseModel):
    reviewer_id: str


class CreateViewpoint(BaseModel):
    name: str
    description: str = ""
    entity_id: str | None = None


class CreateEra(BaseModel):
    name: str


class CreateChapter(BaseModel):
    title: str
    position: int = 0


# Caller identity. Blank is rejected by the engine as Unauthorized.
UserId = Annotated[str, Header(alias="x-user-id")]
