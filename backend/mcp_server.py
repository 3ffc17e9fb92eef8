"""FastMCP server exposing wiki lookup, resolution and drafting as MCP tools.

Tools:
  - find_entity(title)                         entity by title or alias
  - resolve_entity(entity_id, viewpoint, ...)  body shown in a viewing context
  - submit_draft(entity_id, body, summary)     base-article draft sent to review

The tools act as one configured user on one configured workspace, set via
configure() for tests or from MCP_WORKSPACE / MCP_USER when run as __main__.
Drafts never go live on their own; a reviewer approves them like any edit.

Usage:
    uv run python -m backend.mcp_server
"""

from mcp.server.fastmcp import FastMCP

from canonwiki.engine import WikiEngine

mcp = FastMCP("canonwiki")

_engine: WikiEngine | None = None
_workspace_id = ""
_user_id = ""


def configure(engine: WikiEngine, workspace_id: str, user_id: str) -> None:
    """Point the tools at a workspace, acting as user_id (used in tests)."""
    global _engine, _workspace_id, _user_id
    _engine = engine
    _workspace_id = workspace_id
    _user_id = user_id


def _require_engine() -> WikiEngine:
    assert _engine is not None, "Call configure() before using the MCP tools"
    return _engine


@mcp.tool()
def find_entity(title: str) -> dict | None:
    """Find a wiki entity by title or alias. Returns None when nothing matches."""
    entity = _require_engine().find_entity(_workspace_id, title, _user_id)
    return entity.model_dump(mode="json") if entity else None


@mcp.tool()
def resolve_entity(
    entity_id: str,
    viewpoint: str = "canon",
    era: str = "all",
    chapter: str = "all",
) -> dict:
    """Return the text shown for an entity, as canon or as a viewpoint believes it."""
    mode = "canon" if viewpoint == "canon" else "viewpoint"
    resolution = _require_engine().resolve_for_context(
        _workspace_id, entity_id, _user_id,
        mode=mode, viewpoint_id=viewpoint, era_id=era, chapter_id=chapter,
    )
    return resolution.model_dump(mode="json")


@mcp.tool()
def submit_draft(entity_id: str, body: str, summary: str = "LLM draft") -> dict:
    """Save a base-article draft and open a review for it."""
    receipt = _require_engine().create_base_draft(
        _workspace_id, entity_id, body, _user_id, summary=summary, submit=True,
    )
    return receipt.model_dump(mode="json")


if __name__ == "__main__":
    import os
    from pathlib import Path

    from dotenv import load_dotenv

    from backend import wiki

    root = Path(__file__).parent.parent
    load_dotenv(root / ".env")
    engine = wiki.init_engine(Path(os.getenv("DATA_DIR", str(root / "data"))))
    configure(engine, os.getenv("MCP_WORKSPACE", "demo"), os.getenv("MCP_USER", "mcp"))
    mcp.run()
