"""Process-wide WikiEngine shared by the HTTP routes and the MCP server.

Call init_engine(data_dir) once at startup (create_app and main.py do this);
everything else calls get_engine().
"""

import logging
from pathlib import Path

from canonwiki.engine import WikiEngine
from canonwiki.storage import Storage

logger = logging.getLogger(__name__)

_engine: WikiEngine | None = None


def init_engine(data_dir: Path) -> WikiEngine:
    global _engine
    data_dir.mkdir(parents=True, exist_ok=True)
    _engine = WikiEngine(Storage(data_dir))
    logger.info("wiki data dir: %s", data_dir)
    return _engine


def get_engine() -> WikiEngine:
    assert _engine is not None, "Call init_engine() before using the engine"
    return _engine
