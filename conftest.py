import shutil
from pathlib import Path

import pytest

from backend import wiki

TEST_DATA_DIR = Path("data-tests")

WS = "test-ws"
ADMIN = "ada"
REVIEWER = "rhea"
EDITOR = "eddie"
VIEWER = "vic"


@pytest.fixture(autouse=True)
def clean_test_data():
    """Wipe and re-init data-tests/ before every test."""
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    wiki.init_engine(TEST_DATA_DIR)
    yield
    # leave data-tests around after tests for inspection; CI can ignore it


@pytest.fixture
def engine():
    """Engine with workspace WS and one member of each role."""
    eng = wiki.get_engine()
    eng.create_workspace(WS, ADMIN)
    eng.add_member(WS, REVIEWER, "reviewer", ADMIN)
    eng.add_member(WS, EDITOR, "editor", ADMIN)
    eng.add_member(WS, VIEWER, "viewer", ADMIN)
    return eng
