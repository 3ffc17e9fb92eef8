"""HTTP API tests through FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from backend.app import create_app

from conftest import TEST_DATA_DIR


@pytest.fixture
def client():
    return TestClient(create_app(TEST_DATA_DIR))


def _as(user):
    return {"X-User-Id": user}


@pytest.fixture
def ws(client):
    r = client.post("/api/workspaces", json={"workspace_id": "lore"}, headers=_as("ada"))
    assert r.status_code == 201
    for user, role in {"rhea": "reviewer", "eddie": "editor", "vic": "viewer"}.items():
        r = client.put(f"/api/workspaces/lore/members/{user}", json={"role": role}, headers=_as("ada"))
        assert r.status_code == 200
    return "/api/workspaces/lore"


@pytest.fixture
def calder(client, ws):
    r = client.post(f"{ws}/entities", json={"title": "Mount Calder", "type": "location", "body": "A volcano."},
                    headers=_as("eddie"))
    assert r.status_code == 201
    return r.json()["entity_id"]


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_missing_user_is_401(client, ws):
    r = client.get(f"{ws}/entities")
    assert r.status_code == 401
    assert r.json() == {"error": "Sign in required"}


def test_viewer_cannot_create_403(client, ws):
    r = client.post(f"{ws}/entities", json={"title": "X"}, headers=_as("vic"))
    assert r.status_code == 403
    assert "editor" in r.json()["error"]


def test_unknown_workspace_404(client):
    r = client.get("/api/workspaces/nowhere/entities", headers=_as("ada"))
    assert r.status_code == 404


def test_duplicate_title_409(client, ws, calder):
    r = client.post(f"{ws}/entities", json={"title": "MOUNT CALDER"}, headers=_as("eddie"))
    assert r.status_code == 409
    assert "Mount Calder" in r.json()["error"]


def test_bad_enum_422(client, ws):
    r = client.post(f"{ws}/entities", json={"title": "X", "type": "planet"}, headers=_as("eddie"))
    assert r.status_code == 422


def test_resolve_canon(client, ws, calder):
    r = client.get(f"{ws}/entities/{calder}/resolve", headers=_as("vic"))
    assert r.status_code == 200
    body = r.json()
    assert body["target_type"] == "base"
    assert body["body"] == "A volcano."


def test_overlay_review_flow(client, ws, calder):
    vp = client.post(f"{ws}/viewpoints", json={"name": "The Empire"}, headers=_as("rhea")).json()
    r = client.post(
        f"{ws}/entities/{calder}/overlays",
        json={"title": "Imperial Belief", "body": "A sleeping god.", "truth_flag": "propaganda",
              "viewpoint_id": vp["id"]},
        headers=_as("rhea"),
    )
    assert r.status_code == 201
    review_id = r.json()["review"]["id"]

    params = {"mode": "viewpoint", "viewpoint": vp["id"]}
    assert client.get(f"{ws}/entities/{calder}/resolve", params=params, headers=_as("vic")).json()["body"] == "A volcano."

    open_reviews = client.get(f"{ws}/reviews", params={"status": "open"}, headers=_as("vic")).json()
    assert [rv["id"] for rv in open_reviews] == [review_id]

    r = client.post(f"{ws}/reviews/{review_id}/approve", headers=_as("rhea"))
    assert r.status_code == 200
    assert r.json()["status"] == "approved"

    resolved = client.get(f"{ws}/entities/{calder}/resolve", params=params, headers=_as("vic")).json()
    assert resolved["body"] == "A sleeping god."
    assert resolved["truth_flag"] == "propaganda"

    r = client.post(f"{ws}/reviews/{review_id}/approve", headers=_as("ada"))
    assert r.status_code == 409


def test_protection_and_base_edit(client, ws, calder):
    r = client.put(f"{ws}/entities/{calder}/protection", json={"level": "admin"}, headers=_as("ada"))
    assert r.json()["protection"] == "admin"
    r = client.post(f"{ws}/entities/{calder}/revisions", json={"body": "x"}, headers=_as("eddie"))
    assert r.status_code == 403
    assert "protected" in r.json()["error"]
    r = client.post(f"{ws}/entities/{calder}/revisions", json={"body": "x"}, headers=_as("ada"))
    assert r.status_code == 201


def test_rename_and_lookup(client, ws, calder):
    r = client.post(f"{ws}/entities/{calder}/rename", json={"title": "Mount Ashveil"}, headers=_as("eddie"))
    assert "Mount Calder" in r.json()["aliases"]
    r = client.get(f"{ws}/lookup", params={"title": "mount calder"}, headers=_as("vic"))
    assert r.json()["id"] == calder
    r = client.get(f"{ws}/lookup", params={"title": "Nowhere"}, headers=_as("vic"))
    assert r.status_code == 404


def test_restore_revision(client, ws, calder):
    history = client.get(f"{ws}/entities/{calder}/revisions", headers=_as("vic")).json()
    first = history[-1]["id"]
    client.post(f"{ws}/entities/{calder}/revisions", json={"body": "Vandalised."}, headers=_as("eddie"))

    r = client.post(f"{ws}/revisions/{first}/restore", headers=_as("eddie"))
    assert r.status_code == 201
    review_id = r.json()["review"]["id"]
    client.post(f"{ws}/reviews/{review_id}/approve", headers=_as("rhea"))

    assert client.get(f"{ws}/entities/{calder}/resolve", headers=_as("vic")).json()["body"] == "A volcano."
    lineage = client.get(f"{ws}/revisions/{r.json()['revision']['id']}/lineage", headers=_as("vic")).json()
    assert lineage[1]["id"] == first


def test_trash_and_restore(client, ws, calder):
    r = client.post(f"{ws}/trash/entities/{calder}", headers=_as("eddie"))
    assert r.json() == {"ok": True}
    assert client.get(f"{ws}/entities/{calder}", headers=_as("vic")).status_code == 404
    assert [e["id"] for e in client.get(f"{ws}/entities/deleted", headers=_as("vic")).json()] == [calder]
    client.post(f"{ws}/trash/entities/{calder}/restore", headers=_as("eddie"))
    assert client.get(f"{ws}/entities/{calder}", headers=_as("vic")).status_code == 200


def test_trash_unknown_collection(client, ws):
    assert client.post(f"{ws}/trash/revisions/r1", headers=_as("ada")).status_code == 404


def test_settings(client, ws):
    r = client.patch(f"{ws}/settings", json={"require_base_review": True}, headers=_as("ada"))
    assert r.json()["require_base_review"] is True
    r = client.patch(f"{ws}/settings", json={"require_base_review": False}, headers=_as("eddie"))
    assert r.status_code == 403


def test_watch_and_notifications(client, ws, calder):
    assert client.post(f"{ws}/entities/{calder}/watch", headers=_as("vic")).json() == {"watching": True}
    client.post(f"{ws}/entities/{calder}/rename", json={"title": "Mount Ashveil"}, headers=_as("eddie"))
    notes = client.get(f"{ws}/notifications", headers=_as("vic")).json()
    assert [n["event_type"] for n in notes] == ["entity_renamed"]


def test_my_role(client, ws):
    assert client.get(f"{ws}/me", headers=_as("rhea")).json() == {"user_id": "rhea", "role": "reviewer"}
