"""
API integration tests.
Uses TestClient to avoid starting a server.
Requires: pip install httpx (for TestClient)
"""
from __future__ import annotations

import pytest

pytest.importorskip("httpx", reason="httpx required for TestClient")

from fastapi.testclient import TestClient

from doubles_tracker.api import app
from doubles_tracker.persistence.db import init_db, set_db_path


@pytest.fixture(autouse=True)
def isolated_db(tmp_path):
    """Use a temporary DB for each test."""
    db_path = tmp_path / "test.db"
    set_db_path(db_path)
    init_db(db_path)
    yield db_path


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def profile_ids(client):
    ids = []
    for name in ("Ann", "Bea", "Cam", "Dee"):
        resp = client.post("/profiles", json={"name": name})
        assert resp.status_code == 200
        ids.append(resp.json()["id"])
    return ids


@pytest.fixture
def match_id(client, profile_ids):
    resp = client.post("/matches", json={"team1": profile_ids[:2], "team2": profile_ids[2:]})
    assert resp.status_code == 200
    data = resp.json()
    assert data["mode"] == "selecting_first_server"
    return data["match_id"]


def command(client, match_id, **body):
    return client.post(f"/matches/{match_id}/commands", json=body)


def play_straight_sets(client, match_id):
    """Team 1 wins 6-0 6-0 on aces and opponents' double faults."""
    command(client, match_id, type="select_first_server", seat=0)
    while True:
        state = client.get(f"/matches/{match_id}").json()
        mode = state["mode"]
        if mode == "match_over":
            return state
        if mode == "selecting_first_server":
            command(client, match_id, type="select_first_server", seat=0)
        elif mode == "selecting_second_server":
            command(client, match_id, type="confirm_second_server", seat=2)
        elif state["team1"]["is_serving"]:
            command(client, match_id, type="quick_attribute_point", reason="Ace")
        else:
            command(client, match_id, type="quick_attribute_point", reason="Double Fault")


def test_profiles_list(client, profile_ids):
    resp = client.get("/profiles")
    assert resp.status_code == 200
    names = [p["name"] for p in resp.json()["profiles"]]
    assert names == ["Ann", "Bea", "Cam", "Dee"]


def test_start_match_unknown_profile(client, profile_ids):
    resp = client.post("/matches", json={"team1": profile_ids[:2], "team2": [profile_ids[2], "ghost"]})
    assert resp.status_code == 404


def test_start_match_needs_two_per_team(client, profile_ids):
    resp = client.post("/matches", json={"team1": profile_ids[:1], "team2": profile_ids[2:]})
    assert resp.status_code == 422


def test_point_flow_and_undo(client, match_id):
    resp = command(client, match_id, type="select_first_server", seat=0)
    assert resp.json()["mode"] == "scoring"

    resp = command(client, match_id, type="quick_attribute_point", reason="Ace", timestamp=4.5)
    data = resp.json()
    assert resp.status_code == 200
    assert data["event"]["score"] == "15-0"
    assert data["event"]["description"] == "Ace by Ann"
    assert data["undo_depth"] == 1
    assert "history" not in data

    command(client, match_id, type="award_rally_start", reason="Unforced Error")
    resp = command(client, match_id, type="attribute_rally", ending_seat=3, is_return_event=True)
    assert resp.json()["event"]["score"] == "30-0"
    assert resp.json()["event"]["winner_team"] == 1

    resp = command(client, match_id, type="undo")
    data = resp.json()
    assert data["event"] is None
    assert data["team1"]["points"] == 1
    assert len(data["events"]) == 1


def test_wrong_mode_is_conflict(client, match_id):
    resp = command(client, match_id, type="attribute_rally", ending_seat=0)
    assert resp.status_code == 409
    resp = command(client, match_id, type="quick_attribute_point", reason="Ace")
    assert resp.status_code == 409


def test_invalid_input_is_unprocessable(client, match_id):
    command(client, match_id, type="select_first_server", seat=0)
    assert command(client, match_id, type="quick_attribute_point", reason="Lob").status_code == 422
    assert command(client, match_id, type="select_first_server").status_code == 422
    assert command(client, match_id, type="select_first_server", seat=9).status_code == 422


def test_reset_is_not_a_remote_command(client, match_id):
    command(client, match_id, type="select_first_server", seat=0)
    command(client, match_id, type="quick_attribute_point", reason="Ace")
    assert command(client, match_id, type="reset").status_code == 422
    data = client.get(f"/matches/{match_id}").json()
    assert data["mode"] == "scoring"
    assert data["team1"]["points"] == 1


def test_unknown_match_is_not_found(client):
    assert client.get("/matches/nope").status_code == 404
    assert command(client, "nope", type="undo").status_code == 404
    assert client.get("/records/nope").status_code == 404


def test_finish_export_import(client, match_id):
    assert client.post(f"/matches/{match_id}/finish").status_code == 409

    final = play_straight_sets(client, match_id)
    assert final["winner"] == 1
    assert command(client, match_id, type="undo").status_code == 409

    resp = client.post(f"/matches/{match_id}/finish")
    assert resp.status_code == 200
    assert resp.json()["winner"] == 1

    profiles = {p["name"]: p for p in client.get("/profiles").json()["profiles"]}
    assert profiles["Ann"]["wins"] == 1
    assert profiles["Cam"]["losses"] == 1

    records = client.get("/records").json()["records"]
    assert [r["id"] for r in records] == [match_id]
    assert records[0]["score"] == [[6, 6], [0, 0]]

    resp = client.get(f"/records/{match_id}/csv")
    assert resp.status_code == 200
    text = resp.text
    assert text.startswith("PointNumber,SetNumber,")

    resp = client.post("/records/import", json={"csv": text})
    assert resp.status_code == 200
    imported = resp.json()
    assert imported["reconstructed"] is True
    assert imported["approximate"] is False
    assert imported["winner"] == 1

    assert client.post(f"/records/{match_id}/resume").status_code == 422
    profiles = {p["name"]: p for p in client.get("/profiles").json()["profiles"]}
    assert profiles["Ann"]["matches_played"] == 1


def test_import_bad_csv(client):
    resp = client.post("/records/import", json={"csv": "not,a,match\n"})
    assert resp.status_code == 422


def test_save_and_resume(client, match_id):
    command(client, match_id, type="select_first_server", seat=0)
    command(client, match_id, type="quick_attribute_point", reason="Ace")
    resp = client.post(f"/matches/{match_id}/save")
    assert resp.status_code == 200
    assert client.get(f"/matches/{match_id}").status_code == 404

    records = client.get("/records").json()["records"]
    assert records[0]["resumable"] is True

    resp = client.post(f"/records/{match_id}/resume")
    assert resp.status_code == 200
    data = resp.json()
    assert data["team1"]["points"] == 1
    assert data["undo_depth"] == 1
    resp = command(client, match_id, type="quick_attribute_point", reason="Ace")
    assert resp.json()["event"]["score"] == "30-0"
