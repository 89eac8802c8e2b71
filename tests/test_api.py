from fastapi.testclient import TestClient

from conftest import write_data
from jack.api import control


def test_healthz(client: TestClient):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_status_before_start(client: TestClient):
    response = client.get("/api/jack/status")
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["connected"] is False
    assert data["state"] == "idle"
    assert data["clubCode"] == "club-42"
    assert data["stats"] == {"messagesProcessed": 0, "usersKicked": 0, "spamBlocked": 0}


def test_start_without_credentials_fails(client: TestClient, connector):
    connector.config.ws_url = None

    response = client.post("/api/jack/start")

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "JACK_WS_URL" in response.json()["error"]


def test_start_and_stop(client: TestClient, fake_connect):
    assert client.post("/api/jack/start").json()["success"] is True
    assert client.post("/api/jack/stop").json()["success"] is True
    assert client.get("/api/jack/status").json()["state"] == "idle"
    assert len(fake_connect.calls) <= 1


def test_reload_reports_loaded_counts(client: TestClient, data_dir):
    write_data(data_dir, admins_txt="a,b,c", banned_patterns_txt="x")

    data = client.post("/api/jack/reload").json()

    assert data["success"] is True
    assert data["configLoaded"]["loaded"] is True
    assert data["configLoaded"]["admins"] == 3
    assert data["configLoaded"]["bannedPatterns"] == 1


def test_say_requires_connection(client: TestClient):
    response = client.post("/api/jack/say", json={"message": "hello"})
    assert response.status_code == 503
    assert response.json()["success"] is False


def test_say_rejects_empty_message(client: TestClient):
    assert client.post("/api/jack/say", json={"message": ""}).status_code == 422


def test_restart_schedules_process_exit(client: TestClient, monkeypatch):
    exits = []
    monkeypatch.setattr(control, "_exit_process", lambda: exits.append(True))
    monkeypatch.setattr(control, "RESTART_DELAY", 0.0)

    response = client.post("/api/jack/restart")

    assert response.json() == {"success": True, "message": "Restarting"}
    # Any later request gives the loop a chance to run the callback
    client.get("/healthz")
    assert exits == [True]


def test_members_pagination_and_level_stats(client: TestClient, data_dir):
    write_data(data_dir, club_members_json=[
        {"UID": f"u{i}", "NM": f"M{i}", "LVL": i % 3} for i in range(5)
    ])

    data = client.get("/api/jack/members", params={"page": 2, "limit": 2}).json()

    assert data["success"] is True
    assert data["total"] == 5
    assert data["totalPages"] == 3
    assert [m["UID"] for m in data["members"]] == ["u2", "u3"]
    assert data["levelStats"] == {"0": 2, "1": 2, "2": 1}


def test_delete_member(client: TestClient, connector, data_dir):
    write_data(data_dir, club_members_json=[{"UID": "u1", "NM": "Ann", "LVL": 1}])

    response = client.delete("/api/jack/members/u1")

    assert response.json()["success"] is True
    assert response.json()["removed"]["NM"] == "Ann"
    assert connector.state.pending_kicks.is_known("u1")
    assert client.delete("/api/jack/members/u1").status_code == 404


def test_bulk_remove(client: TestClient, connector, data_dir):
    write_data(data_dir, club_members_json=[
        {"UID": "a", "LVL": 1},
        {"UID": "b", "LVL": 1},
        {"UID": "c", "LVL": 2},
    ])

    data = client.post("/api/jack/members/bulk-remove", json={"level": 1, "count": 10}).json()

    assert data == {"success": True, "removedCount": 2, "removed": ["a", "b"]}
    assert len(connector.state.pending_kicks) == 2


def test_bulk_remove_validates_count(client: TestClient):
    response = client.post("/api/jack/members/bulk-remove", json={"level": 1, "count": 0})
    assert response.status_code == 422
