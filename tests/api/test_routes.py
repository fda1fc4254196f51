import asyncio

import pytest
from fastapi.testclient import TestClient

from grc_risk_dashboard.api.routes import create_api
from grc_risk_dashboard.services.dashboard import RiskDashboard
from grc_risk_dashboard.services.filters import MemoryStore, PreferenceStore
from tests.conftest import FakeDataService, make_risk


@pytest.fixture
def fake():
    return FakeDataService(
        [
            make_risk("1", probability=3, impact=4, risk_level="high"),
            make_risk("2", priority_order=1),
            make_risk("3", priority_order=2),
        ]
    )


@pytest.fixture
def dashboard(fake):
    board = RiskDashboard(fake, PreferenceStore(MemoryStore()))
    asyncio.run(board.reload())
    return board


@pytest.fixture
def client(dashboard):
    return TestClient(create_api(dashboard))


def test_list_risks(client):
    response = client.get("/risks", params={"refresh": "true"})
    assert response.status_code == 200
    assert sorted(r["id"] for r in response.json()["risks"]) == ["1", "2", "3"]


def test_view(client):
    body = client.get("/risks/view").json()
    assert len(body["cells"]) == 25
    assert [r["id"] for r in body["backlog"]] == ["2", "3"]
    assert body["stats"]["kpis"]["total"] == 3
    assert body["relocation_state"] == "idle"


def test_move_to_cell_and_backlog(client, fake):
    response = client.post("/risks/2/position", json={"probability": 5, "impact": 1})
    assert response.status_code == 200
    assert response.json()["status"] == "persisted"
    assert response.json()["risk"]["probability"] == 5

    response = client.post("/risks/1/position", json={"backlog": True})
    assert response.json()["risk"]["priority_order"] == 3
    assert fake.rows["1"].probability is None


def test_move_rejects_bad_targets(client, dashboard):
    assert client.post("/risks/nope/position", json={"probability": 1, "impact": 1}).status_code == 404
    assert client.post("/risks/2/position", json={"probability": 9, "impact": 1}).status_code == 422
    assert client.post("/risks/2/position", json={"probability": 1}).status_code == 422
    assert dashboard.relocation.armed is None


def test_reorder_backlog(client):
    response = client.post("/backlog/reorder", json={"from_index": 1, "to_index": 0})
    assert response.status_code == 200
    assert response.json()["backlog"] == ["3", "2"]
    assert response.json()["via"] == "batch"
    assert client.post("/backlog/reorder", json={"from_index": 0, "to_index": 7}).status_code == 422


def test_filters_and_presets(client):
    response = client.put("/filters", json={"search": "risk 1", "level": "all"})
    assert response.json() == {
        "filters": {"search": "risk 1", "status": None, "level": None, "category": None},
        "count": 1,
    }
    assert client.post("/filters/presets/one").json()["payload"]["search"] == "risk 1"
    assert [p["name"] for p in client.get("/filters/presets").json()["presets"]] == ["one"]

    assert client.delete("/filters").json()["count"] == 3
    loaded = client.post("/filters/presets/one/load").json()
    assert loaded["loaded"] is True
    assert loaded["filters"]["search"] == "risk 1"

    missing = client.post("/filters/presets/ghost/load").json()
    assert missing["loaded"] is False
    assert missing["error"] == "Saved filter 'ghost' not found"


def test_blank_preset_name_is_rejected(client):
    assert client.post("/filters/presets/%20").status_code == 422


def test_selection(client):
    selected = client.put("/selection/1").json()["selected"]
    assert selected["score"] == 12
    assert client.delete("/selection").json() == {"selected": None}
    assert client.put("/selection/ghost").json() == {"selected": None}


def test_register_and_export(client):
    register = client.get("/risks/register", params={"limit": 2}).json()
    assert register["total"] == 3
    assert len(register["rows"]) == 2
    assert register["overflow"] == 1
    assert client.get("/risks/register", params={"limit": 0}).status_code == 422

    response = client.get("/risks/export.csv")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("id,title,")
    assert len(lines) == 4


def test_export_follows_filters(client):
    client.put("/filters", json={"search": "risk 2"})
    lines = client.get("/risks/export.csv").text.strip().splitlines()
    assert [line.split(",")[0] for line in lines[1:]] == ["2"]
