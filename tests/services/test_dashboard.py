import asyncio

import pytest

from grc_risk_dashboard.models import FilterState
from grc_risk_dashboard.services.dashboard import RiskDashboard
from grc_risk_dashboard.services.filters import MemoryStore, PreferenceStore
from grc_risk_dashboard.services.relocation import RelocationState
from grc_risk_dashboard.utils.errors import DataServiceError


@pytest.fixture
def dashboard(service):
    board = RiskDashboard(service, PreferenceStore(MemoryStore()))
    asyncio.run(board.reload())
    return board


def test_reload_fills_working_set(dashboard):
    assert sorted(r.id for r in dashboard.working_set) == ["1", "2", "3"]
    assert [r.id for r in dashboard.backlog()] == ["3", "2"]
    assert dashboard.error is None


def test_failed_reload_keeps_stale_set_and_sets_banner(dashboard, service):
    service.query_error = DataServiceError("timeout", status_code=504)
    assert asyncio.run(dashboard.reload()) is False
    assert len(dashboard.working_set) == 3
    assert dashboard.error == "Failed to load risks: timeout"
    service.query_error = None
    assert asyncio.run(dashboard.reload()) is True
    assert dashboard.error is None


def test_filter_apply_reloads_through_service(dashboard, service):
    dashboard.filters.set_field("search", "risk 1")
    asyncio.run(dashboard.filters.apply())
    assert [r.id for r in dashboard.working_set] == ["1"]
    assert service.calls[-1] == ("query", FilterState(search="risk 1"))


def test_missing_preset_sets_banner(dashboard):
    assert asyncio.run(dashboard.load_preset("missing")) is False
    assert dashboard.error == "Saved filter 'missing' not found"
    dashboard.clear_error()
    assert dashboard.view().error is None


def test_relocation_failure_surfaces_in_view(dashboard, service):
    service.fail_ids.add("2")
    dashboard.relocation.pick_up("2")
    asyncio.run(dashboard.relocation.drop_on_cell(1, 1))
    view = dashboard.view()
    assert view.error.startswith("Failed to move risk")
    assert [r.id for r in view.backlog] == ["3", "2"]


def test_view_reflects_selection_and_relocation(dashboard):
    dashboard.selection.select("1")
    dashboard.relocation.pick_up("3")
    view = dashboard.view()
    assert view.selected.id == "1"
    assert view.relocation_state == RelocationState.ARMED
    assert len(view.cells) == 25
    assert view.stats.kpis["total"] == 3
    data = view.to_dict()
    assert data["relocation_state"] == "armed"
    cell = next(c for c in data["cells"] if (c["probability"], c["impact"]) == (3, 4))
    assert cell["risk_ids"] == ["1"]
    assert data["selected"]["id"] == "1"


def test_view_includes_register_summary(dashboard):
    data = dashboard.view().to_dict()
    assert data["register"]["total"] == 3
    assert [row["id"] for row in data["register"]["rows"]] == [r.id for r in dashboard.working_set]
    assert dashboard.export_csv().splitlines()[0].startswith("id,title,")
