import asyncio
import json

import pytest

from grc_risk_dashboard.models import FilterState, SavedFilter
from grc_risk_dashboard.services.filters import (
    FILTERS_KEY,
    PRESET_PREFIX,
    SCHEMA_KEY,
    FilterManager,
    JsonFileStore,
    MemoryStore,
    PreferenceStore,
    SessionStateStore,
    choice_options,
    client_prefs_path,
)


class ReloadCounter:
    def __init__(self):
        self.count = 0

    async def __call__(self):
        self.count += 1


@pytest.fixture
def backend():
    return MemoryStore()


@pytest.fixture
def reload():
    return ReloadCounter()


@pytest.fixture
def manager(backend, reload):
    return FilterManager(PreferenceStore(backend), reload)


def test_field_changes_persist_immediately(manager, backend, reload):
    manager.set_field("search", "vendor")
    manager.set_field("status", "open")
    assert json.loads(backend.get(FILTERS_KEY)) == {
        "search": "vendor",
        "status": "open",
        "level": None,
        "category": None,
    }
    assert reload.count == 0

    restored = FilterManager(PreferenceStore(backend), reload)
    assert restored.state == FilterState(search="vendor", status="open")


def test_set_field_normalizes_all_and_blank(manager):
    manager.set_field("level", "high")
    manager.set_field("level", "all")
    manager.set_field("search", "   ")
    assert manager.state == FilterState()


def test_unknown_field_is_rejected(manager):
    with pytest.raises(ValueError):
        manager.set_field("owner", "me")


def test_apply_and_clear_reload(manager, reload, backend):
    manager.set_field("category", "IT")
    asyncio.run(manager.apply())
    assert reload.count == 1
    asyncio.run(manager.clear())
    assert reload.count == 2
    assert manager.state == FilterState()
    assert json.loads(backend.get(FILTERS_KEY))["category"] is None


def test_save_then_load_by_name(manager, reload):
    manager.set_field("level", "critical")
    manager.save("Critical only")
    asyncio.run(manager.clear())

    assert asyncio.run(manager.load_by_name("Critical only")) is True
    assert manager.state == FilterState(level="critical")
    assert manager.error is None
    assert reload.count == 2


def test_save_overwrites_same_name(manager):
    manager.set_field("status", "open")
    manager.save("mine")
    manager.set_field("status", "closed")
    manager.save("mine")
    presets = manager.presets()
    assert presets == [SavedFilter("mine", FilterState(status="closed"))]


def test_save_requires_name(manager):
    with pytest.raises(ValueError):
        manager.save("  ")


def test_missing_preset_leaves_state_unchanged(manager, reload):
    manager.set_field("search", "keep")
    assert asyncio.run(manager.load_by_name("missing")) is False
    assert manager.state == FilterState(search="keep")
    assert "not found" in manager.error
    assert reload.count == 0


def test_corrupt_preset_is_reported_not_raised(manager, backend):
    backend.set(PRESET_PREFIX + "broken", "{not json")
    backend.set(PRESET_PREFIX + "list", "[1, 2]")
    assert asyncio.run(manager.load_by_name("broken")) is False
    assert "could not be read" in manager.error
    assert asyncio.run(manager.load_by_name("list")) is False
    assert manager.presets() == []


def test_presets_sorted_case_insensitively(manager):
    for name in ("beta", "Alpha", "gamma"):
        manager.save(name)
    assert [p.name for p in manager.presets()] == ["Alpha", "beta", "gamma"]


def test_schema_mismatch_discards_stale_keys():
    backend = MemoryStore(
        {
            SCHEMA_KEY: "0",
            FILTERS_KEY: json.dumps({"search": "old"}),
            PRESET_PREFIX + "legacy": json.dumps({"status": "open"}),
            "other.app.key": "kept",
        }
    )
    prefs = PreferenceStore(backend)
    assert prefs.load_filters() == FilterState()
    assert prefs.list_presets() == []
    assert backend.get("other.app.key") == "kept"
    assert backend.get(SCHEMA_KEY) == "1"


def test_unreadable_filter_state_falls_back_to_empty(backend):
    prefs = PreferenceStore(backend)
    backend.set(FILTERS_KEY, "nonsense")
    assert prefs.load_filters() == FilterState()


def test_json_file_store_survives_restart(tmp_path):
    path = str(tmp_path / "prefs.json")
    prefs = PreferenceStore(JsonFileStore(path))
    prefs.save_filters(FilterState(search="cloud"))
    prefs.save_preset(SavedFilter("Cloud", FilterState(category="Cloud")))

    reopened = PreferenceStore(JsonFileStore(path))
    assert reopened.load_filters() == FilterState(search="cloud")
    assert reopened.load_preset("Cloud") == SavedFilter("Cloud", FilterState(category="Cloud"))


def test_json_file_store_ignores_unreadable_file(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text("{{{", encoding="utf-8")
    store = JsonFileStore(str(path))
    assert list(store.keys()) == []


def test_session_state_store_shares_the_session_mapping():
    session = {}
    store = SessionStateStore(session)
    store.set("risk.dash.filters", "{}")
    assert session["risk_dashboard_prefs"] == {"risk.dash.filters": "{}"}


def test_search_for_all_is_a_real_search(manager, backend):
    manager.set_field("search", "all")
    assert manager.state.search == "all"
    assert json.loads(backend.get(FILTERS_KEY))["search"] == "all"


def test_client_prefs_path_is_per_client(tmp_path):
    base = str(tmp_path / ".risk_dashboard_prefs.json")
    first = client_prefs_path(base, "abc123")
    second = client_prefs_path(base, "def456")
    assert first == str(tmp_path / ".risk_dashboard_prefs.abc123.json")
    assert first != second

    PreferenceStore(JsonFileStore(first)).save_filters(FilterState(search="mine"))
    assert PreferenceStore(JsonFileStore(second)).load_filters() == FilterState()
    assert PreferenceStore(JsonFileStore(first)).load_filters() == FilterState(search="mine")


def test_client_prefs_path_strips_path_characters(tmp_path):
    base = str(tmp_path / "prefs.json")
    assert client_prefs_path(base, "../../etc") == str(tmp_path / "prefs.etc.json")
    with pytest.raises(ValueError):
        client_prefs_path(base, "/..")


def test_choice_options_select_current_value():
    assert choice_options(["low", "high"], None) == (["all", "low", "high"], 0)
    assert choice_options(["low", "high"], "high") == (["all", "low", "high"], 2)


def test_choice_options_keep_off_axis_value():
    options, index = choice_options(["identified", "closed"], "Open")
    assert options == ["all", "identified", "closed", "Open"]
    assert options[index] == "Open"
