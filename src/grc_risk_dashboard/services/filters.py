"""Filter values and named presets, persisted to a client-local key-value store."""

import json
import logging
import os
import re
from typing import Awaitable, Callable, Dict, Iterator, List, MutableMapping, Optional, Protocol, Sequence, Tuple

from grc_risk_dashboard.models import ALL, FILTER_FIELDS, FilterState, SavedFilter

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
NAMESPACE = "risk.dash."
SCHEMA_KEY = NAMESPACE + "schema"
FILTERS_KEY = NAMESPACE + "filters"
PRESET_PREFIX = NAMESPACE + "preset."


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self) -> Iterator[str]:
        ...


class MemoryStore:
    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self.data))


class SessionStateStore(MemoryStore):
    """Store backed by a mapping that lives for the browser session (st.session_state)."""

    def __init__(self, session_state: MutableMapping, slot: str = "risk_dashboard_prefs"):
        if slot not in session_state:
            session_state[slot] = {}
        super().__init__()
        self.data = session_state[slot]


class JsonFileStore(MemoryStore):
    """Store written through to a JSON file so values survive a page reload."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(self._read())

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable preferences file %s: %s", self.path, exc)
            return {}
        return {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}

    def _flush(self) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2, sort_keys=True)

    def set(self, key: str, value: str) -> None:
        super().set(key, value)
        self._flush()

    def delete(self, key: str) -> None:
        super().delete(key)
        self._flush()


def client_prefs_path(base_path: str, client_id: str) -> str:
    """Per-browser preferences file next to ``base_path``: prefs.json -> prefs.<client>.json."""
    safe_id = re.sub(r"[^A-Za-z0-9_-]", "", client_id or "")
    if not safe_id:
        raise ValueError("client id must contain letters, digits, '-' or '_'")
    root, ext = os.path.splitext(base_path)
    return f"{root}.{safe_id}{ext or '.json'}"


def choice_options(axis: Sequence[str], value: Optional[str]) -> Tuple[List[str], int]:
    """Options for a status/level picker and the index of ``value``.

    A persisted value that is not on the axis is kept as an extra option.
    """
    options = [ALL] + list(axis)
    if value and value not in options:
        options.append(value)
    return options, options.index(value) if value else 0


class PreferenceStore:
    """Typed access to dashboard preferences under a versioned key schema."""

    def __init__(self, backend: KeyValueStore):
        self.backend = backend
        self._check_schema()

    def _check_schema(self) -> None:
        stored = self.backend.get(SCHEMA_KEY)
        if stored == str(SCHEMA_VERSION):
            return
        stale = [k for k in self.backend.keys() if k.startswith(NAMESPACE) and k != SCHEMA_KEY]
        if stored is not None or stale:
            logger.warning(
                "Discarding %d preference keys written under schema %s (current %d)",
                len(stale),
                stored,
                SCHEMA_VERSION,
            )
        for key in stale:
            self.backend.delete(key)
        self.backend.set(SCHEMA_KEY, str(SCHEMA_VERSION))

    def load_filters(self) -> FilterState:
        raw = self.backend.get(FILTERS_KEY)
        if not raw:
            return FilterState()
        try:
            return FilterState.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring unreadable filter state: %s", exc)
            return FilterState()

    def save_filters(self, state: FilterState) -> None:
        self.backend.set(FILTERS_KEY, json.dumps(state.to_dict()))

    def save_preset(self, preset: SavedFilter) -> None:
        self.backend.set(PRESET_PREFIX + preset.name, json.dumps(preset.payload.to_dict()))

    def load_preset(self, name: str) -> Optional[SavedFilter]:
        """Return the preset, or None when it is missing. Corrupt payloads raise ValueError."""
        raw = self.backend.get(PRESET_PREFIX + name)
        if raw is None:
            return None
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError(f"Saved filter '{name}' is not an object")
        return SavedFilter(name, FilterState.from_dict(payload))

    def list_presets(self) -> List[SavedFilter]:
        presets = []
        for key in self.backend.keys():
            if not key.startswith(PRESET_PREFIX):
                continue
            name = key[len(PRESET_PREFIX):]
            try:
                preset = self.load_preset(name)
            except ValueError:
                logger.warning("Skipping unreadable saved filter %s", name)
                continue
            if preset is not None:
                presets.append(preset)
        return sorted(presets, key=lambda p: p.name.lower())


Reload = Callable[[], Awaitable[None]]


class FilterManager:
    def __init__(self, prefs: PreferenceStore, reload: Reload):
        self.prefs = prefs
        self.reload = reload
        self.state: FilterState = prefs.load_filters()
        self.error: Optional[str] = None

    def set_field(self, name: str, value: Optional[str]) -> FilterState:
        if name not in FILTER_FIELDS:
            raise ValueError(f"Unknown filter field: {name}")
        payload = self.state.to_dict()
        payload[name] = value
        self._set_state(FilterState.from_dict(payload))
        return self.state

    def _set_state(self, state: FilterState) -> None:
        self.state = state
        self.prefs.save_filters(state)

    async def apply(self) -> None:
        await self.reload()

    async def clear(self) -> None:
        self._set_state(FilterState())
        await self.reload()

    def save(self, name: str) -> SavedFilter:
        name = (name or "").strip()
        if not name:
            raise ValueError("A saved filter needs a name")
        preset = SavedFilter(name, self.state)
        self.prefs.save_preset(preset)
        logger.info("Saved filter preset %s", name)
        return preset

    def presets(self) -> List[SavedFilter]:
        return self.prefs.list_presets()

    async def load_by_name(self, name: str) -> bool:
        """Restore a saved filter and reload. Returns False, with ``error`` set, if it cannot be loaded."""
        try:
            preset = self.prefs.load_preset(name)
        except ValueError as exc:
            self.error = f"Saved filter '{name}' could not be read: {exc}"
            logger.warning(self.error)
            return False
        if preset is None:
            self.error = f"Saved filter '{name}' not found"
            logger.warning(self.error)
            return False
        self.error = None
        self._set_state(preset.payload)
        await self.reload()
        return True
