import asyncio
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import pytest

from grc_risk_dashboard.models import FilterState, Risk, WorkingSet
from grc_risk_dashboard.utils.errors import BatchUnavailableError, DataServiceError


def make_risk(rid: str, **kwargs: Any) -> Risk:
    defaults = {
        "title": f"Risk {rid}",
        "risk_level": "medium",
        "status": "identified",
        "category": "Operational",
        "created_at": "2024-01-01T00:00:00",
    }
    defaults.update(kwargs)
    return Risk(id=rid, **defaults)


class _Held:
    def __init__(self) -> None:
        self.event = asyncio.Event()
        self.error: Optional[Exception] = None


class FakeDataService:
    """In-memory async data service with switchable failures and held responses."""

    def __init__(self, risks: Sequence[Risk] = ()):
        self.rows: Dict[str, Risk] = {r.id: r for r in risks}
        self.calls: List[Tuple[str, Any]] = []
        self.fail_ids: Set[str] = set()
        self.fail_calls: Set[int] = set()
        self.batch_available = True
        self.batch_error: Optional[Exception] = None
        self.query_error: Optional[Exception] = None
        self.hold = False
        self.held: List[_Held] = []
        self._update_count = 0

    async def query_risks(self, filters: FilterState) -> List[Risk]:
        self.calls.append(("query", filters))
        if self.query_error is not None:
            raise self.query_error
        result = list(self.rows.values())
        if filters.status:
            result = [r for r in result if r.status == filters.status]
        if filters.level:
            result = [r for r in result if r.risk_level == filters.level]
        if filters.search:
            result = [r for r in result if filters.search.lower() in r.title.lower()]
        return result

    async def update_risk(self, risk_id: str, fields: Dict[str, Any]) -> None:
        call_index = self._update_count
        self._update_count += 1
        self.calls.append(("update", (risk_id, dict(fields))))
        if self.hold:
            held = _Held()
            self.held.append(held)
            await held.event.wait()
            if held.error is not None:
                raise held.error
        elif risk_id in self.fail_ids or call_index in self.fail_calls:
            raise DataServiceError(f"write rejected for {risk_id}", status_code=500)
        self.rows[risk_id] = self.rows[risk_id].with_fields(**fields)

    async def bulk_reorder(self, updates: Sequence[Tuple[str, int]]) -> None:
        self.calls.append(("bulk", list(updates)))
        if not self.batch_available:
            raise BatchUnavailableError("no batch rpc", status_code=404)
        if self.batch_error is not None:
            raise self.batch_error
        for risk_id, order in updates:
            self.rows[risk_id] = self.rows[risk_id].with_fields(priority_order=order)

    def release(self, index: int, error: Optional[Exception] = None) -> None:
        held = self.held[index]
        held.error = error
        held.event.set()

    def updates(self) -> List[Tuple[str, Dict[str, Any]]]:
        return [args for kind, args in self.calls if kind == "update"]


@pytest.fixture
def scenario_risks() -> List[Risk]:
    return [
        make_risk("1", probability=3, impact=4, risk_level="high"),
        make_risk("2", priority_order=2),
        make_risk("3", priority_order=1),
    ]


@pytest.fixture
def service(scenario_risks) -> FakeDataService:
    return FakeDataService(scenario_risks)


@pytest.fixture
def working_set(scenario_risks) -> WorkingSet:
    return WorkingSet(scenario_risks)
