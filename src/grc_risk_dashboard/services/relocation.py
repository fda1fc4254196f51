"""Drag and keyboard relocation of risks between grid cells and the backlog.

A relocation is applied to the working set optimistically and then persisted
with a single ``update_risk`` call. Each call carries a token; only the
response to the newest token issued for a record may change what the
dashboard shows. When that response is a failure the record is put back to
its last confirmed position.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set, Tuple, Union

from grc_risk_dashboard.matrix import DEFAULT_GRID_SIZE, grid_position, next_backlog_order
from grc_risk_dashboard.models import Risk, WorkingSet
from grc_risk_dashboard.services.data_service import DataService
from grc_risk_dashboard.utils.errors import DataServiceError, InvalidDropTargetError, RecordNotFoundError

logger = logging.getLogger(__name__)

BACKLOG = "backlog"
POSITION_FIELDS = ("probability", "impact", "priority_order")
PICK_UP_KEYS = {"Enter", " "}

Target = Union[Tuple[int, int], str]
ErrorReporter = Callable[[str], None]


class RelocationState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    COMMITTING = "committing"


@dataclass(frozen=True)
class RelocationOutcome:
    risk_id: str
    token: Optional[int]
    status: str  # persisted | failed | stale | unchanged
    error: Optional[str] = None


@dataclass
class _Tracker:
    baseline: Risk
    confirmed_token: int = 0
    pending: Set[int] = field(default_factory=set)


class RelocationController:
    def __init__(
        self,
        working_set: WorkingSet,
        service: DataService,
        grid_size: int = DEFAULT_GRID_SIZE,
        report_error: Optional[ErrorReporter] = None,
    ):
        self.working_set = working_set
        self.service = service
        self.grid_size = grid_size
        self.report_error = report_error
        self.error: Optional[str] = None
        self.armed_source: Optional[str] = None
        self._armed_id: Optional[str] = None
        self._next_token = 0
        self._latest: Dict[str, int] = {}
        self._trackers: Dict[str, _Tracker] = {}

    @property
    def state(self) -> RelocationState:
        if self._armed_id is not None:
            return RelocationState.ARMED
        if self._trackers:
            return RelocationState.COMMITTING
        return RelocationState.IDLE

    @property
    def armed(self) -> Optional[Risk]:
        if self._armed_id is None:
            return None
        return self.working_set.get(self._armed_id)

    @property
    def in_flight(self) -> int:
        return sum(len(t.pending) for t in self._trackers.values())

    def pick_up(self, risk_id: str, source: str = "pointer") -> Risk:
        risk = self.working_set.get(risk_id)
        if risk is None:
            raise RecordNotFoundError(f"Risk {risk_id} is not in the working set")
        self._armed_id = risk.id
        self.armed_source = source
        logger.debug("Picked up risk %s via %s", risk.id, source)
        return risk

    def cancel(self) -> None:
        if self._armed_id is not None:
            logger.debug("Cancelled relocation of risk %s", self._armed_id)
        self._armed_id = None
        self.armed_source = None

    async def drop_on_cell(self, probability: int, impact: int) -> Optional[RelocationOutcome]:
        n = self.grid_size
        if not (isinstance(probability, int) and isinstance(impact, int)):
            raise InvalidDropTargetError(f"Cell ({probability}, {impact}) is not on the grid")
        if not (1 <= probability <= n and 1 <= impact <= n):
            raise InvalidDropTargetError(f"Cell ({probability}, {impact}) is outside the {n}x{n} grid")
        return await self._drop((probability, impact))

    async def drop_on_backlog(self) -> Optional[RelocationOutcome]:
        return await self._drop(BACKLOG)

    def handle_risk_key(self, risk_id: str, key: str) -> None:
        if key in PICK_UP_KEYS:
            self.pick_up(risk_id, source="keyboard")
        elif key == "Escape":
            self.cancel()

    async def handle_cell_key(self, probability: int, impact: int, key: str) -> Optional[RelocationOutcome]:
        if key == "Enter" and self._armed_id is not None:
            return await self.drop_on_cell(probability, impact)
        if key == "Escape":
            self.cancel()
        return None

    async def handle_backlog_key(self, key: str) -> Optional[RelocationOutcome]:
        if key == "Enter" and self._armed_id is not None:
            return await self.drop_on_backlog()
        if key == "Escape":
            self.cancel()
        return None

    async def _drop(self, target: Target) -> Optional[RelocationOutcome]:
        risk_id = self._armed_id
        self.cancel()
        if risk_id is None:
            return None
        risk = self.working_set.get(risk_id)
        if risk is None:
            self._fail(f"Risk {risk_id} is no longer in the working set")
            return None
        fields = self._fields_for(risk, target)
        if fields is None:
            return RelocationOutcome(risk.id, None, "unchanged")
        return await self._commit(risk, fields)

    def _fields_for(self, risk: Risk, target: Target) -> Optional[Dict[str, Any]]:
        current = grid_position(risk, self.grid_size)
        if target == BACKLOG:
            if current is None:
                return None
            return {
                "probability": None,
                "impact": None,
                "priority_order": next_backlog_order(self.working_set, self.grid_size),
            }
        if current == target:
            return None
        probability, impact = target
        return {"probability": probability, "impact": impact}

    async def _commit(self, risk: Risk, fields: Dict[str, Any]) -> RelocationOutcome:
        self._next_token += 1
        token = self._next_token
        self._latest[risk.id] = token
        tracker = self._trackers.get(risk.id)
        if tracker is None:
            tracker = self._trackers[risk.id] = _Tracker(baseline=risk)
        tracker.pending.add(token)
        self.working_set.put(risk.with_fields(**fields))
        try:
            await self.service.update_risk(risk.id, fields)
        except DataServiceError as exc:
            return self._settle(risk, token, fields, exc)
        except Exception as exc:
            # Unexpected failures still settle the token before propagating.
            self._settle(risk, token, fields, DataServiceError(f"Unexpected error: {exc}"))
            raise
        return self._settle(risk, token, fields, None)

    def _settle(
        self, risk: Risk, token: int, fields: Dict[str, Any], exc: Optional[DataServiceError]
    ) -> RelocationOutcome:
        tracker = self._trackers[risk.id]
        tracker.pending.discard(token)
        if exc is None and token > tracker.confirmed_token:
            tracker.baseline = tracker.baseline.with_fields(**fields)
            tracker.confirmed_token = token

        latest = self._latest[risk.id]
        if token == latest:
            if exc is None:
                outcome = RelocationOutcome(risk.id, token, "persisted")
            else:
                self._restore(tracker.baseline)
                message = f"Failed to move risk '{risk.title or risk.id}': {exc.message}"
                self._fail(message)
                outcome = RelocationOutcome(risk.id, token, "failed", message)
        else:
            logger.info("Discarding stale relocation response for risk %s (token %d < %d)", risk.id, token, latest)
            if latest not in tracker.pending:
                self._restore(tracker.baseline)
            outcome = RelocationOutcome(risk.id, token, "stale", exc.message if exc else None)

        if not tracker.pending:
            del self._trackers[risk.id]
            del self._latest[risk.id]
        return outcome

    def _restore(self, baseline: Risk) -> None:
        current = self.working_set.get(baseline.id)
        if current is None:
            return
        self.working_set.put(current.with_fields(**{name: getattr(baseline, name) for name in POSITION_FIELDS}))

    def _fail(self, message: str) -> None:
        self.error = message
        logger.warning(message)
        if self.report_error is not None:
            self.report_error(message)
