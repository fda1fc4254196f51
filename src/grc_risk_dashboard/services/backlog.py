"""Backlog reordering with a single logical commit.

The new order is applied locally first. Persistence tries the data service's
atomic bulk update; when that is unavailable or fails, every write is staged
up front and committed one row at a time. A failed row triggers compensating
writes that put the already written rows back to their previous order.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from grc_risk_dashboard.matrix import DEFAULT_GRID_SIZE, backlog, move_backlog_item
from grc_risk_dashboard.models import Risk, WorkingSet
from grc_risk_dashboard.services.data_service import DataService
from grc_risk_dashboard.utils.errors import BatchUnavailableError, DataServiceError

logger = logging.getLogger(__name__)

Update = Tuple[str, int]


@dataclass(frozen=True)
class ReorderOutcome:
    status: str  # persisted | failed | unchanged
    updates: Tuple[Update, ...] = ()
    via: Optional[str] = None  # batch | sequential
    error: Optional[str] = None


class BacklogReorderer:
    def __init__(
        self,
        working_set: WorkingSet,
        service: DataService,
        grid_size: int = DEFAULT_GRID_SIZE,
        report_error: Optional[Callable[[str], None]] = None,
    ):
        self.working_set = working_set
        self.service = service
        self.grid_size = grid_size
        self.report_error = report_error
        self.error: Optional[str] = None
        self.needs_reload = False
        self._generation = 0

    def items(self) -> List[Risk]:
        return backlog(self.working_set, self.grid_size)

    async def move(self, from_index: int, to_index: int) -> ReorderOutcome:
        items = self.items()
        if from_index == to_index:
            return ReorderOutcome("unchanged")
        reordered = move_backlog_item(items, from_index, to_index)
        previous = {r.id: r.priority_order for r in items}
        updates = tuple((r.id, r.priority_order) for r in reordered)

        self._generation += 1
        generation = self._generation
        self._apply({rid: order for rid, order in updates})

        via = "batch"
        try:
            await self.service.bulk_reorder(updates)
        except BatchUnavailableError:
            logger.info("Batch reorder unavailable, committing %d rows sequentially", len(updates))
            via = "sequential"
        except DataServiceError as exc:
            logger.warning("Batch reorder failed (%s), committing %d rows sequentially", exc.message, len(updates))
            via = "sequential"

        if via == "sequential":
            try:
                await self._commit_sequential(updates, previous)
            except DataServiceError as exc:
                message = f"Failed to reorder backlog: {exc.message}"
                if generation == self._generation:
                    self._apply(previous)
                else:
                    self.needs_reload = True
                self._fail(message)
                return ReorderOutcome("failed", updates, via, message)
        return ReorderOutcome("persisted", updates, via)

    async def move_up(self, risk_id: str) -> ReorderOutcome:
        idx = self._index_of(risk_id)
        if idx == 0:
            return ReorderOutcome("unchanged")
        return await self.move(idx, idx - 1)

    async def move_down(self, risk_id: str) -> ReorderOutcome:
        idx = self._index_of(risk_id)
        if idx == len(self.items()) - 1:
            return ReorderOutcome("unchanged")
        return await self.move(idx, idx + 1)

    def _index_of(self, risk_id: str) -> int:
        for idx, risk in enumerate(self.items()):
            if risk.id == risk_id:
                return idx
        raise IndexError(f"Risk {risk_id} is not in the backlog")

    def _apply(self, orders: Dict[str, Optional[int]]) -> None:
        for risk_id, order in orders.items():
            current = self.working_set.get(risk_id)
            if current is not None:
                self.working_set.put(current.with_fields(priority_order=order))

    async def _commit_sequential(self, updates: Sequence[Update], previous: Dict[str, Optional[int]]) -> None:
        written: List[str] = []
        try:
            for risk_id, order in updates:
                await self.service.update_risk(risk_id, {"priority_order": order})
                written.append(risk_id)
        except DataServiceError:
            await self._compensate(written, previous)
            raise

    async def _compensate(self, written: Sequence[str], previous: Dict[str, Optional[int]]) -> None:
        for risk_id in reversed(written):
            try:
                await self.service.update_risk(risk_id, {"priority_order": previous[risk_id]})
            except DataServiceError as exc:
                logger.error("Compensating write for risk %s failed: %s", risk_id, exc.message)
                self.needs_reload = True
        if written:
            logger.info("Restored priority_order on %d rows after a failed reorder", len(written))

    def _fail(self, message: str) -> None:
        self.error = message
        logger.warning(message)
        if self.report_error is not None:
            self.report_error(message)
