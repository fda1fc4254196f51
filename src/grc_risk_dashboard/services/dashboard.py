"""Risk dashboard session: owns the working set and wires the engine together."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from grc_risk_dashboard.matrix import DEFAULT_GRID_SIZE, MatrixCell, backlog, matrix_cells
from grc_risk_dashboard.models import Risk, WorkingSet
from grc_risk_dashboard.services.backlog import BacklogReorderer
from grc_risk_dashboard.services.data_service import DataService
from grc_risk_dashboard.services.filters import FilterManager, PreferenceStore
from grc_risk_dashboard.services.relocation import RelocationController, RelocationState
from grc_risk_dashboard.services.risk_service import WorkingSetLoader
from grc_risk_dashboard.services.selection import SelectionPanel
from grc_risk_dashboard.services.stats import RegisterSummary, RiskStats, export_csv, register_summary, summarize
from grc_risk_dashboard.utils.errors import DataServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardView:
    cells: List[MatrixCell] = field(default_factory=list)
    backlog: List[Risk] = field(default_factory=list)
    stats: RiskStats = field(default_factory=RiskStats)
    register: RegisterSummary = field(default_factory=RegisterSummary)
    selected: Optional[Risk] = None
    relocation_state: RelocationState = RelocationState.IDLE
    error: Optional[str] = None
    needs_reload: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cells": [
                {
                    "probability": c.probability,
                    "impact": c.impact,
                    "score": c.score,
                    "band": c.band,
                    "risk_ids": [r.id for r in c.risks],
                }
                for c in self.cells
            ],
            "backlog": [r.to_dict() for r in self.backlog],
            "stats": {
                "by_level": self.stats.by_level,
                "by_status": self.stats.by_status,
                "by_category": self.stats.by_category,
                "monthly_trend": [list(entry) for entry in self.stats.monthly_trend],
                "kpis": self.stats.kpis,
            },
            "register": self.register.to_dict(),
            "selected": self.selected.to_dict() if self.selected else None,
            "relocation_state": self.relocation_state.value,
            "error": self.error,
            "needs_reload": self.needs_reload,
        }


class RiskDashboard:
    def __init__(self, service: DataService, prefs: PreferenceStore, grid_size: int = DEFAULT_GRID_SIZE):
        self.grid_size = grid_size
        self.working_set = WorkingSet()
        self.loader = WorkingSetLoader(service)
        self.filters = FilterManager(prefs, self.reload)
        self.relocation = RelocationController(self.working_set, service, grid_size, report_error=self.set_error)
        self.reorderer = BacklogReorderer(self.working_set, service, grid_size, report_error=self.set_error)
        self.selection = SelectionPanel(self.working_set, grid_size)
        self.error: Optional[str] = None
        self.loading = False

    def set_error(self, message: str) -> None:
        self.error = message

    def clear_error(self) -> None:
        self.error = None

    async def reload(self) -> bool:
        """Reload the working set for the current filters; on failure keep the stale set."""
        self.loading = True
        try:
            records = await self.loader.load(self.filters.state)
        except DataServiceError as exc:
            self.set_error(f"Failed to load risks: {exc.message}")
            logger.warning(self.error)
            return False
        finally:
            self.loading = False
        self.working_set.replace_all(records)
        self.reorderer.needs_reload = False
        self.clear_error()
        self.selection.current()
        return True

    async def load_preset(self, name: str) -> bool:
        loaded = await self.filters.load_by_name(name)
        if not loaded:
            self.set_error(self.filters.error)
        return loaded

    def cells(self) -> List[MatrixCell]:
        return matrix_cells(self.working_set, self.grid_size)

    def backlog(self) -> List[Risk]:
        return backlog(self.working_set, self.grid_size)

    def stats(self) -> RiskStats:
        return summarize(self.working_set)

    def register(self) -> RegisterSummary:
        return register_summary(self.working_set)

    def export_csv(self) -> str:
        return export_csv(self.working_set)

    def view(self) -> DashboardView:
        return DashboardView(
            cells=self.cells(),
            backlog=self.backlog(),
            stats=self.stats(),
            register=self.register(),
            selected=self.selection.current(),
            relocation_state=self.relocation.state,
            error=self.error,
            needs_reload=self.reorderer.needs_reload,
        )
