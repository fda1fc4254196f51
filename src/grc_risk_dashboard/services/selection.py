from typing import Any, Dict, Optional

from grc_risk_dashboard.helpers import score_risk, severity_band
from grc_risk_dashboard.matrix import DEFAULT_GRID_SIZE, grid_position
from grc_risk_dashboard.models import Risk, WorkingSet


def tooltip(risk: Risk, n: int = DEFAULT_GRID_SIZE) -> str:
    """One-line hover text for a risk on the grid or in the backlog."""
    parts = [risk.title or risk.id]
    cell = grid_position(risk, n)
    if cell is not None:
        p, i = cell
        score = score_risk(p, i)
        parts.append(f"P{p} x I{i} = {score} ({severity_band(score)})")
    else:
        parts.append("backlog" if risk.priority_order is None else f"backlog #{risk.priority_order}")
    if risk.risk_level:
        parts.append(f"level: {risk.risk_level}")
    if risk.category:
        parts.append(risk.category)
    return " | ".join(parts)


class SelectionPanel:
    """Holds at most one selected risk id, resolved against the working set on read."""

    def __init__(self, working_set: WorkingSet, grid_size: int = DEFAULT_GRID_SIZE):
        self.working_set = working_set
        self.grid_size = grid_size
        self.selected_id: Optional[str] = None

    def select(self, risk_id: Optional[str]) -> Optional[Risk]:
        self.selected_id = risk_id
        return self.current()

    def current(self) -> Optional[Risk]:
        if self.selected_id is None:
            return None
        risk = self.working_set.get(self.selected_id)
        if risk is None:
            self.selected_id = None
        return risk

    def cancel(self) -> None:
        self.selected_id = None

    def handle_key(self, key: str) -> None:
        if key == "Escape":
            self.cancel()

    def detail(self) -> Optional[Dict[str, Any]]:
        risk = self.current()
        if risk is None:
            return None
        data = risk.to_dict()
        cell = grid_position(risk, self.grid_size)
        data["on_grid"] = cell is not None
        if cell is not None:
            data["score"] = score_risk(*cell)
            data["band"] = severity_band(data["score"])
        data["tooltip"] = tooltip(risk, self.grid_size)
        return data
