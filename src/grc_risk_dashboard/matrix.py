"""Probability x impact grid placement and backlog ordering.

Everything here is pure: functions take the working set as a list of
``Risk`` records and return new structures without touching the input.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from grc_risk_dashboard.helpers import score_risk, severity_band
from grc_risk_dashboard.models import Risk

DEFAULT_GRID_SIZE = 5
PREVIEW_LIMIT = 3

Cell = Tuple[int, int]


def grid_position(risk: Risk, n: int = DEFAULT_GRID_SIZE) -> Optional[Cell]:
    """Return (probability, impact) when the risk sits on an n x n grid, else None."""
    p, i = risk.probability, risk.impact
    if p is None or i is None:
        return None
    if 1 <= p <= n and 1 <= i <= n:
        return p, i
    return None


def is_on_grid(risk: Risk, n: int = DEFAULT_GRID_SIZE) -> bool:
    return grid_position(risk, n) is not None


def bucketize(records: Iterable[Risk], n: int = DEFAULT_GRID_SIZE) -> Dict[Cell, List[Risk]]:
    """Group on-grid risks by cell, keeping input order inside each bucket."""
    buckets: Dict[Cell, List[Risk]] = {(p, i): [] for p in range(1, n + 1) for i in range(1, n + 1)}
    for risk in records:
        cell = grid_position(risk, n)
        if cell is not None:
            buckets[cell].append(risk)
    return buckets


@dataclass(frozen=True)
class MatrixCell:
    probability: int
    impact: int
    risks: List[Risk] = field(default_factory=list)

    @property
    def score(self) -> int:
        return score_risk(self.probability, self.impact)

    @property
    def band(self) -> str:
        return severity_band(self.score)

    @property
    def preview(self) -> List[Risk]:
        return self.risks[:PREVIEW_LIMIT]

    @property
    def overflow(self) -> int:
        return max(len(self.risks) - PREVIEW_LIMIT, 0)


def matrix_cells(records: Iterable[Risk], n: int = DEFAULT_GRID_SIZE) -> List[MatrixCell]:
    """Return every cell of the grid, row by row (probability), then impact."""
    return [MatrixCell(p, i, bucket) for (p, i), bucket in bucketize(records, n).items()]


def build_matrix(records: Iterable[Risk], n: int = DEFAULT_GRID_SIZE) -> np.ndarray:
    """Build n x n matrix of risk counts indexed [probability - 1, impact - 1]."""
    matrix = np.zeros((n, n), dtype=int)
    for (p, i), bucket in bucketize(records, n).items():
        matrix[p - 1, i - 1] = len(bucket)
    return matrix


def backlog(records: Iterable[Risk], n: int = DEFAULT_GRID_SIZE) -> List[Risk]:
    """Return off-grid risks in priority order.

    Ascending ``priority_order`` with unordered records last; ties go to the
    newest ``created_at``. Both passes are stable sorts, so records with equal
    keys keep their input order.
    """
    items = [r for r in records if not is_on_grid(r, n)]
    items.sort(key=lambda r: r.created_at or "", reverse=True)
    items.sort(key=lambda r: (r.priority_order is None, r.priority_order or 0))
    return items


def move_backlog_item(items: Sequence[Risk], from_index: int, to_index: int) -> List[Risk]:
    """Move one backlog entry and renumber every entry to its 1-based position."""
    result = list(items)
    if from_index == to_index:
        return result
    for idx in (from_index, to_index):
        if not 0 <= idx < len(result):
            raise IndexError(f"backlog index {idx} out of range for {len(result)} items")
    moved = result.pop(from_index)
    result.insert(to_index, moved)
    return [risk.with_fields(priority_order=pos) for pos, risk in enumerate(result, start=1)]


def next_backlog_order(records: Iterable[Risk], n: int = DEFAULT_GRID_SIZE) -> int:
    orders = [r.priority_order for r in records if not is_on_grid(r, n) and r.priority_order is not None]
    return max(orders, default=0) + 1
