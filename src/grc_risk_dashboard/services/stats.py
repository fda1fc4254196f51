"""Distributions, monthly trend, KPI counts and the register export over the filtered working set."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence, Tuple

import pandas as pd

from grc_risk_dashboard.helpers import month_key
from grc_risk_dashboard.models import RISK_COLUMNS, Risk, RiskLevel, RiskStatus

LEVEL_AXIS = [level.value for level in RiskLevel]
STATUS_ORDER = [status.value for status in RiskStatus]
UNKNOWN = "unknown"
UNCATEGORIZED = "Uncategorized"
REGISTER_LIMIT = 10
REGISTER_COLUMNS = ["title", "category", "level", "status", "created"]
INT_COLUMNS = ["probability", "impact", "priority_order"]


def _counts(values: Sequence[str]) -> Dict[str, int]:
    series = pd.Series(list(values), dtype="object")
    return {str(k): int(v) for k, v in series.value_counts(sort=False).items()}


def by_level(records: Iterable[Risk]) -> Dict[str, int]:
    """Count risks per level on the full low..critical axis."""
    counts = _counts([r.risk_level or UNKNOWN for r in records])
    result = {level: counts.pop(level, 0) for level in LEVEL_AXIS}
    for level in sorted(counts):
        result[level] = counts[level]
    return result


def by_status(records: Iterable[Risk]) -> Dict[str, int]:
    """Count risks per observed status, in lifecycle order."""
    counts = _counts([r.status or UNKNOWN for r in records])
    ordered = [s for s in STATUS_ORDER if s in counts]
    ordered += sorted(s for s in counts if s not in STATUS_ORDER)
    return {s: counts[s] for s in ordered}


def by_category(records: Iterable[Risk]) -> Dict[str, int]:
    counts = _counts([r.category or UNCATEGORIZED for r in records])
    return dict(sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])))


def monthly_trend(records: Iterable[Risk]) -> List[Tuple[str, int]]:
    """Risks created per YYYY-MM, oldest month first."""
    months = [m for m in (month_key(r.created_at) for r in records) if m]
    if not months:
        return []
    counts = pd.Series(months, dtype="object").value_counts().sort_index()
    return [(str(k), int(v)) for k, v in counts.items()]


def kpis(records: Iterable[Risk]) -> Dict[str, int]:
    items = list(records)
    levels = by_level(items)
    return {
        "total": len(items),
        "open": sum(1 for r in items if r.status != RiskStatus.CLOSED.value),
        "high_critical": levels[RiskLevel.HIGH.value] + levels[RiskLevel.CRITICAL.value],
        "low_medium": levels[RiskLevel.LOW.value] + levels[RiskLevel.MEDIUM.value],
    }


@dataclass(frozen=True)
class RiskStats:
    by_level: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)
    by_category: Dict[str, int] = field(default_factory=dict)
    monthly_trend: List[Tuple[str, int]] = field(default_factory=list)
    kpis: Dict[str, int] = field(default_factory=dict)


def summarize(records: Iterable[Risk]) -> RiskStats:
    items = list(records)
    return RiskStats(
        by_level=by_level(items),
        by_status=by_status(items),
        by_category=by_category(items),
        monthly_trend=monthly_trend(items),
        kpis=kpis(items),
    )


@dataclass(frozen=True)
class RegisterSummary:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0

    @property
    def overflow(self) -> int:
        return max(self.total - len(self.rows), 0)

    def to_dict(self) -> Dict[str, Any]:
        return {"rows": self.rows, "total": self.total, "overflow": self.overflow}


def register_summary(records: Iterable[Risk], limit: int = REGISTER_LIMIT) -> RegisterSummary:
    """First ``limit`` risks of the working set as register rows, in working-set order."""
    items = list(records)
    rows = [
        {
            "id": r.id,
            "title": r.title,
            "category": r.category or "-",
            "level": r.risk_level or UNKNOWN,
            "status": r.status or UNKNOWN,
            "created": (r.created_at or "")[:10] or "-",
        }
        for r in items[:limit]
    ]
    return RegisterSummary(rows=rows, total=len(items))


def export_csv(records: Iterable[Risk]) -> str:
    """Serialize the working set to CSV with one column per risk field."""
    df = pd.DataFrame([r.to_dict() for r in records], columns=RISK_COLUMNS)
    for column in INT_COLUMNS:
        df[column] = df[column].astype("Int64")
    return df.to_csv(index=False)
