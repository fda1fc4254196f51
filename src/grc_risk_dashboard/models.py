# File: /grc-risk-dashboard/grc-risk-dashboard/src/grc_risk_dashboard/models.py

"""
models.py

Data models for the GRC Risk Dashboard: the risk record positioned on the
probability x impact grid, the filter values that select the working set,
and the working set itself.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from grc_risk_dashboard.helpers import coerce_int, coerce_str

ALL = "all"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskStatus(str, Enum):
    IDENTIFIED = "identified"
    ASSESSED = "assessed"
    TREATING = "treating"
    MONITORING = "monitoring"
    ACCEPTED = "accepted"
    TRANSFERRED = "transferred"
    AVOIDED = "avoided"
    CLOSED = "closed"


@dataclass(frozen=True)
class Risk:
    """A risk record as returned by the data service."""

    id: str
    title: str = ""
    description: Optional[str] = None
    category: Optional[str] = None
    probability: Optional[int] = None
    impact: Optional[int] = None
    risk_level: Optional[str] = None
    status: Optional[str] = None
    priority_order: Optional[int] = None
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Risk":
        return cls(
            id=str(row["id"]),
            title=coerce_str(row.get("title")) or "",
            description=coerce_str(row.get("description")),
            category=coerce_str(row.get("category")),
            probability=coerce_int(row.get("probability")),
            impact=coerce_int(row.get("impact")),
            risk_level=coerce_str(row.get("risk_level")),
            status=coerce_str(row.get("status")),
            priority_order=coerce_int(row.get("priority_order")),
            created_at=coerce_str(row.get("created_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def with_fields(self, **changes: Any) -> "Risk":
        return replace(self, **changes)


RISK_COLUMNS: List[str] = [f.name for f in fields(Risk)]


@dataclass(frozen=True)
class FilterState:
    search: Optional[str] = None
    status: Optional[str] = None
    level: Optional[str] = None
    category: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FilterState":
        return cls(
            **{name: _normalize_filter_value(payload.get(name), name in SENTINEL_FIELDS) for name in FILTER_FIELDS}
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_query(self) -> Dict[str, str]:
        """Return only the constraints that narrow the query."""
        return {k: v for k, v in self.to_dict().items() if v is not None}


FILTER_FIELDS = ("search", "status", "level", "category")
# Only the choice fields accept "all"; search and category are free text.
SENTINEL_FIELDS = ("status", "level")


def _normalize_filter_value(value: Any, allow_sentinel: bool = False) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or (allow_sentinel and text.lower() == ALL):
        return None
    return text


@dataclass(frozen=True)
class SavedFilter:
    name: str
    payload: FilterState = field(default_factory=FilterState)


class WorkingSet:
    """The dashboard session's current risk records, mutated in place."""

    def __init__(self, records: Optional[List[Risk]] = None):
        self.records: List[Risk] = list(records or [])

    def __iter__(self) -> Iterator[Risk]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def get(self, risk_id: str) -> Optional[Risk]:
        for risk in self.records:
            if risk.id == risk_id:
                return risk
        return None

    def put(self, risk: Risk) -> bool:
        """Replace the record with the same id; False if it is no longer present."""
        for idx, current in enumerate(self.records):
            if current.id == risk.id:
                self.records[idx] = risk
                return True
        return False

    def replace_all(self, records: List[Risk]) -> None:
        self.records[:] = records
