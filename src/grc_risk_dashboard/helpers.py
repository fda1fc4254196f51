import math
from typing import Any, Dict, Optional, Tuple

# Lower bound of each severity band, highest first.
SEVERITY_THRESHOLDS: Tuple[Tuple[int, str], ...] = (
    (20, "critical"),
    (12, "high"),
    (6, "medium"),
)

BAND_COLORS: Dict[str, str] = {
    "low": "#2ECC71",
    "medium": "#F4D03F",
    "high": "#E67E22",
    "critical": "#E74C3C",
}


def score_risk(likelihood: int, impact: int) -> int:
    """Calculate risk score."""
    return likelihood * impact


def severity_band(score: int) -> str:
    """Map a probability x impact score to its severity band."""
    for lower_bound, band in SEVERITY_THRESHOLDS:
        if score >= lower_bound:
            return band
    return "low"


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def coerce_int(value: Any) -> Optional[int]:
    """Return value as an int, or None for blanks, NaN and non-integral input."""
    if is_blank(value) or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or not number.is_integer():
        return None
    return int(number)


def coerce_str(value: Any) -> Optional[str]:
    if is_blank(value):
        return None
    return str(value)


def month_key(created_at: Optional[str]) -> Optional[str]:
    """Return the YYYY-MM prefix of an ISO timestamp."""
    if not created_at:
        return None
    return created_at[:7]
