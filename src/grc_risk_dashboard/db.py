# File: /grc-risk-dashboard/grc-risk-dashboard/src/grc_risk_dashboard/db.py

"""
Local CSV-backed data service for the GRC Risk Dashboard.

Risks live in a single CSV file read and written with pandas. The store
implements the same async query/update/bulk-reorder interface as the hosted
service client, so the dashboard can run fully offline.
"""

import logging
import os
import tempfile
from typing import Any, Dict, List, Sequence, Tuple

import pandas as pd

from grc_risk_dashboard.models import RISK_COLUMNS, FilterState, Risk
from grc_risk_dashboard.utils.errors import DataServiceError, RecordNotFoundError

logger = logging.getLogger(__name__)

CSV_FILE_PATH = "risks.csv"

UPDATABLE_FIELDS = {"probability", "impact", "priority_order"}


def load_df(path: str = CSV_FILE_PATH) -> pd.DataFrame:
    """Load risks from CSV or return an empty DataFrame."""
    if os.path.exists(path):
        return pd.read_csv(path, dtype={"id": str})
    return pd.DataFrame(columns=RISK_COLUMNS)


def write_df(df: pd.DataFrame, path: str = CSV_FILE_PATH) -> None:
    """Replace the CSV in one step so readers never see a half-written file."""
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(suffix=".csv", dir=directory)
    os.close(fd)
    try:
        df.to_csv(tmp_path, index=False)
        os.replace(tmp_path, path)
    except OSError as exc:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise DataServiceError(f"Failed to write {path}: {exc}") from exc


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    return df.astype(object).where(pd.notna(df), None).to_dict(orient="records")


def _text(series: pd.Series) -> pd.Series:
    return series.astype("string").fillna("")


def _contains(series: pd.Series, needle: str) -> pd.Series:
    return _text(series).str.contains(needle, case=False, regex=False)


class CsvRiskStore:
    def __init__(self, path: str = CSV_FILE_PATH):
        self.path = path

    def _load(self) -> pd.DataFrame:
        try:
            return load_df(self.path)
        except (OSError, ValueError, pd.errors.ParserError) as exc:
            raise DataServiceError(f"Failed to read {self.path}: {exc}") from exc

    def _row_index(self, df: pd.DataFrame, risk_id: str) -> Any:
        matches = df.index[df["id"].astype(str) == str(risk_id)]
        if len(matches) == 0:
            raise RecordNotFoundError(f"Risk {risk_id} not found", status_code=404)
        return matches[0]

    async def query_risks(self, filters: FilterState) -> List[Risk]:
        df = self._load()
        for column in RISK_COLUMNS:
            if column not in df.columns:
                df[column] = None
        mask = pd.Series(True, index=df.index)
        if filters.status:
            mask &= _text(df["status"]) == filters.status
        if filters.level:
            mask &= _text(df["risk_level"]) == filters.level
        if filters.category:
            mask &= _contains(df["category"], filters.category)
        if filters.search:
            mask &= (
                _contains(df["title"], filters.search)
                | _contains(df["description"], filters.search)
                | _contains(df["category"], filters.search)
            )
        selected = df[mask].sort_values("created_at", ascending=False, na_position="last")
        return [Risk.from_dict(row) for row in _records(selected)]

    async def update_risk(self, risk_id: str, fields: Dict[str, Any]) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise DataServiceError(f"Fields not updatable: {sorted(unknown)}", status_code=400)
        df = self._load().astype(object)
        idx = self._row_index(df, risk_id)
        for name, value in fields.items():
            df.at[idx, name] = value
        write_df(df, self.path)
        logger.debug("Updated risk %s with %s", risk_id, fields)

    async def bulk_reorder(self, updates: Sequence[Tuple[str, int]]) -> None:
        """Apply every priority_order update in one file rewrite, or none of them."""
        df = self._load().astype(object)
        positions = [(self._row_index(df, risk_id), order) for risk_id, order in updates]
        for idx, order in positions:
            df.at[idx, "priority_order"] = order
        write_df(df, self.path)
        logger.debug("Reordered %d backlog risks", len(positions))
