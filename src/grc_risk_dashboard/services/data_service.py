import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import requests

from grc_risk_dashboard.models import FilterState, Risk
from grc_risk_dashboard.utils.errors import (
    BatchUnavailableError,
    DataServiceError,
    RecordNotFoundError,
)

logger = logging.getLogger(__name__)

RISKS_TABLE = "risks"


class DataService(Protocol):
    async def query_risks(self, filters: FilterState) -> List[Risk]:
        ...

    async def update_risk(self, risk_id: str, fields: Dict[str, Any]) -> None:
        ...

    async def bulk_reorder(self, updates: Sequence[Tuple[str, int]]) -> None:
        ...


def _escape(value: str) -> str:
    # PostgREST reserves these inside or=() and ilike patterns.
    for ch in ",()*":
        value = value.replace(ch, " ")
    return value.strip()


def build_query_params(filters: FilterState) -> Dict[str, str]:
    params = {"select": "*", "order": "created_at.desc"}
    if filters.status:
        params["status"] = f"eq.{filters.status}"
    if filters.level:
        params["risk_level"] = f"eq.{filters.level}"
    if filters.category:
        params["category"] = f"ilike.*{_escape(filters.category)}*"
    if filters.search:
        term = _escape(filters.search)
        params["or"] = f"(title.ilike.*{term}*,description.ilike.*{term}*,category.ilike.*{term}*)"
    return params


class RestDataService:
    """Client for a PostgREST-style hosted risk table."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        reorder_rpc: str = "rpc_update_backlog_order",
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.reorder_rpc = reorder_rpc
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json_body: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        headers = self._headers()
        if prefer:
            headers["Prefer"] = prefer
        try:
            response = requests.request(
                method, url, headers=headers, params=params, json=json_body, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise DataServiceError(f"Risk service unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise DataServiceError(
                f"Risk service error {response.status_code}: {response.text}", status_code=response.status_code
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise DataServiceError(
                f"Risk service returned a non-JSON body ({response.status_code})", status_code=response.status_code
            ) from exc

    async def query_risks(self, filters: FilterState) -> List[Risk]:
        rows = await asyncio.to_thread(
            self._request, "GET", f"/rest/v1/{RISKS_TABLE}", build_query_params(filters)
        )
        logger.debug("Fetched %d risks from %s", len(rows or []), self.base_url)
        return [Risk.from_dict(row) for row in rows or []]

    async def update_risk(self, risk_id: str, fields: Dict[str, Any]) -> None:
        params = {"id": f"eq.{risk_id}"}
        # return=representation makes a missing id observable as an empty list
        rows = await asyncio.to_thread(
            self._request, "PATCH", f"/rest/v1/{RISKS_TABLE}", params, fields, "return=representation"
        )
        if not rows:
            raise RecordNotFoundError(f"Risk {risk_id} not found", status_code=404)

    async def bulk_reorder(self, updates: Sequence[Tuple[str, int]]) -> None:
        payload = {"p_updates": [{"id": rid, "priority_order": order} for rid, order in updates]}
        try:
            await asyncio.to_thread(self._request, "POST", f"/rest/v1/rpc/{self.reorder_rpc}", None, payload)
        except DataServiceError as exc:
            if exc.status_code == 404:
                raise BatchUnavailableError(
                    f"Batch reorder RPC {self.reorder_rpc} is not available", status_code=404
                ) from exc
            raise
