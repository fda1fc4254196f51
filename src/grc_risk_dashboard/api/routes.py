# File: /grc-risk-dashboard/grc-risk-dashboard/src/grc_risk_dashboard/api/routes.py

# HTTP routes over a RiskDashboard session: working set, grid, backlog,
# analytics, register export, relocation, backlog reorder, filters and selection.

from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel

from grc_risk_dashboard.services.dashboard import RiskDashboard
from grc_risk_dashboard.services.stats import REGISTER_LIMIT, register_summary
from grc_risk_dashboard.utils.errors import InvalidDropTargetError, RecordNotFoundError

router = APIRouter()


class PositionRequest(BaseModel):
    probability: Optional[int] = None
    impact: Optional[int] = None
    backlog: bool = False


class ReorderRequest(BaseModel):
    from_index: int
    to_index: int


class FilterRequest(BaseModel):
    search: Optional[str] = None
    status: Optional[str] = None
    level: Optional[str] = None
    category: Optional[str] = None


def get_dashboard(request: Request) -> RiskDashboard:
    return request.app.state.dashboard


@router.get("/risks")
async def get_risks(refresh: bool = False, dashboard: RiskDashboard = Depends(get_dashboard)):
    """Return the current working set, reloading it first when ``refresh`` is set."""
    if refresh:
        await dashboard.reload()
    return {"risks": [r.to_dict() for r in dashboard.working_set], "error": dashboard.error}


@router.get("/risks/view")
async def get_view(dashboard: RiskDashboard = Depends(get_dashboard)):
    """Return grid cells, backlog, analytics, selection and banner state."""
    return dashboard.view().to_dict()


@router.get("/risks/register")
async def get_register(limit: int = Query(REGISTER_LIMIT, ge=1), dashboard: RiskDashboard = Depends(get_dashboard)):
    """Return the first risks of the working set as register rows."""
    return register_summary(dashboard.working_set, limit).to_dict()


@router.get("/risks/export.csv")
async def export_risks(dashboard: RiskDashboard = Depends(get_dashboard)):
    """Download the filtered working set as CSV."""
    return Response(
        content=dashboard.export_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=risks.csv"},
    )


@router.post("/risks/{risk_id}/position")
async def move_risk(risk_id: str, body: PositionRequest, dashboard: RiskDashboard = Depends(get_dashboard)):
    """Move a risk onto a grid cell or into the backlog."""
    try:
        dashboard.relocation.pick_up(risk_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)
    try:
        if body.backlog:
            outcome = await dashboard.relocation.drop_on_backlog()
        elif body.probability is None or body.impact is None:
            dashboard.relocation.cancel()
            raise HTTPException(status_code=422, detail="probability and impact are required for a grid move")
        else:
            outcome = await dashboard.relocation.drop_on_cell(body.probability, body.impact)
    except InvalidDropTargetError as exc:
        dashboard.relocation.cancel()
        raise HTTPException(status_code=422, detail=exc.message)
    risk = dashboard.working_set.get(risk_id)
    return {
        "status": outcome.status if outcome else "unchanged",
        "error": outcome.error if outcome else dashboard.error,
        "risk": risk.to_dict() if risk else None,
    }


@router.post("/backlog/reorder")
async def reorder_backlog(body: ReorderRequest, dashboard: RiskDashboard = Depends(get_dashboard)):
    """Move a backlog entry and persist the renumbered order."""
    try:
        outcome = await dashboard.reorderer.move(body.from_index, body.to_index)
    except IndexError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {
        "status": outcome.status,
        "via": outcome.via,
        "error": outcome.error,
        "backlog": [r.id for r in dashboard.backlog()],
    }


@router.put("/filters")
async def set_filters(body: FilterRequest, dashboard: RiskDashboard = Depends(get_dashboard)):
    """Replace every filter field and reload the working set."""
    for name, value in body.model_dump().items():
        dashboard.filters.set_field(name, value)
    await dashboard.filters.apply()
    return {"filters": dashboard.filters.state.to_dict(), "count": len(dashboard.working_set)}


@router.delete("/filters")
async def clear_filters(dashboard: RiskDashboard = Depends(get_dashboard)):
    await dashboard.filters.clear()
    return {"filters": dashboard.filters.state.to_dict(), "count": len(dashboard.working_set)}


@router.get("/filters/presets")
async def list_presets(dashboard: RiskDashboard = Depends(get_dashboard)):
    return {"presets": [{"name": p.name, "payload": p.payload.to_dict()} for p in dashboard.filters.presets()]}


@router.post("/filters/presets/{name}")
async def save_preset(name: str, dashboard: RiskDashboard = Depends(get_dashboard)):
    try:
        preset = dashboard.filters.save(name)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"name": preset.name, "payload": preset.payload.to_dict()}


@router.post("/filters/presets/{name}/load")
async def load_preset(name: str, dashboard: RiskDashboard = Depends(get_dashboard)):
    loaded = await dashboard.load_preset(name)
    return {"loaded": loaded, "error": None if loaded else dashboard.error, "filters": dashboard.filters.state.to_dict()}


@router.put("/selection/{risk_id}")
async def select_risk(risk_id: str, dashboard: RiskDashboard = Depends(get_dashboard)):
    dashboard.selection.select(risk_id)
    return {"selected": dashboard.selection.detail()}


@router.delete("/selection")
async def clear_selection(dashboard: RiskDashboard = Depends(get_dashboard)):
    dashboard.selection.cancel()
    return {"selected": None}


def create_api(dashboard: RiskDashboard) -> FastAPI:
    app = FastAPI(title="GRC Risk Dashboard")
    app.state.dashboard = dashboard
    app.include_router(router)
    return app
