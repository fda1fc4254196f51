# app.py: risk matrix + prioritized backlog dashboard
import asyncio
import uuid

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from grc_risk_dashboard.config import AppConfig
from grc_risk_dashboard.helpers import BAND_COLORS
from grc_risk_dashboard.matrix import build_matrix
from grc_risk_dashboard.services.dashboard import RiskDashboard
from grc_risk_dashboard.models import FilterState
from grc_risk_dashboard.services.filters import JsonFileStore, PreferenceStore, choice_options, client_prefs_path
from grc_risk_dashboard.services.relocation import RelocationState
from grc_risk_dashboard.services.risk_service import create_data_service
from grc_risk_dashboard.services.selection import tooltip
from grc_risk_dashboard.services.stats import LEVEL_AXIS, REGISTER_COLUMNS, STATUS_ORDER
from grc_risk_dashboard.utils.logging_config import configure_logging, ensure_session_id

config = AppConfig.from_env()
configure_logging(config.log_level)

st.set_page_config(page_title="GRC Risk Dashboard", layout="wide")
st.title("🛡️ GRC Risk Dashboard")
st.caption("Move risks on the matrix to update likelihood and impact. Reorder the backlog to prioritize work.")


# -----------------------
# Session helpers
# -----------------------
def run(coro):
    return asyncio.run(coro)


def get_client_id() -> str:
    """Browser-scoped id kept in the URL so preferences survive a page reload."""
    client_id = st.query_params.get("client")
    if not client_id or not client_id.isalnum():
        client_id = uuid.uuid4().hex
        st.query_params["client"] = client_id
    return client_id


def get_dashboard() -> RiskDashboard:
    st.session_state["session_id"] = ensure_session_id(st.session_state.get("session_id"))
    if "dashboard" not in st.session_state:
        service_key = st.secrets.get("RISK_SERVICE_KEY", None) if config.backend == "rest" else None
        if service_key:
            config.service_key = service_key
        prefs = PreferenceStore(JsonFileStore(client_prefs_path(config.prefs_path, get_client_id())))
        dashboard = RiskDashboard(create_data_service(config), prefs, config.grid_size)
        run(dashboard.reload())
        st.session_state["dashboard"] = dashboard
    return st.session_state["dashboard"]


dashboard = get_dashboard()
n = dashboard.grid_size

# -----------------------
# Filters + presets
# -----------------------
state = dashboard.filters.state
st.sidebar.header("Filters")
search = st.sidebar.text_input("Search title, description, category", value=state.search or "")
status_options, status_index = choice_options(STATUS_ORDER, state.status)
level_options, level_index = choice_options(LEVEL_AXIS, state.level)
status = st.sidebar.selectbox("Status", status_options, index=status_index)
level = st.sidebar.selectbox("Level", level_options, index=level_index)
category = st.sidebar.text_input("Category", value=state.category or "")

for field_name, value in (("search", search), ("status", status), ("level", level), ("category", category)):
    edited = FilterState.from_dict({**dashboard.filters.state.to_dict(), field_name: value})
    if edited != dashboard.filters.state:
        dashboard.filters.set_field(field_name, value)

col_apply, col_clear = st.sidebar.columns(2)
if col_apply.button("Apply"):
    run(dashboard.filters.apply())
    st.rerun()
if col_clear.button("Clear"):
    run(dashboard.filters.clear())
    st.rerun()

st.sidebar.markdown("---")
preset_name = st.sidebar.text_input("Save current filters as")
if st.sidebar.button("💾 Save filter") and preset_name:
    dashboard.filters.save(preset_name)
    st.sidebar.success(f"Saved '{preset_name}'")
presets = [p.name for p in dashboard.filters.presets()]
if presets:
    chosen = st.sidebar.selectbox("Saved filters", presets)
    if st.sidebar.button("Load filter"):
        run(dashboard.load_preset(chosen))
        st.rerun()

if st.sidebar.button("🔄 Refresh"):
    run(dashboard.reload())
    st.rerun()

# -----------------------
# Banner
# -----------------------
view = dashboard.view()
if view.error:
    st.error(view.error)
    if st.button("Dismiss"):
        dashboard.clear_error()
        st.rerun()
if view.needs_reload:
    st.warning("Backlog order may not match the saved order. Refresh to resynchronize.")

# -----------------------
# KPI cards
# -----------------------
kpis = view.stats.kpis
cols = st.columns(4)
for col, (label, key) in zip(
    cols, [("Total Risks", "total"), ("Open", "open"), ("High/Critical", "high_critical"), ("Low/Medium", "low_medium")]
):
    with col:
        st.metric(label=label, value=kpis.get(key, 0))
st.markdown("---")

# -----------------------
# Matrix + backlog
# -----------------------
left, right = st.columns([2, 1])

with left:
    st.subheader(f"📊 {n}x{n} Risk Matrix")
    matrix = build_matrix(dashboard.working_set, n)
    labels = list(range(1, n + 1))
    fig = go.Figure(
        data=go.Heatmap(
            z=pd.DataFrame(matrix, index=labels, columns=labels),
            x=labels,
            y=labels,
            colorscale=[[0.0, "#2ECC71"], [0.5, "#F4D03F"], [1.0, "#E74C3C"]],
            hovertemplate="<b>Impact:</b> %{x}<br><b>Probability:</b> %{y}<br><b>Risks:</b> %{z}<extra></extra>",
            showscale=True,
            zmin=0,
            zmax=max(int(matrix.max()), 1),
            colorbar_title="Risks",
        )
    )
    fig.update_layout(
        xaxis_title="Impact",
        yaxis_title="Probability",
        paper_bgcolor="#0E1117",
        plot_bgcolor="#0E1117",
        margin=dict(l=60, r=60, t=20, b=60),
        height=420,
    )
    st.plotly_chart(fig, use_container_width=True)

    for p in reversed(labels):
        row = st.columns(n)
        for col, cell in zip(row, [c for c in view.cells if c.probability == p]):
            with col:
                st.markdown(
                    f"<div style='border-left:4px solid {BAND_COLORS[cell.band]};padding-left:6px'>"
                    f"<small>P{cell.probability}×I{cell.impact} = {cell.score} · {cell.band}</small></div>",
                    unsafe_allow_html=True,
                )
                for risk in cell.preview:
                    st.caption(risk.title, help=tooltip(risk, n))
                if cell.overflow:
                    st.caption(f"+{cell.overflow} more")

with right:
    st.subheader("📋 Prioritized Backlog")
    if not view.backlog:
        st.info("No backlog items")
    for idx, risk in enumerate(view.backlog):
        c1, c2, c3, c4 = st.columns([5, 1, 1, 1])
        c1.markdown(f"**{risk.title}**  \n<small>{risk.category or '-'}</small>", unsafe_allow_html=True)
        if c2.button("↑", key=f"up_{risk.id}", disabled=idx == 0):
            run(dashboard.reorderer.move_up(risk.id))
            st.rerun()
        if c3.button("↓", key=f"down_{risk.id}", disabled=idx == len(view.backlog) - 1):
            run(dashboard.reorderer.move_down(risk.id))
            st.rerun()
        if c4.button("ⓘ", key=f"sel_{risk.id}", help=tooltip(risk, n)):
            dashboard.selection.select(risk.id)
            st.rerun()

# -----------------------
# Relocation
# -----------------------
st.markdown("---")
st.subheader("🎯 Move a risk")
records = {r.id: r for r in dashboard.working_set}
if records:
    relocation = dashboard.relocation
    pick = st.selectbox("Risk", list(records), format_func=lambda rid: records[rid].title or rid)
    a, b, c = st.columns(3)
    if a.button("Pick up"):
        relocation.pick_up(pick, source="keyboard")
        st.rerun()
    if relocation.state == RelocationState.ARMED and relocation.armed is not None:
        st.info(f"Holding: {relocation.armed.title}")
        target_p = a.selectbox("Probability", labels, key="target_p")
        target_i = b.selectbox("Impact", labels, key="target_i")
        if a.button("Drop on cell"):
            run(relocation.drop_on_cell(target_p, target_i))
            st.rerun()
        if b.button("Send to backlog"):
            run(relocation.drop_on_backlog())
            st.rerun()
        if c.button("Cancel"):
            relocation.cancel()
            st.rerun()

# -----------------------
# Analytics
# -----------------------
st.markdown("---")
g1, g2, g3 = st.columns(3)
with g1:
    st.markdown("**Risk Level Distribution**")
    st.plotly_chart(
        go.Figure(go.Bar(x=list(view.stats.by_level), y=list(view.stats.by_level.values()))),
        use_container_width=True,
    )
with g2:
    st.markdown("**Status Distribution**")
    st.plotly_chart(
        go.Figure(go.Bar(x=list(view.stats.by_status), y=list(view.stats.by_status.values()))),
        use_container_width=True,
    )
with g3:
    st.markdown("**New Risks per Month**")
    trend = view.stats.monthly_trend
    st.plotly_chart(
        go.Figure(go.Scatter(x=[m for m, _ in trend], y=[v for _, v in trend], mode="lines+markers")),
        use_container_width=True,
    )

# -----------------------
# Risk register
# -----------------------
st.markdown("---")
head, export = st.columns([4, 1])
head.subheader("📑 Risk Register Summary")
export.download_button(
    "Export CSV",
    data=dashboard.export_csv(),
    file_name="risks.csv",
    mime="text/csv",
)
register = view.register
if register.rows:
    st.dataframe(pd.DataFrame(register.rows, columns=REGISTER_COLUMNS), use_container_width=True, hide_index=True)
    if register.overflow:
        st.caption(f"+{register.overflow} more")
else:
    st.info("No risks match the current filters")

# -----------------------
# Selection detail
# -----------------------
detail = dashboard.selection.detail()
if detail:
    st.markdown("---")
    st.subheader(f"🔎 {detail['title']}")
    st.json(detail)
    if st.button("Close"):
        dashboard.selection.cancel()
        st.rerun()
