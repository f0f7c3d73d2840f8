import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from formbuilder.database import Backend, get_backend
from formbuilder.ordering import next_position, position_updates, reorder
from formbuilder.routers.deps import get_form_or_404, load_fields, unwrap
from formbuilder.schemas import DashboardIn, DashboardUpdate, ReorderIn, WidgetConfig, WidgetIn, WidgetUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboards", tags=["dashboards"])

TABLE_ROW_LIMIT = 100


async def _dashboard_or_404(backend: Backend, dashboard_id: str) -> Dict[str, Any]:
    rows = unwrap(await backend.table("dashboards").select("*").eq("id", dashboard_id).execute())
    if not rows:
        raise HTTPException(status_code=404, detail="Dashboard not found")
    return rows[0]


async def _widgets(backend: Backend, dashboard_id: str) -> List[Dict[str, Any]]:
    return unwrap(
        await backend.table("dashboard_widgets").select("*").eq("dashboard_id", dashboard_id).order("position").execute()
    )


async def _widget_or_404(backend: Backend, dashboard_id: str, widget_id: str) -> Dict[str, Any]:
    rows = unwrap(
        await backend.table("dashboard_widgets").select("*").eq("id", widget_id).eq("dashboard_id", dashboard_id).execute()
    )
    if not rows:
        raise HTTPException(status_code=404, detail="Widget not found")
    return rows[0]


# ---------- dashboards ----------


@router.get("")
async def list_dashboards(backend: Backend = Depends(get_backend)):
    return unwrap(await backend.table("dashboards").select("*").order("created_at", ascending=False).execute())


@router.post("", status_code=201)
async def create_dashboard(dashboard: DashboardIn, backend: Backend = Depends(get_backend)):
    await get_form_or_404(backend, dashboard.form_id)
    rows = unwrap(await backend.table("dashboards").insert(dashboard.model_dump()).execute())
    return rows[0]


@router.get("/{dashboard_id}")
async def get_dashboard(dashboard_id: str, backend: Backend = Depends(get_backend)):
    dashboard = await _dashboard_or_404(backend, dashboard_id)
    dashboard["widgets"] = await _widgets(backend, dashboard_id)
    return dashboard


@router.patch("/{dashboard_id}")
async def update_dashboard(dashboard_id: str, changes: DashboardUpdate, backend: Backend = Depends(get_backend)):
    await _dashboard_or_404(backend, dashboard_id)
    update = changes.model_dump(exclude_unset=True)
    if update.get("form_id"):
        await get_form_or_404(backend, update["form_id"])
    if not update:
        return await _dashboard_or_404(backend, dashboard_id)
    rows = unwrap(await backend.table("dashboards").update(update).eq("id", dashboard_id).execute())
    return rows[0]


@router.delete("/{dashboard_id}")
async def delete_dashboard(dashboard_id: str, backend: Backend = Depends(get_backend)):
    await _dashboard_or_404(backend, dashboard_id)
    unwrap(await backend.table("dashboard_widgets").delete().eq("dashboard_id", dashboard_id).execute())
    unwrap(await backend.table("dashboards").delete().eq("id", dashboard_id).execute())
    return {"status": "ok", "dashboardId": dashboard_id}


# ---------- widgets ----------


@router.get("/{dashboard_id}/widgets")
async def list_widgets(dashboard_id: str, backend: Backend = Depends(get_backend)):
    await _dashboard_or_404(backend, dashboard_id)
    return await _widgets(backend, dashboard_id)


@router.post("/{dashboard_id}/widgets", status_code=201)
async def add_widget(dashboard_id: str, widget: WidgetIn, backend: Backend = Depends(get_backend)):
    await _dashboard_or_404(backend, dashboard_id)
    existing = await _widgets(backend, dashboard_id)
    record = widget.model_dump(by_alias=True)
    record["dashboard_id"] = dashboard_id
    record["position"] = next_position(existing)
    rows = unwrap(await backend.table("dashboard_widgets").insert(record).execute())
    return rows[0]


@router.post("/{dashboard_id}/widgets/reorder")
async def reorder_widgets(dashboard_id: str, body: ReorderIn, backend: Backend = Depends(get_backend)):
    await _dashboard_or_404(backend, dashboard_id)
    widgets = await _widgets(backend, dashboard_id)
    moved = reorder(widgets, body.source_id, body.dest_id)
    if moved is not widgets:
        unwrap(await backend.table("dashboard_widgets").upsert(position_updates(moved)).execute())
    return moved


@router.patch("/{dashboard_id}/widgets/{widget_id}")
async def update_widget(dashboard_id: str, widget_id: str, changes: WidgetUpdate, backend: Backend = Depends(get_backend)):
    await _widget_or_404(backend, dashboard_id, widget_id)
    update = changes.model_dump(by_alias=True, exclude_unset=True)
    if "config" in update and changes.config is not None:
        # a config is always stored whole
        update["config"] = changes.config.model_dump(by_alias=True)
    if not update:
        return await _widget_or_404(backend, dashboard_id, widget_id)
    rows = unwrap(await backend.table("dashboard_widgets").update(update).eq("id", widget_id).execute())
    return rows[0]


@router.delete("/{dashboard_id}/widgets/{widget_id}")
async def delete_widget(dashboard_id: str, widget_id: str, backend: Backend = Depends(get_backend)):
    await _widget_or_404(backend, dashboard_id, widget_id)
    unwrap(await backend.table("dashboard_widgets").delete().eq("id", widget_id).execute())
    remaining = await _widgets(backend, dashboard_id)
    if remaining:
        unwrap(await backend.table("dashboard_widgets").upsert(position_updates(remaining)).execute())
    return {"status": "ok", "widgetId": widget_id}


@router.get("/{dashboard_id}/widgets/{widget_id}/data")
async def widget_data(dashboard_id: str, widget_id: str, backend: Backend = Depends(get_backend)):
    dashboard = await _dashboard_or_404(backend, dashboard_id)
    widget = await _widget_or_404(backend, dashboard_id, widget_id)
    config = WidgetConfig.model_validate(widget.get("config") or {})
    form_id = dashboard["form_id"]

    if widget["type"] == "table":
        return {"type": "table", "rows": await _table_rows(backend, form_id, config)}
    return {"type": widget["type"], "data": await _chart_points(backend, form_id, config)}


async def _chart_points(backend: Backend, form_id: str, config: WidgetConfig) -> List[Dict[str, Any]]:
    """Chart series as [{name, value}], grouped by date or by the values of one field."""
    if config.use_created_at_for_x:
        if config.y_field and not config.use_created_at_for_y:
            result = await backend.rpc("aggregate_field_by_date", {
                "p_form_id": form_id,
                "p_field_id": config.y_field,
                "p_date_grouping": config.date_grouping,
                "p_aggregation": config.aggregation or "sum",
            })
        else:
            result = await backend.rpc("aggregate_responses_by_date", {
                "p_form_id": form_id,
                "p_date_grouping": config.date_grouping,
            })
        return [{"name": row["date_group"], "value": row["value"]} for row in unwrap(result)]

    if not config.group_by:
        return []

    result = await backend.rpc("aggregate_responses_by_field", {
        "p_form_id": form_id,
        "p_field_id": config.group_by,
        "p_aggregation": config.aggregation or "count",
    })
    fields = {f.id: f for f in await load_fields(backend, form_id)}
    group_field = fields.get(config.group_by)
    labels = {o.value: o.label for o in group_field.options} if group_field else {}
    return [{"name": labels.get(row["key"], row["key"]), "value": row["value"]} for row in unwrap(result)]


async def _table_rows(backend: Backend, form_id: str, config: WidgetConfig) -> List[Dict[str, Any]]:
    """Latest responses with their values, restricted to the configured columns."""
    responses = unwrap(
        await backend.table("form_responses")
        .select("id, completed_at")
        .eq("form_id", form_id)
        .order("completed_at", ascending=False)
        .limit(TABLE_ROW_LIMIT)
        .execute()
    )
    if not responses:
        return []

    values = unwrap(
        await backend.table("form_response_values")
        .select("response_id, field_id, value")
        .in_("response_id", [r["id"] for r in responses])
        .execute()
    )
    by_response: Dict[str, Dict[str, Any]] = {r["id"]: {} for r in responses}
    for row in values:
        if config.columns and row["field_id"] not in config.columns:
            continue
        cells = by_response[row["response_id"]]
        if row["field_id"] in cells:
            # several rows for one field: a multi-select answer
            previous = cells[row["field_id"]]
            cells[row["field_id"]] = (previous if isinstance(previous, list) else [previous]) + [row["value"]]
        else:
            cells[row["field_id"]] = row["value"]

    return [
        {"response_id": r["id"], "completed_at": r.get("completed_at"), "values": by_response[r["id"]]}
        for r in responses
    ]
