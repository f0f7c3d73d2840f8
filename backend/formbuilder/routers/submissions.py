import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from formbuilder.database import Backend, QueryResult, get_backend
from formbuilder.exports import responses_to_csv
from formbuilder.response_values import build_value_rows
from formbuilder.routers.deps import field_row, get_form_or_404, load_fields, unwrap
from formbuilder.runtime import FormRuntime
from formbuilder.schemas import SubmissionIn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forms", tags=["submissions"])


def _parse_date_param(raw: Optional[str], name: str, end_of_day: bool = False) -> Optional[datetime]:
    if not raw:
        return None
    try:
        # Handle date-only format (YYYY-MM-DD) or datetime format (YYYY-MM-DDTHH:mm:ss)
        if "T" in raw:
            return datetime.fromisoformat(raw.replace("Z", "+00:00")).replace(tzinfo=None)
        day = datetime.strptime(raw, "%Y-%m-%d")
        if end_of_day:
            day = day.replace(hour=23, minute=59, second=59, microsecond=999999)
        return day
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} format. Use YYYY-MM-DD or ISO format (YYYY-MM-DDTHH:mm:ss)")


def _naive_utc(value: Any) -> Optional[datetime]:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None)


async def _load_responses(backend: Backend, form_id: str, start: Optional[datetime], end: Optional[datetime]):
    rows = unwrap(
        await backend.table("form_responses").select("*").eq("form_id", form_id).order("completed_at", ascending=False).execute()
    )
    responses = []
    for row in rows:
        completed = _naive_utc(row.get("completed_at"))
        if completed is not None:
            # inclusive on both ends
            if start and completed < start:
                continue
            if end and completed > end:
                continue
        responses.append(row)
    return responses


@router.get("/{form_id}/public")
async def get_public_form(form_id: str, backend: Backend = Depends(get_backend)):
    """The form as respondents see it: only active forms, only active fields, in order."""
    form = await get_form_or_404(backend, form_id)
    if not form.get("active", True):
        raise HTTPException(status_code=404, detail="Form not found")
    fields = await load_fields(backend, form_id, active_only=True)
    return {
        "id": form["id"],
        "title": form.get("title"),
        "description": form.get("description"),
        "redirect_url": form.get("redirect_url"),
        "fields": [field_row(f) for f in fields],
    }


@router.post("/{form_id}/responses", status_code=201)
async def submit_response(form_id: str, submission: SubmissionIn, request: Request, backend: Backend = Depends(get_backend)):
    form = await get_form_or_404(backend, form_id)
    if not form.get("active", True):
        raise HTTPException(status_code=400, detail="This form is not accepting responses")

    fields = await load_fields(backend, form_id, active_only=True)
    runtime = FormRuntime(fields, form_id=form_id)
    runtime.load(submission.values)

    async def persist(payload: Dict[str, Any]) -> QueryResult:
        now = datetime.now(timezone.utc)
        created = await backend.table("form_responses").insert({
            "form_id": form_id,
            "data": payload,
            "metadata": {
                "user_agent": request.headers.get("user-agent", ""),
                "timestamp": now.isoformat(),
            },
            "completed_at": now,
        }).execute()
        if created.error:
            return created
        response = created.data[0]

        rows = build_value_rows(response["id"], form_id, fields, payload, created_at=now)
        if rows:
            stored = await backend.table("form_response_values").insert(rows).execute()
            if stored.error:
                # no partial responses
                await backend.table("form_responses").delete().eq("id", response["id"]).execute()
                return stored
        return QueryResult(data=response)

    outcome = await runtime.submit(persist)
    if not outcome.ok:
        if outcome.errors:
            return JSONResponse(status_code=422, content={"errors": outcome.errors})
        raise HTTPException(status_code=400, detail=outcome.notification or "Submission failed")

    logger.info(f"Stored response {outcome.result.data['id']} for form {form_id}")
    return {"status": "ok", "responseId": outcome.result.data["id"], "redirectUrl": form.get("redirect_url")}


@router.get("/{form_id}/responses")
async def list_responses(
    form_id: str,
    startDate: str = Query(None, description="Start date in ISO format (YYYY-MM-DDTHH:mm:ss)"),
    endDate: str = Query(None, description="End date in ISO format (YYYY-MM-DDTHH:mm:ss)"),
    backend: Backend = Depends(get_backend),
):
    """Return responses for a form (most recent first). Optionally filter by completion date."""
    await get_form_or_404(backend, form_id)
    start = _parse_date_param(startDate, "startDate")
    end = _parse_date_param(endDate, "endDate", end_of_day=True)
    return await _load_responses(backend, form_id, start, end)


@router.get("/{form_id}/responses/export.csv")
async def export_responses(
    form_id: str,
    startDate: str = Query(None),
    endDate: str = Query(None),
    backend: Backend = Depends(get_backend),
):
    form = await get_form_or_404(backend, form_id)
    fields = await load_fields(backend, form_id)
    responses = await _load_responses(
        backend,
        form_id,
        _parse_date_param(startDate, "startDate"),
        _parse_date_param(endDate, "endDate", end_of_day=True),
    )
    filename = f"{(form.get('title') or 'responses').strip().replace(' ', '_')}.csv"
    return Response(
        content=responses_to_csv(fields, responses),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/{form_id}/responses/{response_id}")
async def delete_response(form_id: str, response_id: str, backend: Backend = Depends(get_backend)):
    """Delete a single response together with its value rows."""
    rows = unwrap(await backend.table("form_responses").select("id").eq("id", response_id).eq("form_id", form_id).execute())
    if not rows:
        raise HTTPException(status_code=404, detail="Response not found")

    unwrap(await backend.table("form_response_values").delete().eq("response_id", response_id).execute())
    unwrap(await backend.table("form_responses").delete().eq("id", response_id).execute())
    return {"status": "ok", "deletedId": response_id}
