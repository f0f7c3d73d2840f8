import logging

from fastapi import APIRouter, Depends, HTTPException

from formbuilder.database import Backend, get_backend
from formbuilder.routers.deps import field_row, get_form_or_404, load_fields, unwrap
from formbuilder.runtime import FormRuntime
from formbuilder.schemas import FormIn, FormUpdate, PreviewIn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forms", tags=["forms"])


@router.get("")
async def list_forms(backend: Backend = Depends(get_backend)):
    """Get a list of all forms, newest first."""
    return unwrap(await backend.table("forms").select("*").order("created_at", ascending=False).execute())


@router.post("", status_code=201)
async def create_form(form: FormIn, backend: Backend = Depends(get_backend)):
    rows = unwrap(await backend.table("forms").insert(form.model_dump()).execute())
    logger.info(f"Created form {rows[0]['id']}")
    return rows[0]


@router.post("/preview")
async def preview_form(preview: PreviewIn):
    """
    Run posted fields and values through a throwaway runtime, the way the
    editor preview renders them. Nothing is stored.
    """
    runtime = FormRuntime(preview.fields)
    runtime.load(preview.values)
    errors = runtime.check()
    return {
        "values": runtime.values,
        "visibility": runtime.visibility,
        "states": runtime.states(),
        "errors": errors,
        "canSubmit": not errors,
    }


@router.get("/{form_id}")
async def get_form(form_id: str, backend: Backend = Depends(get_backend)):
    form = await get_form_or_404(backend, form_id)
    form["fields"] = [field_row(f) for f in await load_fields(backend, form_id)]
    return form


@router.patch("/{form_id}")
async def update_form(form_id: str, changes: FormUpdate, backend: Backend = Depends(get_backend)):
    update = changes.model_dump(exclude_unset=True)
    if not update:
        return await get_form_or_404(backend, form_id)
    rows = unwrap(await backend.table("forms").update(update).eq("id", form_id).execute())
    if not rows:
        raise HTTPException(status_code=404, detail="Form not found")
    return rows[0]


@router.delete("/{form_id}")
async def delete_form(form_id: str, backend: Backend = Depends(get_backend)):
    """Delete a form with its fields, responses and response values."""
    await get_form_or_404(backend, form_id)

    for table in ("form_response_values", "form_responses", "form_fields"):
        unwrap(await backend.table(table).delete().eq("form_id", form_id).execute())
    unwrap(await backend.table("forms").delete().eq("id", form_id).execute())

    logger.info(f"Deleted form {form_id}")
    return {"status": "ok", "formId": form_id}
