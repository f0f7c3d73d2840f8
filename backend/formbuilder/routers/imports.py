import logging
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from formbuilder.config import settings
from formbuilder.database import Backend, get_backend
from formbuilder.imports import ImportFailed, admit_imported_fields, collect_import, stream_import
from formbuilder.ordering import next_position
from formbuilder.routers.deps import field_row, get_form_or_404, load_fields, unwrap
from formbuilder.schemas import FieldDefinition, ImportedFieldsIn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forms", tags=["imports"])


async def _append(backend: Backend, form_id: str, fields: List[FieldDefinition]):
    if not fields:
        return []
    rows = [field_row(f.model_copy(update={"form_id": form_id})) for f in fields]
    return unwrap(await backend.table("form_fields").insert(rows).execute())


@router.post("/{form_id}/import", status_code=201)
async def import_fields(form_id: str, body: ImportedFieldsIn, backend: Backend = Depends(get_backend)):
    """Append fields from an already extracted import result."""
    await get_form_or_404(backend, form_id)
    existing = await load_fields(backend, form_id)
    fields = admit_imported_fields(
        body.fields,
        start_position=next_position(existing),
        taken_ids=[f.id for f in existing],
    )
    logger.info(f"Admitted {len(fields)} of {len(body.fields)} imported fields into form {form_id}")
    return await _append(backend, form_id, fields)


@router.post("/{form_id}/import-word", status_code=201)
async def import_document(form_id: str, file: UploadFile = File(...), backend: Backend = Depends(get_backend)):
    """Send a document to the import service and append the fields it extracts."""
    if not settings.IMPORT_SERVICE_URL:
        raise HTTPException(status_code=503, detail="Document import is not configured")

    await get_form_or_404(backend, form_id)
    existing = await load_fields(backend, form_id)
    content = await file.read()

    try:
        events = await stream_import(settings.IMPORT_SERVICE_URL, file.filename or "document", content, file.content_type)
        fields = collect_import(
            events,
            start_position=next_position(existing),
            taken_ids=[f.id for f in existing],
        )
    except ImportFailed as e:
        logger.error(f"Import into form {form_id} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return await _append(backend, form_id, fields)
