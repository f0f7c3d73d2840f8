import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from formbuilder.database import Backend, get_backend
from formbuilder.imports import DEFAULT_OPTIONS
from formbuilder.ordering import next_position, position_updates, remove, renumber, reorder
from formbuilder.routers.deps import field_row, get_form_or_404, load_fields, unwrap
from formbuilder.schemas import (
    CHOICE_TYPES,
    FieldCreate,
    FieldDefinition,
    FieldsBulkIn,
    FieldType,
    FieldUpdate,
    ReorderIn,
)
from formbuilder.visibility import dependency_candidates, dependency_problems

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forms", tags=["fields"])


def _default_label(field_type: FieldType) -> str:
    return f"New {field_type.value.replace('-', ' ').capitalize()}"


def _reject_bad_dependency(fields: List[FieldDefinition], field: FieldDefinition) -> None:
    """A field may only depend on a field placed above it."""
    parent_id = field.dependency
    if parent_id is None:
        return
    allowed = {f.id for f in dependency_candidates(fields, field.id)}
    if parent_id not in allowed:
        raise HTTPException(
            status_code=400,
            detail=f"Field {field.id} can only depend on a field above it (got {parent_id!r})",
        )


def _field_or_404(fields: List[FieldDefinition], field_id: str) -> FieldDefinition:
    for f in fields:
        if f.id == field_id:
            return f
    raise HTTPException(status_code=404, detail="Field not found")


@router.get("/{form_id}/fields")
async def list_fields(form_id: str, backend: Backend = Depends(get_backend)):
    await get_form_or_404(backend, form_id)
    return [field_row(f) for f in await load_fields(backend, form_id)]


@router.post("/{form_id}/fields", status_code=201)
async def add_field(form_id: str, body: FieldCreate, backend: Backend = Depends(get_backend)):
    """Append a new field at the end of the form."""
    await get_form_or_404(backend, form_id)
    fields = await load_fields(backend, form_id)

    options = body.options
    if body.type in CHOICE_TYPES and not options:
        options = [dict(o) for o in DEFAULT_OPTIONS]

    field = FieldDefinition(
        id=uuid.uuid4().hex,
        form_id=form_id,
        type=body.type,
        label=body.label or _default_label(body.type),
        placeholder=body.placeholder,
        help_text=body.help_text,
        required=body.required,
        options=options or [],
        validation_rules=body.validation_rules or {},
        conditional_logic=body.conditional_logic,
        position=next_position(fields),
        default_value=body.default_value,
    )
    _reject_bad_dependency(fields + [field], field)

    rows = unwrap(await backend.table("form_fields").insert(field_row(field)).execute())
    return rows[0]


@router.put("/{form_id}/fields")
async def save_fields(form_id: str, body: FieldsBulkIn, backend: Backend = Depends(get_backend)):
    """
    Save the whole editor state at once. Positions follow the order of the
    posted list; rows are upserted by id and stored fields missing from the
    list are deleted.
    """
    await get_form_or_404(backend, form_id)

    try:
        fields = [
            FieldDefinition(**{**raw, "id": raw.get("id") or uuid.uuid4().hex, "form_id": form_id})
            for raw in body.fields
        ]
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    fields = renumber(fields)

    problems = dependency_problems(fields)
    if problems:
        raise HTTPException(status_code=400, detail={"message": "Invalid conditional logic", "problems": problems})

    kept = {f.id for f in fields}
    dropped = [f.id for f in await load_fields(backend, form_id) if f.id not in kept]
    if dropped:
        unwrap(await backend.table("form_fields").delete().eq("form_id", form_id).in_("id", dropped).execute())
        logger.info(f"Bulk save of form {form_id} removed fields {dropped}")

    unwrap(await backend.table("form_fields").upsert([field_row(f) for f in fields]).execute())
    return [field_row(f) for f in await load_fields(backend, form_id)]


@router.post("/{form_id}/fields/reorder")
async def reorder_fields(form_id: str, body: ReorderIn, backend: Backend = Depends(get_backend)):
    """Move one field to the slot of another and store the new dense positions."""
    await get_form_or_404(backend, form_id)
    fields = await load_fields(backend, form_id)
    moved = reorder(fields, body.source_id, body.dest_id)
    if moved is not fields:
        unwrap(await backend.table("form_fields").upsert(position_updates(moved)).execute())
        problems = dependency_problems(moved)
        if problems:
            logger.warning(f"Reorder of form {form_id} left fields depending on fields below them: {problems}")
    return [field_row(f) for f in moved]


@router.get("/{form_id}/fields/{field_id}/dependency-candidates")
async def list_dependency_candidates(form_id: str, field_id: str, backend: Backend = Depends(get_backend)):
    fields = await load_fields(backend, form_id)
    _field_or_404(fields, field_id)
    return [
        {"id": f.id, "label": f.label, "type": f.type, "options": [o.model_dump() for o in f.options]}
        for f in dependency_candidates(fields, field_id)
    ]


@router.patch("/{form_id}/fields/{field_id}")
async def update_field(form_id: str, field_id: str, body: FieldUpdate, backend: Backend = Depends(get_backend)):
    fields = await load_fields(backend, form_id)
    current = _field_or_404(fields, field_id)

    changes = body.model_dump(mode="json", by_alias=True, exclude_unset=True)
    try:
        updated = FieldDefinition(**{**field_row(current), **changes})
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    others = [updated if f.id == field_id else f for f in fields]
    _reject_bad_dependency(others, updated)

    row = field_row(updated)
    row.pop("id")
    rows = unwrap(await backend.table("form_fields").update(row).eq("id", field_id).execute())
    return rows[0]


@router.delete("/{form_id}/fields/{field_id}")
async def delete_field(form_id: str, field_id: str, backend: Backend = Depends(get_backend)):
    """Delete a field and close the gap in the positions of the rest."""
    fields = await load_fields(backend, form_id)
    _field_or_404(fields, field_id)

    unwrap(await backend.table("form_fields").delete().eq("id", field_id).execute())
    remaining = remove(fields, field_id)
    if remaining:
        unwrap(await backend.table("form_fields").upsert(position_updates(remaining)).execute())

    orphans = [f.id for f in remaining if f.dependency == field_id]
    if orphans:
        logger.warning(f"Fields {orphans} of form {form_id} depended on deleted field {field_id}")
    return {"status": "ok", "fieldId": field_id}
