from typing import Any, Dict, List

from fastapi import HTTPException

from formbuilder.database import Backend, QueryResult
from formbuilder.schemas import FieldDefinition


def unwrap(result: QueryResult) -> Any:
    """Return the rows of a query or turn its error into a 400."""
    if result.error:
        raise HTTPException(status_code=400, detail=result.error)
    return result.data


async def get_form_or_404(backend: Backend, form_id: str) -> Dict[str, Any]:
    rows = unwrap(await backend.table("forms").select("*").eq("id", form_id).execute())
    if not rows:
        raise HTTPException(status_code=404, detail="Form not found")
    return rows[0]


async def load_fields(backend: Backend, form_id: str, active_only: bool = False) -> List[FieldDefinition]:
    query = backend.table("form_fields").select("*").eq("form_id", form_id)
    if active_only:
        query = query.eq("active", True)
    rows = unwrap(await query.order("position").execute())
    return [FieldDefinition(**row) for row in rows]


def field_row(field: FieldDefinition) -> Dict[str, Any]:
    """Stored and returned shape of a field (camelCase ``dependsOn`` inside the logic)."""
    return field.model_dump(mode="json", by_alias=True)
