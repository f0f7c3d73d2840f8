"""
One submitted response is stored twice: the whole value map on the
``form_responses`` row, and one ``form_response_values`` row per field value.
The second shape lets the dashboard aggregations group and filter by a single
field id, so every chart and table depends on it.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from formbuilder.schemas import BOOLEAN_TYPES, NUMERIC_TYPES, FieldDefinition
from formbuilder.visibility import is_empty, to_number


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_value_rows(
    response_id: str,
    form_id: str,
    fields: Sequence[FieldDefinition],
    values: Mapping[str, Any],
    created_at: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    by_id = {f.id: f for f in fields}
    rows: List[Dict[str, Any]] = []

    def add(field_id: str, value: str, numeric_value=None, boolean_value=None):
        rows.append({
            "response_id": response_id,
            "form_id": form_id,
            "field_id": field_id,
            "value": value,
            "numeric_value": numeric_value,
            "boolean_value": boolean_value,
            "created_at": created_at,
        })

    for field_id, value in values.items():
        if is_empty(value):
            continue
        f = by_id.get(field_id)
        if f is None:
            continue

        if isinstance(value, (list, tuple)):
            # one row per selected option
            for option in value:
                if not is_empty(option):
                    add(field_id, _text(option))
        elif f.type in NUMERIC_TYPES:
            add(field_id, _text(value), numeric_value=to_number(value))
        elif f.type in BOOLEAN_TYPES:
            add(field_id, _text(value), boolean_value=_as_bool(value))
        elif isinstance(value, dict):
            # uploaded file metadata and other structured values
            add(field_id, str(value.get("url") or value.get("name") or value))
        else:
            add(field_id, _text(value))
    return rows


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)
