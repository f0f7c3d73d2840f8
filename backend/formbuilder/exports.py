from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Any, Dict, Iterable, Sequence

from formbuilder.schemas import FieldDefinition

SUBMITTED_AT = "Submitted at"


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (list, tuple)):
        return ", ".join(_cell(item) for item in value)
    if isinstance(value, dict):
        return str(value.get("url") or value.get("name") or "")
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _option_label(field: FieldDefinition, value: Any) -> Any:
    labels = {option.value: option.label for option in field.options}
    if not labels:
        return value
    if isinstance(value, (list, tuple)):
        return [labels.get(str(item), item) for item in value]
    return labels.get(str(value), value)


def responses_to_rows(fields: Sequence[FieldDefinition], responses: Iterable[Dict[str, Any]]):
    columns = sorted((f for f in fields if f.active), key=lambda f: f.position)
    yield [SUBMITTED_AT] + [f.label or f.id for f in columns]
    for response in responses:
        data = response.get("data") or {}
        row = [_cell(response.get("completed_at") or response.get("created_at"))]
        for f in columns:
            row.append(_cell(_option_label(f, data.get(f.id))))
        yield row


def responses_to_csv(fields: Sequence[FieldDefinition], responses: Iterable[Dict[str, Any]]) -> str:
    """
    Comma separated, one line per response. Cells holding commas, quotes or
    line breaks are quoted and inner quotes doubled.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\r\n")
    for row in responses_to_rows(fields, responses):
        writer.writerow(row)
    return buffer.getvalue()
