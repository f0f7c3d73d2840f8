"""
Admission of fields extracted from an uploaded document by the external
import service.

The service answers with a server-sent-event stream (``status``,
``success``, ``error``, ``ping``). The ``success`` payload comes from a
language model and is treated as untrusted: every record is re-normalized
before it becomes a field definition.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import httpx

from formbuilder.schemas import CHOICE_TYPES, FieldDefinition, FieldType, normalize_options, parse_field_type

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = [
    {"label": "Option 1", "value": "option_1"},
    {"label": "Option 2", "value": "option_2"},
]


class ImportFailed(Exception):
    """The import service reported an error or ended without a result."""
    pass


@dataclass
class ImportEvent:
    event: str
    data: Any


def _decode(data: str) -> Any:
    try:
        return json.loads(data)
    except ValueError:
        return data


def parse_event_stream(lines: Iterable[str]) -> List[ImportEvent]:
    """Split ``event:``/``data:`` lines into events; blank lines end an event."""
    events: List[ImportEvent] = []
    event_name = "message"
    data_lines: List[str] = []

    def flush():
        nonlocal event_name, data_lines
        if data_lines:
            events.append(ImportEvent(event_name, _decode("\n".join(data_lines))))
        event_name = "message"
        data_lines = []

    for raw in lines:
        line = raw.rstrip("\r\n")
        if line == "":
            flush()
        elif line.startswith(":"):
            continue
        elif line.startswith("event:"):
            event_name = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].lstrip(" "))
    flush()
    return events


def _label(record: Dict[str, Any], position: int) -> str:
    label = record.get("label") or record.get("question") or record.get("name")
    if isinstance(label, str) and label.strip():
        return label.strip()
    return f"Question {position + 1}"


def admit_imported_fields(raw_fields: Any, *, start_position: int = 0, taken_ids: Iterable[str] = ()) -> List[FieldDefinition]:
    """
    Turn untrusted extracted records into field definitions.

    Unknown types become ``text``; choice fields without options get the
    default pair; ids are kept only when unique; positions continue from
    ``start_position``; conditional logic survives only when it points at
    an admitted field placed above.
    """
    if isinstance(raw_fields, dict):
        raw_fields = raw_fields.get("fields", [])
    if not isinstance(raw_fields, list):
        logger.warning(f"Import payload has no field list ({type(raw_fields).__name__}); nothing admitted")
        return []

    used = set(taken_ids)
    id_map: Dict[str, str] = {}
    admitted: List[Dict[str, Any]] = []

    for record in raw_fields:
        if not isinstance(record, dict):
            logger.warning(f"Skipping imported record that is not an object: {record!r}")
            continue
        position = start_position + len(admitted)

        field_type = parse_field_type(record.get("type"))
        if field_type is None:
            logger.warning(f"Imported field type {record.get('type')!r} is not supported; using text")
            field_type = FieldType.TEXT

        options = normalize_options(record.get("options")) if field_type in CHOICE_TYPES else []
        if field_type in CHOICE_TYPES and not options:
            options = [dict(o) for o in DEFAULT_OPTIONS]

        original_id = record.get("id")
        field_id = str(original_id) if original_id not in (None, "") else ""
        if not field_id or field_id in used:
            field_id = uuid.uuid4().hex
        used.add(field_id)
        if original_id not in (None, ""):
            id_map[str(original_id)] = field_id

        rules = record.get("validation_rules")
        admitted.append({
            "id": field_id,
            "type": field_type,
            "label": _label(record, position),
            "placeholder": record.get("placeholder") if isinstance(record.get("placeholder"), str) else None,
            "help_text": record.get("help_text") if isinstance(record.get("help_text"), str) else None,
            "required": record.get("required") is True,
            "options": options,
            "validation_rules": rules if isinstance(rules, dict) else {},
            "position": position,
            "_logic": record.get("conditional_logic"),
        })

    positions = {item["id"]: item["position"] for item in admitted}
    fields: List[FieldDefinition] = []
    for item in admitted:
        logic = item.pop("_logic")
        item["conditional_logic"] = _admit_logic(logic, item, id_map, positions)
        try:
            fields.append(FieldDefinition(**item))
        except ValueError as e:
            # pydantic.ValidationError is a ValueError
            logger.warning(f"Dropping imported field {item['id']}: {e}")
    return fields


def _admit_logic(logic: Any, item: Dict[str, Any], id_map: Dict[str, str], positions: Dict[str, int]) -> Optional[Dict[str, Any]]:
    if not isinstance(logic, dict):
        return None
    depends_on = logic.get("dependsOn") or logic.get("depends_on")
    if not depends_on or depends_on == "none":
        return None
    target = id_map.get(str(depends_on))
    if target is None or positions.get(target, item["position"]) >= item["position"]:
        logger.warning(f"Dropping conditional logic of imported field {item['id']}: {depends_on!r} is not a field above it")
        return None
    return {
        "dependsOn": target,
        "condition": logic.get("condition") or "equals",
        "value": logic.get("value"),
        "action": logic.get("action") or "show",
    }


def collect_import(events: Iterable[ImportEvent], **admit_kwargs) -> List[FieldDefinition]:
    for event in events:
        if event.event == "ping":
            continue
        if event.event == "status":
            message = event.data.get("message") if isinstance(event.data, dict) else event.data
            logger.info(f"Import status: {message}")
        elif event.event == "error":
            message = event.data.get("message") if isinstance(event.data, dict) else event.data
            raise ImportFailed(str(message or "Import failed"))
        elif event.event == "success":
            return admit_imported_fields(event.data, **admit_kwargs)
        else:
            logger.debug(f"Ignoring import event {event.event!r}")
    raise ImportFailed("Import stream ended without a result")


async def stream_import(url: str, filename: str, content: bytes, content_type: Optional[str] = None) -> List[ImportEvent]:
    """Post a document to the import service and read its event stream to the end."""
    files = {"file": (filename, content, content_type or "application/octet-stream")}
    lines: List[str] = []
    # no timeout: the service keeps the stream open until extraction is done
    try:
        async with httpx.AsyncClient(timeout=None) as client:
            async with client.stream("POST", url, files=files, headers={"Accept": "text/event-stream"}) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise ImportFailed(f"Import service returned {response.status_code}: {body[:200]!r}")
                async for line in response.aiter_lines():
                    lines.append(line)
    except httpx.HTTPError as e:
        raise ImportFailed(f"Import service unavailable: {e}") from e
    return parse_event_stream(lines)
