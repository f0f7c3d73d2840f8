import logging

import pytest

from formbuilder.imports import (
    ImportEvent,
    ImportFailed,
    admit_imported_fields,
    collect_import,
    parse_event_stream,
)
from formbuilder.schemas import FieldType


def test_parse_event_stream():
    lines = [
        ": keep-alive",
        "event: status",
        'data: {"message": "Reading document"}',
        "",
        "event: ping",
        "data: 1",
        "",
        "event: success",
        'data: {"fields": [{"label": "Name", "type": "text"}]}',
        "",
    ]
    events = parse_event_stream(lines)
    assert [e.event for e in events] == ["status", "ping", "success"]
    assert events[0].data == {"message": "Reading document"}
    assert events[2].data["fields"][0]["label"] == "Name"


def test_parse_event_stream_keeps_non_json_data_and_multiline():
    events = parse_event_stream(["event: error", "data: first line", "data: second line"])
    assert events == [ImportEvent("error", "first line\nsecond line")]


def test_admitted_fields_are_normalized(caplog):
    raw = {
        "fields": [
            {"id": "q1", "label": "Color", "type": "dropdown"},
            "not a field",
            {"id": "q2", "type": "radio"},
            {"id": "q2", "label": "Email", "type": "EMAIL", "required": True},
            {"label": "Pets", "type": "checkbox", "options": ["Cat", {"label": "Dog", "value": "dog"}]},
        ]
    }
    with caplog.at_level(logging.WARNING):
        fields = admit_imported_fields(raw, start_position=5)

    assert "dropdown" in caplog.text
    assert [f.position for f in fields] == [5, 6, 7, 8]
    color, question, email, pets = fields

    assert color.type == FieldType.TEXT
    assert question.label == "Question 7"
    assert [o.value for o in question.options] == ["option_1", "option_2"]
    assert email.type == FieldType.EMAIL and email.required
    assert email.id != "q2"
    assert len({f.id for f in fields}) == 4
    assert [(o.label, o.value) for o in pets.options] == [("Cat", "Cat"), ("Dog", "dog")]


def test_taken_ids_are_not_reused():
    fields = admit_imported_fields([{"id": "existing", "type": "text"}], taken_ids=["existing"])
    assert fields[0].id != "existing"


def test_conditional_logic_only_kept_for_fields_above():
    raw = [
        {"id": "a", "type": "radio", "options": ["yes", "no"]},
        {"id": "b", "type": "text", "conditional_logic": {"dependsOn": "a", "condition": "equals", "value": "yes"}},
        {"id": "c", "type": "text", "conditional_logic": {"dependsOn": "d", "value": "x"}},
        {"id": "d", "type": "text", "conditional_logic": {"dependsOn": "ghost"}},
    ]
    a, b, c, d = admit_imported_fields(raw)
    assert b.dependency == "a"
    assert b.conditional_logic.value == "yes"
    assert c.conditional_logic is None
    assert d.conditional_logic is None


def test_collect_import_returns_admitted_fields():
    events = [
        ImportEvent("status", {"message": "working"}),
        ImportEvent("ping", None),
        ImportEvent("success", [{"label": "Age", "type": "number"}]),
    ]
    fields = collect_import(events, start_position=2)
    assert fields[0].type == FieldType.NUMBER
    assert fields[0].position == 2


def test_collect_import_raises_on_error_or_missing_result():
    with pytest.raises(ImportFailed, match="model unavailable"):
        collect_import([ImportEvent("error", {"message": "model unavailable"})])
    with pytest.raises(ImportFailed):
        collect_import([ImportEvent("status", "still working")])
