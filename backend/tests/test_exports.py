import csv
import io
from datetime import datetime, timezone

from conftest import make_field

from formbuilder.exports import SUBMITTED_AT, responses_to_csv, responses_to_rows

FIELDS = [
    make_field("comment", "textarea", 1, label="Comment"),
    make_field("color", "select", 0, label="Favourite color", options=[{"label": "Sky blue", "value": "blue"}]),
    make_field("tags", "checkbox", 2, label="Tags", options=["a", "b"]),
    make_field("ok", "switch", 3, label="Agreed"),
    make_field("old", "text", 4, label="Removed", active=False),
]


def test_header_follows_field_order_and_skips_inactive():
    header = next(responses_to_rows(FIELDS, []))
    assert header == [SUBMITTED_AT, "Favourite color", "Comment", "Tags", "Agreed"]


def test_cells_use_labels_and_readable_values():
    responses = [{
        "completed_at": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        "data": {"color": "blue", "comment": "fine", "tags": ["a", "b"], "ok": True},
    }]
    rows = list(responses_to_rows(FIELDS, responses))
    assert rows[1] == ["2024-01-02T03:04:05+00:00", "Sky blue", "fine", "a, b", "Yes"]


def test_csv_quotes_commas_quotes_and_newlines():
    responses = [{"completed_at": "2024-01-01", "data": {"comment": 'He said "hi",\nthen left', "ok": False}}]
    text = responses_to_csv(FIELDS, responses)
    assert text.startswith("Submitted at,Favourite color,Comment,Tags,Agreed\r\n")
    assert '"He said ""hi"",\nthen left"' in text

    parsed = list(csv.reader(io.StringIO(text)))
    assert parsed[1] == ["2024-01-01", "", 'He said "hi",\nthen left', "", "No"]
