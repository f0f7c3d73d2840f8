import logging

from conftest import make_field

from formbuilder.validation import check_file, validate, validate_all


def test_hidden_field_is_always_valid():
    f = make_field("n", "number", required=True, validation_rules={"min": 1, "max": 3, "pattern": "^a$"})
    for value in ("", None, "not a number", 99, ["x"]):
        assert validate(f, value, visible=False).ok


def test_required_empty():
    f = make_field("t", required=True)
    result = validate(f, "")
    assert not result.ok
    assert result.reason == "required"
    assert validate(f, "a").ok
    assert not validate(make_field("c", "checkbox", required=True, options=["a"]), [])


def test_optional_empty_skips_other_rules():
    f = make_field("e", "email", validation_rules={"min_length": 10})
    assert validate(f, "").ok
    assert validate(f, None).ok


def test_whole_number_rule():
    f = make_field("n", "number", validation_rules={"min": 1, "max": 10, "integer": True})
    result = validate(f, "5.5")
    assert not result.ok
    assert result.reason == "whole number"
    assert validate(f, "5").ok


def test_numeric_bounds_come_before_semantics():
    f = make_field("n", "number", validation_rules={"min": 1, "max": 10, "integer": True})
    assert validate(f, "0.5").reason == "must be at least 1"
    assert validate(f, 11).reason == "must be at most 10"
    assert validate(f, "abc").reason == "must be a number"


def test_text_length_bounds():
    f = make_field("t", validation_rules={"min_length": 2, "max_length": 4})
    assert validate(f, "a").reason == "must be at least 2 characters"
    assert validate(f, "abcde").reason == "must be at most 4 characters"
    assert validate(f, "abc").ok


def test_legacy_min_max_apply_to_text_length():
    f = make_field("t", "textarea", validation_rules={"min": 3})
    assert validate(f, "ab").reason == "must be at least 3 characters"


def test_pattern_failure_and_order():
    f = make_field("code", validation_rules={"pattern": "^[A-Z]{3}$", "max_length": 5})
    assert validate(f, "abc").reason == "invalid format"
    # bounds are reported before the pattern
    assert validate(f, "abcdef").reason == "must be at most 5 characters"
    assert validate(f, "ABC").ok


def test_bad_pattern_is_skipped_and_logged(caplog):
    f = make_field("code", validation_rules={"pattern": "([unclosed"})
    with caplog.at_level(logging.WARNING):
        assert validate(f, "anything").ok
    assert "Invalid pattern" in caplog.text


def test_format_checks():
    assert validate(make_field("e", "email"), "not-an-email").reason == "invalid email"
    assert validate(make_field("e", "email"), "a@b.co").ok
    assert validate(make_field("u", "url"), "ftp://x.org").reason == "invalid url"
    assert validate(make_field("u", "url"), "https://example.com/a").ok
    assert validate(make_field("p", "phone"), "call me").reason == "invalid phone number"
    assert validate(make_field("p", "phone"), "+1 (555) 010-1234").ok
    assert validate(make_field("t", validation_rules={"email": True}), "nope").reason == "invalid email"


def test_dates():
    f = make_field("d", "date", validation_rules={"min_date": "2024-01-01", "max_date": "2024-12-31"})
    assert validate(f, "2024-06-01").ok
    assert validate(f, "yesterday").reason == "invalid date"
    assert validate(f, "2023-12-31").reason == "must be on or after 2024-01-01"
    assert validate(f, "2025-01-01").reason == "must be on or before 2024-12-31"
    assert validate(make_field("dt", "datetime"), "2024-06-01T10:30").ok


def test_choices_must_match_options():
    f = make_field("c", "select", options=[{"label": "Yes", "value": "yes"}, {"label": "No", "value": "no"}])
    assert validate(f, "yes").ok
    assert validate(f, "maybe").reason == "not one of the available options"
    many = make_field("m", "checkbox", options=["a", "b"])
    assert validate(many, ["a", "b"]).ok
    assert not validate(many, ["a", "z"])


def test_file_rules():
    f = make_field("doc", "file", validation_rules={"allowed_extensions": "pdf, .DOCX", "max_file_size": 1})
    assert check_file(f, "report.pdf", 1000) is None
    assert check_file(f, "report.docx", None) is None
    assert check_file(f, "image.png", 10) == "file type not allowed"
    assert check_file(f, "big.pdf", 2 * 1024 * 1024) == "file must be at most 1 MB"
    assert validate(f, {"name": "x.exe", "size": 1, "url": "/uploads/x.exe"}).reason == "file type not allowed"


def test_validate_all_collects_visible_errors():
    fields = [
        make_field("a", required=True),
        make_field("b", "number", position=1, required=True),
        make_field("c", position=2, required=True),
    ]
    errors = validate_all(fields, {"a": "", "b": "x", "c": ""}, {"a": True, "b": True, "c": False})
    assert errors == {"a": "required", "b": "must be a number"}
