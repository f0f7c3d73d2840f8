from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Sequence
from urllib.parse import urlparse

from formbuilder.schemas import (
    CHOICE_TYPES,
    NUMERIC_TYPES,
    TEXT_TYPES,
    FieldDefinition,
    FieldType,
    ValidationRules,
)
from formbuilder.visibility import to_number, is_empty

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[0-9\s\-().]{5,}$")


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok


VALID = ValidationResult(True)


def invalid(reason: str) -> ValidationResult:
    return ValidationResult(False, reason)


def _format_bound(x: float) -> str:
    return str(int(x)) if float(x).is_integer() else str(x)


def _length_bounds(rules: ValidationRules):
    # older editors stored text lengths in min/max
    low = rules.min_length if rules.min_length is not None else rules.min
    high = rules.max_length if rules.max_length is not None else rules.max
    return low, high


def _check_bounds(field: FieldDefinition, value: Any) -> Optional[str]:
    rules = field.validation_rules
    if field.type in TEXT_TYPES and isinstance(value, str):
        low, high = _length_bounds(rules)
        if low is not None and len(value) < low:
            return f"must be at least {_format_bound(low)} characters"
        if high is not None and len(value) > high:
            return f"must be at most {_format_bound(high)} characters"
    elif field.type in NUMERIC_TYPES:
        number = to_number(value) if not isinstance(value, bool) else None
        if number is None:
            return "must be a number"
        if rules.min is not None and number < rules.min:
            return f"must be at least {_format_bound(rules.min)}"
        if rules.max is not None and number > rules.max:
            return f"must be at most {_format_bound(rules.max)}"
    return None


def _compile_pattern(pattern: str) -> Optional[re.Pattern]:
    try:
        return re.compile(pattern)
    except re.error as e:
        logger.warning(f"Invalid pattern {pattern!r} skipped: {e}")
        return None


def _check_pattern(field: FieldDefinition, value: Any) -> Optional[str]:
    pattern = field.validation_rules.pattern
    if not pattern or not isinstance(value, (str, int, float)) or isinstance(value, bool):
        return None
    regex = _compile_pattern(pattern)
    if regex is None:
        return None
    if not regex.search(str(value)):
        return "invalid format"
    return None


def _is_url(value: str) -> bool:
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and " " not in value.strip()


def _check_format(field: FieldDefinition, value: Any) -> Optional[str]:
    rules = field.validation_rules
    if not isinstance(value, str):
        return None
    if (field.type == FieldType.EMAIL or rules.email) and not EMAIL_RE.match(value):
        return "invalid email"
    if (field.type == FieldType.URL or rules.url) and not _is_url(value):
        return "invalid url"
    if field.type == FieldType.PHONE and not PHONE_RE.match(value.strip()):
        return "invalid phone number"
    return None


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip().replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _option_values(field: FieldDefinition):
    return {option.value for option in field.options}


def _check_semantics(field: FieldDefinition, value: Any) -> Optional[str]:
    rules = field.validation_rules
    if field.type in NUMERIC_TYPES and rules.integer:
        number = to_number(value)
        if number is not None and not number.is_integer():
            return "whole number"

    if field.type in (FieldType.DATE, FieldType.DATETIME):
        parsed = _parse_date(value)
        if parsed is None:
            return "invalid date"
        min_date = _parse_date(rules.min_date) if rules.min_date else None
        max_date = _parse_date(rules.max_date) if rules.max_date else None
        if min_date and parsed < min_date:
            return f"must be on or after {min_date.isoformat()}"
        if max_date and parsed > max_date:
            return f"must be on or before {max_date.isoformat()}"

    if field.type in CHOICE_TYPES and field.options:
        allowed = _option_values(field)
        chosen = value if isinstance(value, (list, tuple)) else [value]
        if any(str(item) not in allowed for item in chosen):
            return "not one of the available options"

    if field.type == FieldType.FILE and isinstance(value, Mapping):
        return check_file(field, value.get("name") or value.get("filename"), value.get("size"))
    return None


def check_file(field: FieldDefinition, filename: Optional[str], size: Optional[int]) -> Optional[str]:
    """Extension and size rules for a file field; shared with the upload endpoint."""
    rules = field.validation_rules
    if rules.allowed_extensions and filename:
        extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        if extension not in rules.allowed_extensions:
            return "file type not allowed"
    if rules.max_file_size is not None and size is not None:
        if size > rules.max_file_size * 1024 * 1024:
            return f"file must be at most {_format_bound(rules.max_file_size)} MB"
    return None


CHECKS = (_check_bounds, _check_pattern, _check_format, _check_semantics)


def validate(field: FieldDefinition, value: Any, *, visible: bool = True) -> ValidationResult:
    """
    Check one value against its field definition.

    Hidden fields are always valid. Otherwise the required rule is applied
    first, empty optional values pass, and the remaining checks run in order
    (bounds, pattern, format, type semantics) with the first failure
    reported.
    """
    if not visible:
        return VALID
    if is_empty(value):
        return invalid("required") if field.required else VALID
    for check in CHECKS:
        reason = check(field, value)
        if reason:
            return invalid(reason)
    return VALID


def validate_all(
    fields: Sequence[FieldDefinition],
    values: Mapping[str, Any],
    visibility: Mapping[str, bool],
) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for f in fields:
        result = validate(f, values.get(f.id), visible=visibility.get(f.id, True))
        if not result.ok:
            errors[f.id] = result.reason
    return errors
