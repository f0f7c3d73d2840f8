from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from formbuilder.schemas import (
    BOOLEAN_TYPES,
    MULTI_VALUE_TYPES,
    FieldDefinition,
)

logger = logging.getLogger(__name__)

VisibilityMap = Dict[str, bool]
ValueMap = Dict[str, Any]
Evaluator = Callable[[Sequence[FieldDefinition], Mapping[str, Any]], VisibilityMap]


def empty_value(field: FieldDefinition) -> Any:
    """Type-appropriate value for a field that has nothing entered."""
    if field.type in MULTI_VALUE_TYPES:
        return []
    if field.type in BOOLEAN_TYPES:
        return False
    return ""


def initial_value(field: FieldDefinition) -> Any:
    if field.default_value is None or field.default_value == "":
        return empty_value(field)
    if field.type in MULTI_VALUE_TYPES and not isinstance(field.default_value, (list, tuple)):
        return [field.default_value]
    return field.default_value


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


def _needs_reset(field: FieldDefinition, value: Any) -> bool:
    return value is not None and value != empty_value(field)


def to_number(x: Any) -> Optional[float]:
    # numeric strings like "12.3" count; anything else is not comparable
    if isinstance(x, bool):
        return float(x)
    if isinstance(x, (int, float)):
        number = float(x)
    elif isinstance(x, str):
        try:
            number = float(x.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def _to_text(x: Any) -> str:
    if x is None:
        return ""
    if isinstance(x, bool):
        return "true" if x else "false"
    if isinstance(x, float) and x.is_integer():
        return str(int(x))
    if isinstance(x, (list, tuple)):
        return ",".join(_to_text(item) for item in x)
    return str(x)


def evaluate_condition(condition: str, parent: Any, expected: Any) -> bool:
    """Test one condition against the value of the field it depends on."""
    if condition == "equals":
        return _to_text(parent).lower() == _to_text(expected).lower()
    if condition == "not_equals":
        return _to_text(parent).lower() != _to_text(expected).lower()
    if condition in ("contains", "not_contains"):
        needle = _to_text(expected).lower()
        if isinstance(parent, (list, tuple, set)):
            found = any(_to_text(item).lower() == needle for item in parent)
        else:
            found = needle in _to_text(parent).lower()
        return found if condition == "contains" else not found
    if condition in ("greater_than", "less_than"):
        left = to_number(parent)
        right = to_number(expected)
        if left is None or right is None:
            return False
        return left > right if condition == "greater_than" else left < right
    if condition == "is_empty":
        return is_empty(parent)
    if condition == "is_not_empty":
        return not is_empty(parent)
    logger.debug(f"Unknown condition {condition!r} treated as not met")
    return False


def _apply_action(field: FieldDefinition, condition_met: bool) -> bool:
    if field.conditional_logic.action == "hide":
        return not condition_met
    return condition_met


def _in_cycle(field_id: str, by_id: Mapping[str, FieldDefinition]) -> bool:
    """True when following ``dependsOn`` from a field leads back to it."""
    parent_id = by_id[field_id].dependency
    for _ in range(len(by_id)):
        if parent_id == field_id:
            return True
        if parent_id not in by_id:
            return False
        parent_id = by_id[parent_id].dependency
    return False


def compute_visibility(fields: Sequence[FieldDefinition], values: Mapping[str, Any]) -> VisibilityMap:
    """
    Visibility of every field for one snapshot of values. Only the value of
    the field depended on is looked at; hidden parents have already had their
    value reset by ``cascade_reset`` or ``settle``.
    """
    by_id = {f.id: f for f in fields}
    visibility: VisibilityMap = {}
    for f in fields:
        parent_id = f.dependency
        if parent_id is None:
            visibility[f.id] = True
        elif parent_id not in by_id or _in_cycle(f.id, by_id):
            logger.debug(f"Field {f.id} has an unresolvable dependency on {parent_id!r}")
            visibility[f.id] = _apply_action(f, False)
        elif values.get(parent_id) is None:
            # fail closed: a condition that cannot be evaluated never shows the field
            visibility[f.id] = False
        else:
            logic = f.conditional_logic
            met = evaluate_condition(logic.condition, values[parent_id], logic.value)
            visibility[f.id] = _apply_action(f, met)
    return visibility


def dependents_index(fields: Iterable[FieldDefinition]) -> Dict[str, List[str]]:
    index: Dict[str, List[str]] = {}
    for f in fields:
        parent_id = f.dependency
        if parent_id is not None and parent_id != f.id:
            index.setdefault(parent_id, []).append(f.id)
    return index


@dataclass
class CascadeResult:
    values: ValueMap
    visibility: VisibilityMap
    cleared: List[str] = field(default_factory=list)


def cascade_reset(
    fields: Sequence[FieldDefinition],
    values: Mapping[str, Any],
    changed_id: str,
    evaluator: Optional[Evaluator] = None,
) -> CascadeResult:
    """
    Propagate a change of ``changed_id`` to the fields that depend on it.

    Every dependent that is hidden after the change gets its value reset to
    the empty value, and the walk continues from it, so a whole chain is
    cleared in one call. Each field is visited at most once.
    """
    evaluate = evaluator or compute_visibility
    by_id = {f.id: f for f in fields}
    children = dependents_index(fields)
    new_values = dict(values)
    cleared: List[str] = []

    visited = {changed_id}
    queue = deque([changed_id])
    while queue:
        current = queue.popleft()
        for child_id in children.get(current, []):
            if child_id in visited:
                continue
            visited.add(child_id)
            if not evaluate(fields, new_values)[child_id]:
                child = by_id[child_id]
                if _needs_reset(child, new_values.get(child_id)):
                    new_values[child_id] = empty_value(child)
                    cleared.append(child_id)
            queue.append(child_id)

    return CascadeResult(new_values, evaluate(fields, new_values), cleared)


def settle(
    fields: Sequence[FieldDefinition],
    values: Mapping[str, Any],
    evaluator: Optional[Evaluator] = None,
) -> CascadeResult:
    """
    Reset every hidden field to its empty value until nothing changes.
    Used when a whole set of values arrives at once (mount, submission).
    """
    evaluate = evaluator or compute_visibility
    new_values = dict(values)
    cleared: List[str] = []
    visibility = evaluate(fields, new_values)
    for _ in range(len(fields) + 1):
        changed = False
        for f in fields:
            if not visibility[f.id] and _needs_reset(f, new_values.get(f.id)):
                new_values[f.id] = empty_value(f)
                if f.id not in cleared:
                    cleared.append(f.id)
                changed = True
        if not changed:
            break
        visibility = evaluate(fields, new_values)
    return CascadeResult(new_values, visibility, cleared)


def dependency_candidates(fields: Sequence[FieldDefinition], field_id: str) -> List[FieldDefinition]:
    """Fields a given field may depend on: the ones placed above it."""
    target = next((f for f in fields if f.id == field_id), None)
    if target is None:
        return []
    return sorted((f for f in fields if f.position < target.position), key=lambda f: f.position)


def dependency_problems(fields: Sequence[FieldDefinition]) -> List[Dict[str, str]]:
    """Report dependencies that the evaluator will treat as unresolvable or out of order."""
    by_id = {f.id: f for f in fields}
    problems = []
    for f in fields:
        parent_id = f.dependency
        if parent_id is None:
            continue
        if parent_id == f.id:
            problems.append({"field": f.id, "dependsOn": parent_id, "problem": "self"})
        elif parent_id not in by_id:
            problems.append({"field": f.id, "dependsOn": parent_id, "problem": "missing"})
        elif by_id[parent_id].position >= f.position:
            problems.append({"field": f.id, "dependsOn": parent_id, "problem": "not_above"})
    return problems


def log_dependency_problems(fields: Sequence[FieldDefinition], form_id: Optional[str] = None) -> None:
    for problem in dependency_problems(fields):
        logger.warning(
            f"Form {form_id or '?'}: field {problem['field']} depends on "
            f"{problem['dependsOn']!r} ({problem['problem']}); it is evaluated as condition not met"
        )
