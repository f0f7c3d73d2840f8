from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Set

from formbuilder.schemas import FieldDefinition
from formbuilder.validation import ValidationResult, validate
from formbuilder.visibility import (
    CascadeResult,
    Evaluator,
    cascade_reset,
    compute_visibility,
    initial_value,
    log_dependency_problems,
    settle,
)

logger = logging.getLogger(__name__)

Validator = Callable[..., ValidationResult]
Persist = Callable[[Dict[str, Any]], Awaitable[Any]]


class FieldState(str, Enum):
    HIDDEN = "hidden"
    VISIBLE_UNTOUCHED = "visible_untouched"
    VISIBLE_VALID = "visible_valid"
    VISIBLE_INVALID = "visible_invalid"


@dataclass
class SubmitOutcome:
    ok: bool
    errors: Dict[str, str] = field(default_factory=dict)
    notification: Optional[str] = None
    result: Any = None


class FormRuntime:
    """
    Live value store for one rendered form (editor preview, public form,
    dashboard widget config).

    Values are seeded from field defaults. Every change re-validates the
    changed field and re-evaluates the fields that depend on it; a field that
    becomes hidden loses its value and its error. Nothing is shared between
    instances.
    """

    def __init__(
        self,
        fields: Sequence[FieldDefinition],
        *,
        evaluator: Evaluator = compute_visibility,
        validator: Validator = validate,
        form_id: Optional[str] = None,
    ):
        self.fields: List[FieldDefinition] = sorted(fields, key=lambda f: f.position)
        self.by_id = {f.id: f for f in self.fields}
        self.form_id = form_id
        self._evaluate = evaluator
        self._validate = validator
        self.errors: Dict[str, str] = {}
        self.validated: Set[str] = set()
        self.closed = False

        log_dependency_problems(self.fields, form_id)
        seeded = {f.id: initial_value(f) for f in self.fields}
        settled = settle(self.fields, seeded, self._evaluate)
        self.values: Dict[str, Any] = settled.values
        self.visibility: Dict[str, bool] = self._evaluate(self.fields, self.values)

    # ---------- state ----------

    def is_visible(self, field_id: str) -> bool:
        return self.visibility.get(field_id, False)

    def state(self, field_id: str) -> FieldState:
        if not self.is_visible(field_id):
            return FieldState.HIDDEN
        if field_id in self.errors:
            return FieldState.VISIBLE_INVALID
        if field_id in self.validated:
            return FieldState.VISIBLE_VALID
        return FieldState.VISIBLE_UNTOUCHED

    def states(self) -> Dict[str, FieldState]:
        return {f.id: self.state(f.id) for f in self.fields}

    # ---------- events ----------

    def _validate_field(self, field_id: str) -> ValidationResult:
        f = self.by_id[field_id]
        result = self._validate(f, self.values.get(field_id), visible=self.is_visible(field_id))
        self.validated.add(field_id)
        if result.ok:
            self.errors.pop(field_id, None)
        else:
            self.errors[field_id] = result.reason
        return result

    def _forget_hidden(self) -> None:
        for f in self.fields:
            if not self.is_visible(f.id):
                self.errors.pop(f.id, None)
                self.validated.discard(f.id)

    def set_value(self, field_id: str, value: Any) -> CascadeResult:
        if field_id not in self.by_id:
            raise KeyError(field_id)
        self.values[field_id] = value
        cascade = cascade_reset(self.fields, self.values, field_id, self._evaluate)
        self.values = cascade.values
        self.visibility = self._evaluate(self.fields, self.values)
        self._forget_hidden()
        self._validate_field(field_id)
        return cascade

    def load(self, values: Mapping[str, Any]) -> CascadeResult:
        """Take a whole set of values at once (e.g. a posted submission)."""
        merged = dict(self.values)
        for key, value in values.items():
            if key in self.by_id:
                merged[key] = value
        settled = settle(self.fields, merged, self._evaluate)
        self.values = settled.values
        self.visibility = self._evaluate(self.fields, self.values)
        self._forget_hidden()
        return settled

    def blur(self, field_id: str) -> ValidationResult:
        return self._validate_field(field_id)

    # ---------- submission ----------

    def check(self) -> Dict[str, str]:
        """
        Validate every visible field now. Cached per-field results are not
        trusted since several changes may have happened since they were made.
        """
        self.visibility = self._evaluate(self.fields, self.values)
        self._forget_hidden()
        errors: Dict[str, str] = {}
        for f in self.fields:
            if not self.is_visible(f.id):
                continue
            result = self._validate_field(f.id)
            if not result.ok:
                errors[f.id] = result.reason
        return errors

    def can_submit(self) -> bool:
        return not self.check()

    def payload(self) -> Dict[str, Any]:
        """Values of the visible fields, in field order."""
        return {f.id: self.values.get(f.id) for f in self.fields if self.is_visible(f.id)}

    async def submit(self, persist: Persist) -> Optional[SubmitOutcome]:
        errors = self.check()
        if errors:
            return SubmitOutcome(ok=False, errors=errors)

        try:
            result = await persist(self.payload())
            error = getattr(result, "error", None)
        except Exception as e:
            result = None
            error = str(e) or type(e).__name__

        if self.closed:
            logger.debug(f"Discarding submit result for closed form {self.form_id}")
            return None
        if error:
            logger.error(f"Submitting form {self.form_id} failed: {error}")
            return SubmitOutcome(ok=False, notification=str(error))
        return SubmitOutcome(ok=True, result=result)

    def close(self) -> None:
        self.closed = True
