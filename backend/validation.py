"""Runtime validators compiled from stored field definitions.

`build_validator` turns the ordered fields of a form into one JSON Schema
(draft 7) object schema, one property per field, and wraps it in a
`FormValidator` that checks a whole answer set in one pass and reports one
message per offending field id.
"""
from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

from jsonschema import Draft7Validator

from errors import ValidationFailed
from schemas import FieldValidation

# Same shape of address the public form accepts client-side.
EMAIL_PATTERN = r"(?i)^(?!\.)(?!.*\.\.)([A-Z0-9_'+\-.]*)[A-Z0-9_+-]@([A-Z0-9][A-Z0-9\-]*\.)+[A-Z]{2,}$"

REQUIRED_MSG = "This field is required"
UNKNOWN_FIELD_MSG = "Unknown field"

TYPE_MESSAGES = {
    "number": "Expected a number",
    "checkbox": "Expected a list of strings",
}

# when one value breaks several keywords, the first of these wins
KEYWORD_ORDER = ["type", "minimum", "maximum", "minLength", "maxLength", "pattern"]


def is_empty(value: Any) -> bool:
    """True for values the public form sends for an unanswered input."""
    if value is None:
        return True
    if isinstance(value, (str, list)):
        return len(value) == 0
    return False


def _fmt(n: float) -> str:
    return str(int(n)) if float(n).is_integer() else str(n)


def field_schema(field_type: str, validation: FieldValidation) -> dict:
    """JSON Schema fragment for one field's non-empty value."""
    v = validation
    if field_type == "file":
        return {}
    if field_type == "checkbox":
        return {"type": "array", "items": {"type": "string"}}
    if field_type == "number":
        schema = {"type": "number"}
        if v.min is not None:
            schema["minimum"] = v.min
        if v.max is not None:
            schema["maximum"] = v.max
        return schema
    if field_type == "email":
        return {"type": "string", "pattern": EMAIL_PATTERN}

    schema = {"type": "string"}
    if v.min_length:
        schema["minLength"] = v.min_length
    if v.max_length:
        schema["maxLength"] = v.max_length
    if v.pattern:
        schema["pattern"] = v.pattern
    return schema


def coerce_number(value: Any) -> Any:
    """Numeric strings become numbers; anything else is left for the schema to reject."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            num = float(value.strip())
        except ValueError:
            return value
        if math.isfinite(num):
            return int(num) if num.is_integer() else num
        return value
    if isinstance(value, float) and not math.isfinite(value):
        # out of JSON's number domain, reported as a type error
        return str(value)
    return value


class CompiledField:
    __slots__ = ("field_id", "field_type", "required", "validation", "schema")

    def __init__(self, field_id: str, field_type: str, validation: FieldValidation):
        self.field_id = field_id
        self.field_type = field_type
        self.required = bool(validation.required)
        self.validation = validation
        self.schema = field_schema(field_type, validation)

    def normalize(self, value: Any) -> Any:
        if self.field_type == "number":
            return coerce_number(value)
        return value

    def message(self, keyword: str) -> str:
        v = self.validation
        if keyword == "type":
            return TYPE_MESSAGES.get(self.field_type, "Expected a string")
        if keyword == "minimum":
            return f"Must be at least {_fmt(v.min)}"
        if keyword == "maximum":
            return f"Must be at most {_fmt(v.max)}"
        if keyword == "minLength":
            return f"Must be at least {v.min_length} characters"
        if keyword == "maxLength":
            return f"Must be at most {v.max_length} characters"
        if keyword == "pattern" and self.field_type == "email":
            return "Invalid email address"
        return "Invalid format"


class FormValidator:
    def __init__(self, compiled: list[CompiledField]):
        self._fields = {c.field_id: c for c in compiled}
        self.schema = {
            "type": "object",
            "properties": {c.field_id: c.schema for c in compiled},
            "required": [c.field_id for c in compiled if c.required],
            "additionalProperties": False,
        }
        self._validator = Draft7Validator(self.schema)

    @property
    def field_ids(self) -> set[str]:
        return set(self._fields)

    def validate(self, answers: Mapping[str, Any]) -> dict[str, Any]:
        """Validate an answer set keyed by field id.

        Empty values of known fields are dropped before the schema runs, so an
        optional field accepts them and a required one reports it as missing.
        Conditional display rules are not consulted: a required field is
        required even when the renderer would hide it.

        Returns:
            dict: field id -> normalized value, for every non-empty answer.

        Raises:
            ValidationFailed: with one message per offending field id.
        """
        instance = {}
        for field_id, value in answers.items():
            compiled = self._fields.get(field_id)
            if compiled is None:
                instance[field_id] = value
            elif not is_empty(value):
                instance[field_id] = compiled.normalize(value)

        found: dict[str, tuple[int, str]] = {}

        def report(field_id: str, rank: int, message: str) -> None:
            if field_id not in found or rank < found[field_id][0]:
                found[field_id] = (rank, message)

        for error in self._validator.iter_errors(instance):
            if error.validator == "required":
                for field_id in error.validator_value:
                    if field_id not in instance:
                        report(field_id, -1, REQUIRED_MSG)
            elif error.validator == "additionalProperties":
                for field_id in instance:
                    if field_id not in self._fields:
                        report(field_id, -1, UNKNOWN_FIELD_MSG)
            elif error.path:
                compiled = self._fields[error.path[0]]
                # a bad checkbox item is reported against the whole field
                keyword = "type" if len(error.path) > 1 else error.validator
                rank = KEYWORD_ORDER.index(keyword) if keyword in KEYWORD_ORDER else len(KEYWORD_ORDER)
                report(compiled.field_id, rank, compiled.message(keyword))

        if found:
            raise ValidationFailed({field_id: msg for field_id, (_, msg) in found.items()})
        return {k: v for k, v in instance.items() if k in self._fields}


def build_validator(fields: Iterable[Any]) -> FormValidator:
    """Compile a form's fields (ORM rows, ordered by position) into one validator."""
    compiled = []
    for f in sorted(fields, key=lambda f: f.position or 0):
        validation = FieldValidation.model_validate(f.validation or {})
        compiled.append(CompiledField(f.id, f.type, validation))
    return FormValidator(compiled)
