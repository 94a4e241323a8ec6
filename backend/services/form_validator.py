"""
Dynamic Form Validator
Builds a validation schema at runtime from a package's field list and applies
it to an order submission.

Each FieldType carries its own rule builder; rules are composed per package at
request time. Every field is checked (no short-circuit) and errors are reported
in field `order`.
"""
import re
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import validate_email
from pydantic_core import PydanticCustomError

from models import FieldType

logger = logging.getLogger(__name__)

# Placeholder the browser submits for a FILE field whose bytes are still uploading
FILE_PENDING_UPLOAD = "__FILE_PENDING_UPLOAD__"

PHONE_MIN_DIGITS = 10
_PHONE_SEPARATORS = re.compile(r"[\s\-()+.]")

# A rule returns an error message, or None when the value is acceptable
Rule = Callable[[Any], Optional[str]]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, list):
        return len(value) == 0
    return False


# ============================================================================
# RULE BUILDERS (one per field kind)
# ============================================================================

def _text_rule(label: str) -> Rule:
    def rule(value: Any) -> Optional[str]:
        if not isinstance(value, str) or value.strip() == "":
            return f"{label} is required"
        return None
    return rule


def _email_rule(label: str) -> Rule:
    def rule(value: Any) -> Optional[str]:
        if not isinstance(value, str) or value.strip() == "":
            return f"{label} is required"
        try:
            validate_email(value.strip())
        except PydanticCustomError:
            return "Invalid email address"
        return None
    return rule


def _phone_rule(label: str) -> Rule:
    def rule(value: Any) -> Optional[str]:
        if not isinstance(value, str) or value.strip() == "":
            return f"{label} is required"
        digits = _PHONE_SEPARATORS.sub("", value)
        if not digits.isdigit():
            return "Phone number may only contain digits"
        if len(digits) < PHONE_MIN_DIGITS:
            return f"Phone number must be at least {PHONE_MIN_DIGITS} digits"
        return None
    return rule


def _date_rule(label: str) -> Rule:
    def rule(value: Any) -> Optional[str]:
        if not isinstance(value, str) or value.strip() == "":
            return f"{label} must be a date"
        return None
    return rule


def _select_rule(label: str, options: Sequence[str] = ()) -> Rule:
    allowed = {o for o in options if isinstance(o, str) and o.strip()}

    def is_choice(v: Any) -> bool:
        if not isinstance(v, str) or not v.strip():
            return False
        return not allowed or v in allowed

    def rule(value: Any) -> Optional[str]:
        if isinstance(value, list):
            if value and all(is_choice(v) for v in value):
                return None
            return f"Please choose {label}"
        if not is_choice(value):
            return f"Please choose {label}"
        return None
    return rule


def _file_rule(label: str) -> Rule:
    def rule(value: Any) -> Optional[str]:
        if value != FILE_PENDING_UPLOAD:
            return f"Please select a file for {label}"
        return None
    return rule


RULE_BUILDERS: Dict[FieldType, Callable[[str], Rule]] = {
    FieldType.TEXT: _text_rule,
    FieldType.TEXTAREA: _text_rule,
    FieldType.EMAIL: _email_rule,
    FieldType.PHONE: _phone_rule,
    FieldType.DATE: _date_rule,
    FieldType.SELECT: _select_rule,
    FieldType.FILE: _file_rule,
}


def _optional(rule: Rule) -> Rule:
    def wrapped(value: Any) -> Optional[str]:
        if _is_blank(value):
            return None
        return rule(value)
    return wrapped


def build_schema(fields: List[Dict[str, Any]]) -> List[tuple]:
    """
    Compose per-field rules into one ordered schema: [(field_name, rule), ...].

    Raises ValueError for a field type with no rule builder.
    """
    schema = []
    for field in sorted(fields, key=lambda f: f.get("order", 0)):
        raw_type = field.get("field_type")
        try:
            field_type = FieldType(raw_type)
        except ValueError:
            raise ValueError(f"Unknown field type: {raw_type!r}")
        builder = RULE_BUILDERS.get(field_type)
        if builder is None:
            raise ValueError(f"No rule builder for field type: {field_type.value}")
        label = field.get("field_label") or field["field_name"]
        if field_type == FieldType.SELECT:
            rule = _select_rule(label, field.get("options") or [])
        else:
            rule = builder(label)
        if not field.get("is_required", False):
            rule = _optional(rule)
        schema.append((field["field_name"], rule))
    return schema


def validate(fields: List[Dict[str, Any]], submission: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a submission against a package's fields.

    Returns:
        {"ok": True, "data": {field_name: value}} with unknown keys dropped, or
        {"ok": False, "field_errors": {field_name: message}}
    """
    submission = submission or {}
    field_errors: Dict[str, str] = {}
    data: Dict[str, Any] = {}

    for field_name, rule in build_schema(fields):
        value = submission.get(field_name)
        message = rule(value)
        if message:
            field_errors[field_name] = message
        elif field_name in submission:
            data[field_name] = value

    if field_errors:
        return {"ok": False, "field_errors": field_errors}
    return {"ok": True, "data": data}


def non_file_fields(fields: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [f for f in fields if f.get("field_type") != FieldType.FILE.value]


def file_fields(fields: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [f for f in fields if f.get("field_type") == FieldType.FILE.value]
