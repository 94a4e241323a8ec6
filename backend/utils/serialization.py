"""
Conversions between service values and what MongoDB / JSON can hold.

Money is Decimal in the services, Decimal128 in MongoDB and a plain string on
the wire, so no amount ever passes through a float.
"""
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime
from enum import Enum
from typing import Any

from bson.decimal128 import Decimal128

CENT = Decimal("0.01")


def quantize_money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_storage_decimal(value: Any) -> Decimal128:
    return Decimal128(quantize_money(value))


def clean_document(doc: Any) -> Any:
    """Strip Mongo _id and turn Decimal128 back into Decimal, recursively."""
    if isinstance(doc, dict):
        return {k: clean_document(v) for k, v in doc.items() if k != "_id"}
    if isinstance(doc, list):
        return [clean_document(v) for v in doc]
    if isinstance(doc, Decimal128):
        return doc.to_decimal()
    return doc


def to_json_safe(value: Any) -> Any:
    """Decimal becomes a fixed-point string, datetimes become ISO-8601."""
    if isinstance(value, dict):
        return {k: to_json_safe(v) for k, v in value.items() if k != "_id"}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    if isinstance(value, Decimal128):
        value = value.to_decimal()
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value
