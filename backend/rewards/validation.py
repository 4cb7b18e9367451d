from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from rewards.errors import InvalidInputError
from rewards.time_utils import parse_iso_datetime


STRING = "string"
INTEGER = "integer"
NUMBER = "number"
BOOLEAN = "boolean"
DATETIME = "datetime"
DATE = "date"
INT_LIST = "int_list"


@dataclass(frozen=True)
class Field:
    """
    One accepted JSON field:
    - kind: how the raw value is coerced
    - required: must be present on create (partial=False)
    - nullable: explicit null is accepted and passed through
    - minimum: inclusive lower bound for integer/number kinds
    - choices: allowed values for string kind
    """
    kind: str
    required: bool = False
    nullable: bool = False
    minimum: Optional[float] = None
    choices: Optional[tuple] = None
    max_length: Optional[int] = None


def _coerce_int(key: str, value: Any) -> int:
    # Reject bool (an int subclass), floats and scientific notation
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise InvalidInputError(f"{key} must be an integer")
        try:
            return int(stripped)
        except ValueError:
            raise InvalidInputError(f"{key} must be an integer") from None
    raise InvalidInputError(f"{key} must be an integer")


def _coerce_number(key: str, value: Any) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise InvalidInputError(f"{key} must be a number")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidInputError(f"{key} must be a number") from None
    if not number.is_finite():
        raise InvalidInputError(f"{key} must be a number")
    return number


def _coerce_value(key: str, field: Field, value: Any):
    if field.kind == STRING:
        if not isinstance(value, str):
            raise InvalidInputError(f"{key} must be a string")
        value = value.strip()
        if field.max_length and len(value) > field.max_length:
            raise InvalidInputError(f"{key} exceeds max length {field.max_length}")
        if field.choices and value not in field.choices:
            raise InvalidInputError(f"{key} must be one of: {', '.join(field.choices)}")
        return value

    if field.kind == INTEGER:
        value = _coerce_int(key, value)
    elif field.kind == NUMBER:
        value = _coerce_number(key, value)
    elif field.kind == BOOLEAN:
        if not isinstance(value, bool):
            raise InvalidInputError(f"{key} must be a boolean")
        return value
    elif field.kind == DATETIME:
        if isinstance(value, datetime):
            return value
        try:
            dt = parse_iso_datetime(value) if isinstance(value, str) else None
        except ValueError:
            dt = None
        if dt is None:
            raise InvalidInputError(f"{key} must be an ISO-8601 datetime")
        return dt
    elif field.kind == DATE:
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(value) if isinstance(value, str) else None
        except ValueError:
            raise InvalidInputError(f"{key} must be a YYYY-MM-DD date") from None
    elif field.kind == INT_LIST:
        if not isinstance(value, list):
            raise InvalidInputError(f"{key} must be a list of integers")
        return [_coerce_int(key, item) for item in value]

    if field.minimum is not None and value < field.minimum:
        raise InvalidInputError(f"{key} must be >= {field.minimum:g}")
    return value


def validate_payload(payload: Any, fields: dict[str, Field], *, partial: bool = False) -> dict:
    """
    Validates + normalizes an incoming JSON body against a field table.

    Returns a cleaned dict holding only the keys the client sent.
    partial=False: create semantics (enforce required fields)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidInputError("Invalid JSON payload")

    for key in payload:
        if key not in fields:
            raise InvalidInputError(f"Field not allowed: {key}")

    if not partial:
        missing = [k for k, f in fields.items() if f.required and payload.get(k) is None]
        if missing:
            raise InvalidInputError(f"Missing required fields: {', '.join(missing)}")

    cleaned: dict = {}
    for key, raw in payload.items():
        field = fields[key]
        if raw is None:
            if not field.nullable:
                raise InvalidInputError(f"{key} cannot be null")
            cleaned[key] = None
            continue
        cleaned[key] = _coerce_value(key, field, raw)
    return cleaned


def parse_int_arg(args, name: str, default: Optional[int] = None) -> Optional[int]:
    """Read an integer query-string argument."""
    raw = args.get(name)
    if raw is None or raw == "":
        return default
    return _coerce_int(name, raw)


def parse_bool_arg(args, name: str) -> Optional[bool]:
    """Read a 'true'/'false' query-string argument; absent means no filter."""
    raw = args.get(name)
    if raw is None or raw == "":
        return None
    lowered = raw.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise InvalidInputError(f"{name} must be true or false")
