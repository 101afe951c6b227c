from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_datetime, parse_iso_date


# Maximum price: R$ 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


class _FieldError(ValueError):
    """Raised by coercion helpers; collected into ValidationError.fields."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - choices: enumerated string fields and their allowed values
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    choices: dict[str, set[str]] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, name: str) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise _FieldError(f"{name} must be an integer")
        if "e" in stripped.lower():
            raise _FieldError(f"{name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise _FieldError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise _FieldError(f"{name} must be an integer")
    if isinstance(value, float):
        raise _FieldError(f"{name} must be an integer, not a decimal")
    raise _FieldError(f"{name} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "1", "false", "0"}:
            return value.strip().lower() in {"true", "1"}
        raise _FieldError(f"{col.key} must be a boolean")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise _FieldError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise _FieldError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise _FieldError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise _FieldError(f"{col.key} must be an ISO-8601 date")
            if d is None:
                raise _FieldError(f"{col.key} must be an ISO-8601 date")
            return d
        raise _FieldError(f"{col.key} must be a date")

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise _FieldError(f"{col.key} must be a string")
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    Every problem found is collected, so the client receives the complete
    field list in one ValidationError instead of fixing one field per request.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[dict] = []

    if not partial:
        for f in sorted(policy.required_on_create):
            if f not in payload:
                errors.append({"field": f, "message": f"{f} is required"})

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields or k not in cols:
            errors.append({"field": k, "message": f"Field not allowed: {k}"})
            continue

        col = cols[k]

        if raw is None:
            if not col.nullable:
                errors.append({"field": k, "message": f"{k} cannot be null"})
            else:
                patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except _FieldError as e:
            errors.append({"field": k, "message": str(e)})
            continue

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            errors.append({"field": k, "message": f"{k} cannot be blank"})
            continue

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors.append({"field": k, "message": f"{k} exceeds max length {col.type.length}"})
                continue

        allowed = policy.choices.get(k)
        if allowed is not None and val not in allowed:
            errors.append({"field": k, "message": f"{k} must be one of {', '.join(sorted(allowed))}"})
            continue

        # Blank optional strings are stored as NULL so unique indexes stay usable
        if isinstance(val, str) and val == "" and col.nullable:
            val = None

        patch[k] = val

    if errors:
        raise ValidationError(errors)

    return patch


def require_fields(payload: dict | None, spec: dict[str, type]) -> dict:
    """
    Validate a non-model request body.

    spec maps field name -> expected type (int, str, bool, list, dict).
    Optional fields are declared by suffixing the name with "?".
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[dict] = []
    cleaned: dict = {}

    for raw_name, expected in spec.items():
        optional = raw_name.endswith("?")
        name = raw_name.rstrip("?")
        value = payload.get(name)

        if value is None or (isinstance(value, str) and not value.strip()):
            if not optional:
                errors.append({"field": name, "message": f"{name} is required"})
            continue

        try:
            if expected is int:
                cleaned[name] = coerce_int(value, name)
            elif expected is str:
                if not isinstance(value, (str, int)) or isinstance(value, bool):
                    raise _FieldError(f"{name} must be a string")
                cleaned[name] = str(value).strip()
            elif expected is bool:
                if not isinstance(value, bool):
                    raise _FieldError(f"{name} must be a boolean")
                cleaned[name] = value
            elif isinstance(value, expected):
                cleaned[name] = value
            else:
                raise _FieldError(f"{name} must be a {expected.__name__}")
        except _FieldError as e:
            errors.append({"field": name, "message": str(e)})

    if errors:
        raise ValidationError(errors)

    return cleaned


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    errors = []
    for key in ("price_cents", "cost_cents", "wholesale_price_cents"):
        value = patch.get(key)
        if value is None:
            continue
        if value < 0:
            errors.append({"field": key, "message": f"{key} must be >= 0"})
        elif value > MAX_PRICE_CENTS:
            errors.append({"field": key, "message": f"{key} cannot exceed {MAX_PRICE_CENTS}"})
    for key in ("stock_quantity", "min_stock"):
        value = patch.get(key)
        if value is not None and value < 0:
            errors.append({"field": key, "message": f"{key} must be >= 0"})
    qty = patch.get("wholesale_min_qty")
    if qty is not None and qty <= 0:
        errors.append({"field": "wholesale_min_qty", "message": "wholesale_min_qty must be > 0"})
    if errors:
        raise ValidationError(errors)


def parse_date_arg(value: str | None, name: str) -> date | None:
    """Query-string date ("YYYY-MM-DD"); None when absent."""
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError([{"field": name, "message": f"{name} must be a date (YYYY-MM-DD)"}])
