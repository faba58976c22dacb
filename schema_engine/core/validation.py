"""Field-by-field validation and normalization of parsed output against a Schema."""

import math
import re
from typing import Any

from schema_engine.core.errors import SchemaValidationError
from schema_engine.core.schema import FieldSpec, Schema

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_TRUE_TOKENS = {"true", "yes"}
_FALSE_TOKENS = {"false", "no"}


# ── Public API ───────────────────────────────────────────────────────


def validate_value(schema: Schema, value: Any) -> dict:
    """Walk the schema against ``value`` and return the normalized object.

    Unknown keys are dropped and optional fields that are absent (or null) are
    omitted; nothing is ever defaulted. Raises SchemaValidationError naming the
    first offending path.
    """
    if not isinstance(value, dict):
        raise SchemaValidationError("$", f"expected an object, got {_type_name(value)}")
    return _validate_object(schema.fields, value, prefix="")


# ── Walkers ──────────────────────────────────────────────────────────


def _validate_object(fields: tuple[FieldSpec, ...], value: dict, prefix: str) -> dict:
    out: dict[str, Any] = {}
    for f in fields:
        path = f"{prefix}.{f.name}" if prefix else f.name
        raw = value.get(f.name)
        if raw is None:
            if f.required:
                reason = "required field is null" if f.name in value else "required field is missing"
                raise SchemaValidationError(path, reason)
            continue
        out[f.name] = _validate_field(f, raw, path)
    return out


def _validate_field(f: FieldSpec, raw: Any, path: str) -> Any:
    if f.type == "string":
        result = _as_string(raw, path)
    elif f.type in ("number", "integer"):
        result = _as_number(raw, path, integer=f.type == "integer")
    elif f.type == "boolean":
        result = _as_boolean(raw, path)
    elif f.type == "enum":
        result = _as_enum(raw, f.enum_values, path)
    elif f.type == "array":
        if not isinstance(raw, list):
            raise SchemaValidationError(path, f"expected array, got {_type_name(raw)}")
        result = []
        for i, item in enumerate(raw):
            item_path = f"{path}[{i}]"
            if item is None:
                raise SchemaValidationError(item_path, "array item is null")
            result.append(_validate_field(f.items, item, item_path))
    else:
        if not isinstance(raw, dict):
            raise SchemaValidationError(path, f"expected object, got {_type_name(raw)}")
        result = _validate_object(f.fields, raw, prefix=path)

    _check_constraints(f, result, path)
    return result


# ── Type Coercion ────────────────────────────────────────────────────


def _as_string(raw: Any, path: str) -> str:
    if isinstance(raw, str):
        return raw
    raise SchemaValidationError(path, f"expected string, got {_type_name(raw)}")


def _as_number(raw: Any, path: str, integer: bool) -> int | float:
    kind = "integer" if integer else "number"
    if isinstance(raw, bool):
        raise SchemaValidationError(path, f"expected {kind}, got boolean")

    if isinstance(raw, str):
        text = raw.strip()
        try:
            num: int | float = int(text)
        except ValueError:
            try:
                num = float(text)
            except ValueError:
                raise SchemaValidationError(path, f"expected {kind}, got non-numeric string {raw!r}") from None
    elif isinstance(raw, (int, float)):
        num = raw
    else:
        raise SchemaValidationError(path, f"expected {kind}, got {_type_name(raw)}")

    if isinstance(num, float) and not math.isfinite(num):
        raise SchemaValidationError(path, f"expected finite {kind}, got {num}")
    if integer and isinstance(num, float):
        if not num.is_integer():
            raise SchemaValidationError(path, f"expected integer, got {num}")
        num = int(num)
    return num


def _as_boolean(raw: Any, path: str) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        token = raw.strip().lower()
        if token in _TRUE_TOKENS:
            return True
        if token in _FALSE_TOKENS:
            return False
    raise SchemaValidationError(path, f"expected boolean, got {_type_name(raw)} {raw!r}")


def _as_enum(raw: Any, variants: tuple[str, ...], path: str) -> str:
    if isinstance(raw, str):
        token = raw.strip().lower()
        for variant in variants:
            if variant.lower() == token:
                return variant
    allowed = ", ".join(variants)
    raise SchemaValidationError(path, f"{raw!r} is not one of: {allowed}")


# ── Constraints ──────────────────────────────────────────────────────


def _check_constraints(f: FieldSpec, value: Any, path: str) -> None:
    c = f.constraints
    if c is None:
        return

    if c.minimum is not None and value < c.minimum:
        raise SchemaValidationError(path, f"{value} is below minimum {_num(c.minimum)}")
    if c.maximum is not None and value > c.maximum:
        raise SchemaValidationError(path, f"{value} is above maximum {_num(c.maximum)}")

    unit = "items" if f.type == "array" else "characters"
    if c.min_length is not None and len(value) < c.min_length:
        raise SchemaValidationError(path, f"has {len(value)} {unit}, fewer than {c.min_length}")
    if c.max_length is not None and len(value) > c.max_length:
        raise SchemaValidationError(path, f"has {len(value)} {unit}, more than {c.max_length}")

    if c.format == "email" and not _EMAIL_RE.match(value):
        raise SchemaValidationError(path, f"{value!r} is not an email address")


def _num(x: float) -> str:
    return str(int(x)) if float(x).is_integer() else str(x)


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__
