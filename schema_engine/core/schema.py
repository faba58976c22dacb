"""Schema registry: immutable field descriptors, YAML loading, and hashing."""

import hashlib
import json
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from schema_engine.core.errors import InvalidSchemaError

FieldType = Literal["string", "number", "integer", "boolean", "enum", "array", "object"]

NUMERIC_TYPES = ("number", "integer")
SIZED_TYPES = ("string", "array")
FORMATS = ("email",)


# ── Constraints ──────────────────────────────────────────────────────


class Constraints(BaseModel):
    """Value constraints that a field's type alone cannot express."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    minimum: Optional[float] = None
    maximum: Optional[float] = None
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    format: Optional[str] = None

    @model_validator(mode="after")
    def consistent_bounds(self) -> "Constraints":
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise ValueError(f"minimum ({self.minimum}) must be <= maximum ({self.maximum})")
        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise ValueError(
                f"min_length ({self.min_length}) must be <= max_length ({self.max_length})"
            )
        if self.format is not None and self.format not in FORMATS:
            raise ValueError(f"Unknown format '{self.format}' (known: {', '.join(FORMATS)})")
        return self

    def is_empty(self) -> bool:
        return all(v is None for v in self.model_dump().values())


# ── Field Descriptor ─────────────────────────────────────────────────


class FieldSpec(BaseModel):
    """A field: its type, constraints and human description.

    Array ``items`` descriptors may omit ``name``; every field of a schema or
    nested object must carry a unique one.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = ""
    type: FieldType
    description: str = ""
    required: bool = True
    enum_values: Optional[tuple[str, ...]] = None
    items: Optional["FieldSpec"] = None
    fields: Optional[tuple["FieldSpec", ...]] = None
    constraints: Optional[Constraints] = None

    @model_validator(mode="after")
    def consistent_with_type(self) -> "FieldSpec":
        label = self.name or "items"
        if self.type == "enum":
            if not self.enum_values:
                raise ValueError(f"Enum field '{label}' must declare at least one variant")
            lowered = [v.lower() for v in self.enum_values]
            if len(set(lowered)) != len(lowered):
                raise ValueError(f"Enum field '{label}' has duplicate variants")
        elif self.enum_values is not None:
            raise ValueError(f"Field '{label}' declares enum_values but is of type {self.type}")

        if self.type == "array" and self.items is None:
            raise ValueError(f"Array field '{label}' must declare items")
        if self.type != "array" and self.items is not None:
            raise ValueError(f"Field '{label}' declares items but is of type {self.type}")

        if self.type == "object":
            if self.fields is None:
                raise ValueError(f"Object field '{label}' must declare fields")
            _check_unique_names(self.fields, label)
        elif self.fields is not None:
            raise ValueError(f"Field '{label}' declares fields but is of type {self.type}")

        c = self.constraints
        if c is not None:
            if (c.minimum is not None or c.maximum is not None) and self.type not in NUMERIC_TYPES:
                raise ValueError(f"Numeric range on non-numeric field '{label}' ({self.type})")
            if (c.min_length is not None or c.max_length is not None) and self.type not in SIZED_TYPES:
                raise ValueError(f"Length bounds on field '{label}' of type {self.type}")
            if c.format is not None and self.type != "string":
                raise ValueError(f"Format '{c.format}' on non-string field '{label}'")
        return self

    def type_label(self) -> str:
        """Short human-readable type, e.g. ``array of string``."""
        if self.type == "array":
            return f"array of {self.items.type_label()}"
        return self.type


FieldSpec.model_rebuild()


# ── Schema ───────────────────────────────────────────────────────────


class Schema(BaseModel):
    """Ordered, immutable set of fields describing one target shape."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="extract_data", pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    description: str = ""
    fields: tuple[FieldSpec, ...] = ()

    @field_validator("fields")
    @classmethod
    def unique_field_names(cls, v: tuple[FieldSpec, ...]) -> tuple[FieldSpec, ...]:
        _check_unique_names(v, "schema")
        return v

    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def to_json_schema(self) -> dict:
        """Render as a JSON-Schema object (tool parameters / prompt payload)."""
        return _object_json_schema(self.fields, self.description)

    def schema_hash(self) -> str:
        """SHA-256 of the schema (canonical JSON)."""
        return _canonical_hash(self.model_dump())


# ── Public API ───────────────────────────────────────────────────────


def define_schema(
    fields: list[FieldSpec | dict[str, Any]],
    name: str = "extract_data",
    description: str = "",
) -> Schema:
    """Build a validated Schema from field specs or plain mappings.

    Raises InvalidSchemaError listing every problem pydantic reported.
    """
    try:
        return Schema.model_validate(
            {"name": name, "description": description, "fields": list(fields)}
        )
    except ValidationError as exc:
        problems = [_format_problem(err) for err in exc.errors()]
        raise InvalidSchemaError(
            message=f"Invalid schema '{name}': " + "; ".join(problems),
            problems=problems,
        ) from exc


def load_schema(path: str | Path) -> Schema:
    """Load a YAML schema file ``{name, description, fields}`` from disk."""
    path = Path(path)
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise InvalidSchemaError(message=f"{path}: expected a mapping at top level")
    return define_schema(
        raw.get("fields") or [],
        name=raw.get("name", path.stem),
        description=raw.get("description", ""),
    )


# ── Helpers ──────────────────────────────────────────────────────────


def _check_unique_names(fields: tuple[FieldSpec, ...], owner: str) -> None:
    seen: set[str] = set()
    for f in fields:
        if not f.name:
            raise ValueError(f"Every field in {owner} needs a name")
        if f.name in seen:
            raise ValueError(f"Duplicate field name '{f.name}' in {owner}")
        seen.add(f.name)


def _format_problem(err: dict) -> str:
    loc = ".".join(str(p) for p in err.get("loc", ()))
    msg = err.get("msg", "invalid")
    return f"{loc}: {msg}" if loc else msg


def _field_json_schema(f: FieldSpec) -> dict:
    if f.type == "enum":
        out: dict[str, Any] = {"type": "string", "enum": list(f.enum_values)}
    elif f.type == "array":
        out = {"type": "array", "items": _field_json_schema(f.items)}
    elif f.type == "object":
        out = _object_json_schema(f.fields, "")
    else:
        out = {"type": f.type}

    if f.description:
        out["description"] = f.description

    c = f.constraints
    if c is not None:
        if c.minimum is not None:
            out["minimum"] = c.minimum
        if c.maximum is not None:
            out["maximum"] = c.maximum
        if c.min_length is not None:
            out["minItems" if f.type == "array" else "minLength"] = c.min_length
        if c.max_length is not None:
            out["maxItems" if f.type == "array" else "maxLength"] = c.max_length
        if c.format is not None:
            out["format"] = c.format
    return out


def _object_json_schema(fields: tuple[FieldSpec, ...], description: str) -> dict:
    out: dict[str, Any] = {
        "type": "object",
        "properties": {f.name: _field_json_schema(f) for f in fields},
        "required": [f.name for f in fields if f.required],
    }
    if description:
        out["description"] = description
    return out


def _canonical_hash(data: dict) -> str:
    """Deterministic SHA-256 hash of a dict via sorted-key JSON."""
    blob = json.dumps(data, sort_keys=True, default=str).encode()
    return hashlib.sha256(blob).hexdigest()
