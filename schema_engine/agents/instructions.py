"""Instruction-guided parsing: describe the schema in the prompt, parse the free text."""

import json
import logging
from typing import Any

from schema_engine.agents.backend import Backend
from schema_engine.agents.models import ExtractionContext, ExtractionResult, StrategyName
from schema_engine.agents.parsing import parse_json_text
from schema_engine.core.errors import SchemaValidationError
from schema_engine.core.schema import FieldSpec, Schema
from schema_engine.core.validation import validate_value

logger = logging.getLogger(__name__)

_EXAMPLE_STRING = "text"
_EXAMPLE_EMAIL = "user@example.com"


# ── Format Instructions ──────────────────────────────────────────────


def render_format_instructions(schema: Schema) -> str:
    """Human-readable output contract for the schema; deterministic for a given schema."""
    lines = [
        "Respond with a single JSON object and nothing else. You may wrap it "
        "in a ```json code fence. The object must have these fields:",
        "",
    ]
    if schema.fields:
        lines.extend(_field_lines(schema.fields, indent=""))
    else:
        lines.append("(no fields: respond with an empty object {})")

    example = json.dumps(_example_object(schema.fields), indent=2, ensure_ascii=False)
    lines += [
        "",
        "Example of the expected shape (values are placeholders):",
        "```json",
        example,
        "```",
        "",
        "Use exactly these field names. Do not add other fields. Omit optional "
        "fields you cannot determine; never invent values for required ones.",
    ]
    return "\n".join(lines)


def _field_lines(fields: tuple[FieldSpec, ...], indent: str) -> list[str]:
    lines: list[str] = []
    for f in fields:
        notes = [f.type_label(), "required" if f.required else "optional"]
        enum_values = f.enum_values or (f.items.enum_values if f.items is not None else None)
        if enum_values:
            notes.append(f"allowed values: {', '.join(enum_values)}")
        notes.extend(_constraint_notes(f))

        line = f"{indent}- **{f.name}** ({'; '.join(notes)})"
        if f.description:
            line += f": {f.description}"
        lines.append(line)

        nested = f.fields if f.type == "object" else None
        if f.type == "array" and f.items.type == "object":
            nested = f.items.fields
        if nested:
            lines.extend(_field_lines(nested, indent + "  "))
    return lines


def _constraint_notes(f: FieldSpec) -> list[str]:
    c = f.constraints
    if c is None:
        return []
    notes = []
    if c.minimum is not None:
        notes.append(f">= {c.minimum:g}")
    if c.maximum is not None:
        notes.append(f"<= {c.maximum:g}")
    unit = "items" if f.type == "array" else "characters"
    if c.min_length is not None:
        notes.append(f"at least {c.min_length} {unit}")
    if c.max_length is not None:
        notes.append(f"at most {c.max_length} {unit}")
    if c.format:
        notes.append(f"format: {c.format}")
    return notes


def _example_object(fields: tuple[FieldSpec, ...]) -> dict:
    return {f.name: _example_value(f) for f in fields}


def _example_value(f: FieldSpec) -> Any:
    c = f.constraints
    if f.type == "string":
        return _EXAMPLE_EMAIL if c is not None and c.format == "email" else _EXAMPLE_STRING
    if f.type in ("number", "integer"):
        base = c.minimum if c is not None and c.minimum is not None else 0
        return int(base) if f.type == "integer" else base
    if f.type == "boolean":
        return True
    if f.type == "enum":
        return f.enum_values[0]
    if f.type == "array":
        return [_example_value(f.items)]
    return _example_object(f.fields)


def build_instruction_messages(schema: Schema, context: ExtractionContext) -> list[dict]:
    system = render_format_instructions(schema)
    if context.instruction:
        system = f"{context.instruction}\n\n{system}"
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": context.render()},
    ]


# ── Strategy ─────────────────────────────────────────────────────────


async def extract_via_instructions(
    schema: Schema,
    context: ExtractionContext,
    backend: Backend,
) -> ExtractionResult:
    """Plain completion, then locate, parse and validate JSON in the reply."""
    reply = await backend.invoke(build_instruction_messages(schema, context))
    text = reply.content

    parsed = parse_json_text(text)
    logger.debug("Parsed %d keys from a %d-character reply", len(parsed), len(text))
    try:
        value = validate_value(schema, parsed)
    except SchemaValidationError as exc:
        exc.raw_output = text
        raise

    return ExtractionResult(
        value=value,
        strategy_used=StrategyName.INSTRUCTION_GUIDED,
        schema_hash=schema.schema_hash(),
        raw_output=text,
    )
