"""Bound-function extraction: ask the backend to call a tool shaped like the schema."""

import json
import logging

from schema_engine.agents.backend import Backend, ToolCall
from schema_engine.agents.models import ExtractionContext, ExtractionResult, StrategyName
from schema_engine.core.errors import (
    BackendModeFailure,
    CapabilityUnsupportedError,
    ConstraintViolationError,
    SchemaValidationError,
)
from schema_engine.core.schema import Schema
from schema_engine.core.validation import validate_value

logger = logging.getLogger(__name__)

_DEFAULT_INSTRUCTION = (
    "You are an information extraction assistant. Extract the requested "
    "information from the user's message and return it by calling the "
    "provided function."
)


# ── Function Declaration ─────────────────────────────────────────────


def build_function_declaration(schema: Schema) -> dict:
    """Tool declaration whose parameters mirror the schema's fields."""
    return {
        "type": "function",
        "function": {
            "name": schema.name,
            "description": schema.description or f"Record the extracted {schema.name} data.",
            "parameters": schema.to_json_schema(),
        },
    }


def build_binding_messages(schema: Schema, context: ExtractionContext) -> list[dict]:
    system = context.instruction or _DEFAULT_INSTRUCTION
    system += f"\nCall the function `{schema.name}` exactly once."
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": context.render()},
    ]


# ── Strategy ─────────────────────────────────────────────────────────


async def extract_via_binding(
    schema: Schema,
    context: ExtractionContext,
    backend: Backend,
) -> ExtractionResult:
    """Extract via native tool calling; constraints are re-checked locally."""
    if not backend.supports_tools:
        raise CapabilityUnsupportedError("Backend does not support function/tool binding")

    reply = await backend.invoke(
        build_binding_messages(schema, context),
        tools=[build_function_declaration(schema)],
    )

    call = _select_call(reply.tool_calls, schema.name)
    if call is None:
        names = [c.name for c in reply.tool_calls]
        logger.error(
            "Tool-call contract violated: expected '%s', got %s",
            schema.name,
            names or "no tool calls",
        )
        raise BackendModeFailure(
            f"Expected a call to '{schema.name}', got {names or 'no tool calls'}",
            raw_output=reply.content,
        )

    arguments = call.arguments
    if isinstance(arguments, str):
        # Some models send the arguments as a JSON string
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError as exc:
            logger.error(
                "Tool-call contract violated: arguments for '%s' are not JSON (%s)",
                schema.name,
                exc.msg,
            )
            raise BackendModeFailure(
                f"Tool arguments are not valid JSON: {exc.msg}", raw_output=call.arguments
            ) from exc

    try:
        value = validate_value(schema, arguments)
    except SchemaValidationError as exc:
        raise ConstraintViolationError(exc.path, exc.reason, raw_output=arguments) from exc

    return ExtractionResult(
        value=value,
        strategy_used=StrategyName.BOUND_FUNCTION,
        schema_hash=schema.schema_hash(),
        raw_output=call.arguments,
    )


def _select_call(calls: list[ToolCall], name: str) -> ToolCall | None:
    for call in calls:
        if call.name == name:
            return call
    return None
