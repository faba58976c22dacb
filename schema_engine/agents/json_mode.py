"""Native JSON-mode decoding: the backend guarantees syntax, we check the schema."""

import json
import logging

from schema_engine.agents.backend import Backend
from schema_engine.agents.models import ExtractionContext, ExtractionResult, StrategyName
from schema_engine.core.errors import BackendModeFailure, CapabilityUnsupportedError, SchemaValidationError
from schema_engine.core.schema import Schema
from schema_engine.core.validation import validate_value

logger = logging.getLogger(__name__)


def build_json_mode_messages(schema: Schema, context: ExtractionContext) -> list[dict]:
    schema_json = json.dumps(schema.to_json_schema(), indent=2, ensure_ascii=False)
    system = (
        "You must return valid JSON. The JSON object must match this JSON Schema:\n"
        f"{schema_json}"
    )
    if context.instruction:
        system = f"{context.instruction}\n\n{system}"
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": context.render()},
    ]


async def extract_via_json_mode(
    schema: Schema,
    context: ExtractionContext,
    backend: Backend,
) -> ExtractionResult:
    """Decode with the backend's JSON mode on and validate the result.

    No substring search is attempted: a reply that is not JSON means the
    backend broke its JSON-mode contract.
    """
    if not backend.supports_json_mode:
        raise CapabilityUnsupportedError("Backend does not support native JSON mode")

    reply = await backend.invoke(build_json_mode_messages(schema, context), json_mode=True)
    text = reply.content

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error(
            "JSON-mode contract violated: backend returned non-JSON (%s at char %d)",
            exc.msg,
            exc.pos,
        )
        raise BackendModeFailure(
            f"JSON mode returned invalid JSON: {exc.msg} at char {exc.pos}", raw_output=text
        ) from exc

    try:
        value = validate_value(schema, parsed)
    except SchemaValidationError as exc:
        exc.raw_output = text
        raise

    return ExtractionResult(
        value=value,
        strategy_used=StrategyName.NATIVE_MODE,
        schema_hash=schema.schema_hash(),
        raw_output=text,
    )
