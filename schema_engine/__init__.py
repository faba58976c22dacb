"""Schema-constrained extraction from LLM backends with tiered fallback."""

from schema_engine.agents.models import ExtractionContext, ExtractionResult, StrategyName
from schema_engine.agents.orchestrator import FallbackOrchestrator, aextract, extract
from schema_engine.core.errors import AllStrategiesExhaustedError, InvalidSchemaError
from schema_engine.core.schema import FieldSpec, Schema, define_schema, load_schema

__all__ = [
    "AllStrategiesExhaustedError",
    "ExtractionContext",
    "ExtractionResult",
    "FallbackOrchestrator",
    "FieldSpec",
    "InvalidSchemaError",
    "Schema",
    "StrategyName",
    "aextract",
    "define_schema",
    "extract",
    "load_schema",
]
