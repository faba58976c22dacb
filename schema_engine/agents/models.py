"""Shared data models for extraction strategies and the orchestrator."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field


class StrategyName(str, Enum):
    """Extraction strategies, in default priority order."""

    BOUND_FUNCTION = "bound_function"
    INSTRUCTION_GUIDED = "instruction_guided"
    NATIVE_MODE = "native_mode"


DEFAULT_ORDER = (
    StrategyName.BOUND_FUNCTION,
    StrategyName.INSTRUCTION_GUIDED,
    StrategyName.NATIVE_MODE,
)


def normalize_order(order: Iterable[StrategyName | str]) -> tuple[StrategyName, ...]:
    """Validate a caller-supplied strategy order (non-empty, known, no repeats)."""
    names: list[StrategyName] = []
    for item in order:
        try:
            name = StrategyName(item)
        except ValueError:
            valid = ", ".join(s.value for s in StrategyName)
            raise ValueError(f"Unknown strategy '{item}' (valid: {valid})") from None
        if name in names:
            raise ValueError(f"Strategy '{name.value}' listed more than once")
        names.append(name)
    if not names:
        raise ValueError("At least one extraction strategy is required")
    return tuple(names)


class ExtractionContext(BaseModel):
    """Free-form input for one extraction request plus an optional system instruction."""

    model_config = ConfigDict(frozen=True)

    data: Any
    instruction: Optional[str] = None

    def render(self) -> str:
        """User-message text: strings verbatim, everything else as indented JSON."""
        if isinstance(self.data, str):
            return self.data
        return json.dumps(self.data, indent=2, ensure_ascii=False, default=str)


class ExtractionAttempt(BaseModel):
    """Outcome of a single strategy invocation."""

    strategy: StrategyName
    raw_output: Any = None
    succeeded: bool
    value: Optional[dict] = None
    error_kind: Optional[str] = None
    reason: Optional[str] = None


class ExtractionResult(BaseModel):
    """A schema-conformant value and the strategy that produced it."""

    value: dict
    strategy_used: StrategyName
    schema_hash: str = ""
    raw_output: Any = Field(default=None, exclude=True)
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def error_context(errors: Any, timestamp: Optional[str] = None) -> ExtractionContext:
    """Context for analysing a client-side error report ({errors, timestamp})."""
    payload = {"errors": errors}
    if timestamp:
        payload["timestamp"] = timestamp
    return ExtractionContext(
        data=payload,
        instruction=(
            "You are a front-end error analyst. Read the error report below and "
            "summarise how many errors occurred, how severe they are, the likely "
            "root cause and how to fix it."
        ),
    )
