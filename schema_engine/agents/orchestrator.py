"""Fallback orchestrator: run strategies in priority order until one succeeds."""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional

from schema_engine.agents.backend import Backend, OllamaBackend
from schema_engine.agents.binding import extract_via_binding
from schema_engine.agents.instructions import extract_via_instructions
from schema_engine.agents.json_mode import extract_via_json_mode
from schema_engine.agents.models import (
    DEFAULT_ORDER,
    ExtractionAttempt,
    ExtractionContext,
    ExtractionResult,
    StrategyName,
    normalize_order,
)
from schema_engine.core.config import EngineConfig
from schema_engine.core.errors import (
    AllStrategiesExhaustedError,
    Diagnostic,
    StrategyError,
    StrategyTimeoutError,
)
from schema_engine.core.schema import FieldSpec, Schema, define_schema

logger = logging.getLogger(__name__)

StrategyFn = Callable[[Schema, ExtractionContext, Backend], Awaitable[ExtractionResult]]

STRATEGIES: dict[StrategyName, StrategyFn] = {
    StrategyName.BOUND_FUNCTION: extract_via_binding,
    StrategyName.INSTRUCTION_GUIDED: extract_via_instructions,
    StrategyName.NATIVE_MODE: extract_via_json_mode,
}


# ── Run State ────────────────────────────────────────────────────────


class OrchestratorState(str, Enum):
    PENDING = "pending"
    TRYING = "trying"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


class ExtractionRun:
    """Per-request state: Pending -> Trying(i) -> Succeeded | Exhausted."""

    def __init__(self, order: tuple[StrategyName, ...]) -> None:
        self.order = order
        self.state = OrchestratorState.PENDING
        self.index = -1
        self.attempts: list[ExtractionAttempt] = []
        self.diagnostics: list[Diagnostic] = []

    def advance(self) -> Optional[StrategyName]:
        """Move to the next strategy, or to EXHAUSTED when none remain."""
        if self.state in (OrchestratorState.SUCCEEDED, OrchestratorState.EXHAUSTED):
            raise RuntimeError(f"Cannot advance a run in state {self.state.value}")
        self.index += 1
        if self.index >= len(self.order):
            self.state = OrchestratorState.EXHAUSTED
            return None
        self.state = OrchestratorState.TRYING
        return self.order[self.index]

    def succeed(self, strategy: StrategyName, result: ExtractionResult) -> None:
        self.state = OrchestratorState.SUCCEEDED
        self.attempts.append(
            ExtractionAttempt(strategy=strategy, raw_output=result.raw_output, succeeded=True, value=result.value)
        )

    def fail(self, strategy: StrategyName, exc: StrategyError) -> None:
        self.attempts.append(
            ExtractionAttempt(
                strategy=strategy,
                raw_output=exc.raw_output,
                succeeded=False,
                error_kind=exc.error_code,
                reason=exc.message,
            )
        )
        self.diagnostics.append(
            Diagnostic(strategy=strategy.value, error_kind=exc.error_code, message=exc.message)
        )


# ── Orchestrator ─────────────────────────────────────────────────────


class FallbackOrchestrator:
    """Tries each configured strategy once, sequentially, and returns the first success."""

    def __init__(
        self,
        backend: Backend,
        strategy_order: Iterable[StrategyName | str] | None = None,
        strategy_timeout: float | None = None,
    ) -> None:
        self.backend = backend
        self.strategy_order = normalize_order(strategy_order if strategy_order is not None else DEFAULT_ORDER)
        self.strategy_timeout = strategy_timeout

    async def run(self, schema: Schema, context: ExtractionContext) -> ExtractionResult:
        run = ExtractionRun(self.strategy_order)
        schema_hash = schema.schema_hash()
        logger.info(
            "Extracting '%s' (schema hash: %s) with strategies: %s",
            schema.name,
            schema_hash[:12],
            ", ".join(s.value for s in self.strategy_order),
        )

        while True:
            strategy = run.advance()
            if strategy is None:
                break
            logger.info("Trying strategy %d/%d: %s", run.index + 1, len(run.order), strategy.value)
            try:
                result = await self._attempt(strategy, schema, context)
            except StrategyError as exc:
                run.fail(strategy, exc)
                logger.warning("Strategy %s failed [%s]: %s", strategy.value, exc.error_code, exc.message)
                continue

            run.succeed(strategy, result)
            logger.info("Strategy %s succeeded for '%s'", strategy.value, schema.name)
            return result

        logger.info(
            "All %d strategies failed for '%s': %s",
            len(run.diagnostics),
            schema.name,
            "; ".join(str(d) for d in run.diagnostics),
        )
        raise AllStrategiesExhaustedError(run.diagnostics)

    async def _attempt(
        self, strategy: StrategyName, schema: Schema, context: ExtractionContext
    ) -> ExtractionResult:
        call = STRATEGIES[strategy](schema, context, self.backend)
        if self.strategy_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.strategy_timeout)
        except asyncio.TimeoutError as exc:
            raise StrategyTimeoutError(
                f"No reply within {self.strategy_timeout:g}s; call cancelled"
            ) from exc


# ── Public API ───────────────────────────────────────────────────────


async def aextract(
    schema: Schema | list[FieldSpec | dict],
    context: ExtractionContext | Any,
    strategy_order: Iterable[StrategyName | str] | None = None,
    *,
    backend: Backend | None = None,
    config: EngineConfig | None = None,
) -> ExtractionResult:
    """Extract schema-conformant data from ``context``.

    Raises InvalidSchemaError (before any backend call) or
    AllStrategiesExhaustedError; strategy failures never escape.
    """
    config = config or EngineConfig()
    if not isinstance(schema, Schema):
        schema = define_schema(schema)
    if not isinstance(context, ExtractionContext):
        context = ExtractionContext(data=context)

    orchestrator = FallbackOrchestrator(
        backend or OllamaBackend(config.backend),
        strategy_order=strategy_order if strategy_order is not None else config.strategy_order,
        strategy_timeout=config.strategy_timeout,
    )
    return await orchestrator.run(schema, context)


def extract(
    schema: Schema | list[FieldSpec | dict],
    context: ExtractionContext | Any,
    strategy_order: Iterable[StrategyName | str] | None = None,
    *,
    backend: Backend | None = None,
    config: EngineConfig | None = None,
) -> ExtractionResult:
    """Blocking wrapper around ``aextract`` for callers without an event loop."""
    return asyncio.run(
        aextract(schema, context, strategy_order, backend=backend, config=config)
    )
