"""Error taxonomy for schema-constrained extraction.

Only ``InvalidSchemaError`` and ``AllStrategiesExhaustedError`` reach callers of
``extract``. Every ``StrategyError`` is caught by the orchestrator and folded
into the diagnostic trail. Each class carries a stable ``error_code`` so the
HTTP layer (or any other caller) can map failures without string matching.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class EngineError(Exception):
    """Base class for extraction engine errors."""

    message: str
    error_code: str = "engine_error"

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


# ── Caller Errors ────────────────────────────────────────────────────


class InvalidSchemaError(EngineError):
    def __init__(self, message: str = "Schema definition is invalid", problems: list[str] | None = None) -> None:
        super().__init__(message=message, error_code="invalid_schema")
        self.problems = problems or []


# ── Strategy Failures ────────────────────────────────────────────────


@dataclass(eq=False)
class StrategyError(EngineError):
    """A single strategy could not produce a schema-conformant value."""

    raw_output: Any = None


class CapabilityUnsupportedError(StrategyError):
    def __init__(self, message: str = "Backend lacks the required capability") -> None:
        super().__init__(message=message, error_code="capability_unsupported")


class UnparsableOutputError(StrategyError):
    def __init__(self, message: str = "No parseable JSON found in output", raw_output: Any = None) -> None:
        super().__init__(message=message, error_code="unparsable_output", raw_output=raw_output)


class BackendModeFailure(StrategyError):
    def __init__(self, message: str = "Backend violated its output-mode contract", raw_output: Any = None) -> None:
        super().__init__(message=message, error_code="backend_mode_failure", raw_output=raw_output)


class BackendError(StrategyError):
    def __init__(self, message: str = "Backend call failed") -> None:
        super().__init__(message=message, error_code="backend_error")


class StrategyTimeoutError(StrategyError):
    def __init__(self, message: str = "Backend call timed out") -> None:
        super().__init__(message=message, error_code="timeout")


class SchemaValidationError(StrategyError):
    def __init__(self, path: str, reason: str, raw_output: Any = None) -> None:
        super().__init__(
            message=f"{path}: {reason}",
            error_code="schema_validation",
            raw_output=raw_output,
        )
        self.path = path
        self.reason = reason


class ConstraintViolationError(SchemaValidationError):
    def __init__(self, path: str, reason: str, raw_output: Any = None) -> None:
        super().__init__(path, reason, raw_output=raw_output)
        self.error_code = "constraint_violation"


# ── Terminal Failure ─────────────────────────────────────────────────


@dataclass
class Diagnostic:
    """One entry of the orchestrator's trail: which strategy failed and why."""

    strategy: str
    error_kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.strategy} [{self.error_kind}]: {self.message}"


class AllStrategiesExhaustedError(EngineError):
    def __init__(self, diagnostics: list[Diagnostic]) -> None:
        tried = ", ".join(d.strategy for d in diagnostics) or "none"
        super().__init__(
            message=f"All extraction strategies failed (tried: {tried})",
            error_code="strategies_exhausted",
        )
        self.diagnostics = list(diagnostics)

    def __str__(self) -> str:
        lines = [f"{self.error_code}: {self.message}"]
        lines.extend(f"  - {d}" for d in self.diagnostics)
        return "\n".join(lines)
