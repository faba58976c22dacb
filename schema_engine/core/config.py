"""Engine configuration: pydantic models with YAML loading."""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from schema_engine.agents.models import DEFAULT_ORDER, normalize_order

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "default.yaml"


# ── Backend ──────────────────────────────────────────────────────────


class BackendConfig(BaseModel):
    """Connection and sampling settings for the Ollama backend."""

    model: str = "llama3"
    host: str = "http://localhost:11434"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: float = Field(default=0.9, gt=0.0, le=1.0)
    supports_tools: bool = True
    supports_json_mode: bool = True


# ── Engine ───────────────────────────────────────────────────────────


class EngineConfig(BaseModel):
    """Top-level configuration for extraction and chat."""

    backend: BackendConfig = Field(default_factory=BackendConfig)
    strategy_order: list[str] = Field(default_factory=lambda: [s.value for s in DEFAULT_ORDER])
    strategy_timeout: Optional[float] = Field(
        default=60.0, gt=0, description="Seconds before an in-flight strategy call is cancelled"
    )
    max_history_turns: int = Field(default=40, ge=1, description="20 exchanges = 40 turns")

    @field_validator("strategy_order")
    @classmethod
    def known_strategies(cls, v: list[str]) -> list[str]:
        return [s.value for s in normalize_order(v)]


def load_config(path: str | Path | None = None) -> EngineConfig:
    """Load a YAML engine config; missing keys fall back to defaults."""
    path = Path(path) if path else DEFAULT_CONFIG_PATH
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    return EngineConfig.model_validate(raw)
