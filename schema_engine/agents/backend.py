"""Text-generation backend protocol and its Ollama implementation."""

import logging
from typing import Any, Optional, Protocol

import httpx
import ollama
from pydantic import BaseModel, Field

from schema_engine.core.config import BackendConfig
from schema_engine.core.errors import BackendError, CapabilityUnsupportedError

logger = logging.getLogger(__name__)


# ── Reply Models ─────────────────────────────────────────────────────


class ToolCall(BaseModel):
    """A function the backend chose to call, with its arguments."""

    name: str
    arguments: dict | str = Field(default_factory=dict)


class BackendReply(BaseModel):
    """Raw backend output: free text and/or tool calls."""

    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)


# ── Protocol ─────────────────────────────────────────────────────────


class Backend(Protocol):
    """What the extraction core needs from a text generator."""

    supports_tools: bool
    supports_json_mode: bool

    async def invoke(
        self,
        messages: list[dict],
        *,
        tools: Optional[list[dict]] = None,
        json_mode: bool = False,
    ) -> BackendReply:
        """Generate a reply; may suspend and must be cancellable."""
        ...


# ── Ollama ───────────────────────────────────────────────────────────


class OllamaBackend:
    """Backend over a local Ollama server (``ollama.AsyncClient``)."""

    def __init__(self, config: BackendConfig | None = None, client: Any = None) -> None:
        self.config = config or BackendConfig()
        self.client = client or ollama.AsyncClient(host=self.config.host)
        self.supports_tools = self.config.supports_tools
        self.supports_json_mode = self.config.supports_json_mode

    async def invoke(
        self,
        messages: list[dict],
        *,
        tools: Optional[list[dict]] = None,
        json_mode: bool = False,
    ) -> BackendReply:
        if tools and not self.supports_tools:
            raise CapabilityUnsupportedError(f"Model {self.config.model} is configured without tool support")
        if json_mode and not self.supports_json_mode:
            raise CapabilityUnsupportedError(f"Model {self.config.model} is configured without JSON mode")

        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "options": {"temperature": self.config.temperature, "top_p": self.config.top_p},
        }
        if tools:
            kwargs["tools"] = tools
        if json_mode:
            kwargs["format"] = "json"

        try:
            response = await self.client.chat(**kwargs)
        except ollama.ResponseError as exc:
            if "does not support tools" in str(exc.error):
                raise CapabilityUnsupportedError(f"{self.config.model}: {exc.error}") from exc
            raise BackendError(f"Ollama returned {exc.status_code}: {exc.error}") from exc
        except (httpx.HTTPError, ConnectionError) as exc:
            raise BackendError(f"Could not reach Ollama at {self.config.host}: {exc}") from exc

        message = response.message
        calls = [
            ToolCall(name=tc.function.name, arguments=_plain(tc.function.arguments))
            for tc in (message.tool_calls or [])
        ]
        return BackendReply(content=message.content or "", tool_calls=calls)

    async def ping(self) -> str:
        """Send a single greeting and return the model's answer."""
        reply = await self.invoke([{"role": "user", "content": "hello"}])
        logger.info("Ollama at %s answered with model %s", self.config.host, self.config.model)
        return reply.content


def _plain(arguments: Any) -> dict | str:
    if isinstance(arguments, str):
        return arguments
    return dict(arguments or {})
