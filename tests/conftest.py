"""Shared fixtures: a scripted backend double and common schemas."""

import asyncio
from pathlib import Path

import pytest

from schema_engine.agents.backend import BackendReply, ToolCall
from schema_engine.core.schema import define_schema

SCHEMA_DIR = Path(__file__).resolve().parent.parent / "schemas"


def pytest_addoption(parser):
    parser.addoption("--run-ollama", action="store_true", help="run tests against a local Ollama")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-ollama"):
        return
    skip = pytest.mark.skip(reason="needs --run-ollama and a local Ollama server")
    for item in items:
        if "ollama" in item.keywords:
            item.add_marker(skip)


# ── Backend Double ───────────────────────────────────────────────────


class Hang:
    """Scripted reply that never arrives (until cancelled)."""


class FakeBackend:
    """Returns scripted replies in order and records every call.

    A reply may be a string (plain content), a BackendReply, an exception to
    raise, or ``Hang()`` to block until cancelled.
    """

    def __init__(self, *replies, supports_tools=True, supports_json_mode=True):
        self.replies = list(replies)
        self.calls: list[dict] = []
        self.cancelled = 0
        self.supports_tools = supports_tools
        self.supports_json_mode = supports_json_mode

    async def invoke(self, messages, *, tools=None, json_mode=False):
        self.calls.append({"messages": messages, "tools": tools, "json_mode": json_mode})
        reply = self.replies.pop(0)
        if isinstance(reply, Hang):
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                self.cancelled += 1
                raise
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return BackendReply(content=reply)
        return reply


def tool_reply(name, arguments):
    return BackendReply(tool_calls=[ToolCall(name=name, arguments=arguments)])


def run(coro):
    return asyncio.run(coro)


# ── Schemas ──────────────────────────────────────────────────────────


@pytest.fixture()
def error_schema():
    return define_schema(
        [
            {"name": "errorCount", "type": "number", "description": "Number of errors"},
            {
                "name": "errorLevel",
                "type": "enum",
                "enum_values": ["error", "warning", "info"],
                "description": "Severity",
            },
        ],
        name="analyze_errors",
    )


@pytest.fixture()
def empty_schema():
    return define_schema([], name="nothing")
