"""Tests for the three extraction strategies against a scripted backend."""

import json

import pytest

from schema_engine.agents.backend import BackendReply, ToolCall
from schema_engine.agents.binding import build_function_declaration, extract_via_binding
from schema_engine.agents.instructions import (
    build_instruction_messages,
    extract_via_instructions,
    render_format_instructions,
)
from schema_engine.agents.json_mode import extract_via_json_mode
from schema_engine.agents.models import ExtractionContext, StrategyName, error_context
from schema_engine.core.errors import (
    BackendModeFailure,
    CapabilityUnsupportedError,
    ConstraintViolationError,
    SchemaValidationError,
    UnparsableOutputError,
)
from schema_engine.core.schema import load_schema

from conftest import SCHEMA_DIR, FakeBackend, run, tool_reply

CONTEXT = ExtractionContext(
    data={"errors": {"type": "TypeError", "message": "Cannot read property 'map' of undefined"}},
    instruction="Analyse the error report.",
)


# ── Bound-Function ───────────────────────────────────────────────────


def test_function_declaration_mirrors_schema(error_schema):
    decl = build_function_declaration(error_schema)
    assert decl["type"] == "function"
    assert decl["function"]["name"] == "analyze_errors"
    params = decl["function"]["parameters"]
    assert set(params["properties"]) == {"errorCount", "errorLevel"}
    assert params["properties"]["errorLevel"]["enum"] == ["error", "warning", "info"]
    assert params["required"] == ["errorCount", "errorLevel"]


def test_binding_returns_typed_arguments(error_schema):
    args = {"errorCount": 1, "errorLevel": "error"}
    backend = FakeBackend(tool_reply("analyze_errors", args))

    result = run(extract_via_binding(error_schema, CONTEXT, backend))

    assert result.value == args
    assert result.strategy_used == StrategyName.BOUND_FUNCTION
    call = backend.calls[0]
    assert call["tools"][0]["function"]["name"] == "analyze_errors"
    assert call["messages"][0]["content"].startswith("Analyse the error report.")
    assert "TypeError" in call["messages"][1]["content"]


def test_binding_unsupported_fails_fast(error_schema):
    backend = FakeBackend(supports_tools=False)
    with pytest.raises(CapabilityUnsupportedError):
        run(extract_via_binding(error_schema, CONTEXT, backend))
    assert backend.calls == []


def test_binding_constraint_violation(error_schema):
    backend = FakeBackend(tool_reply("analyze_errors", {"errorCount": 1, "errorLevel": "fatal"}))
    with pytest.raises(ConstraintViolationError) as exc_info:
        run(extract_via_binding(error_schema, CONTEXT, backend))
    assert exc_info.value.path == "errorLevel"
    assert exc_info.value.error_code == "constraint_violation"
    assert isinstance(exc_info.value, SchemaValidationError)


def test_binding_no_tool_call(error_schema, caplog):
    backend = FakeBackend("I think there is one error.")
    with caplog.at_level("ERROR"):
        with pytest.raises(BackendModeFailure) as exc_info:
            run(extract_via_binding(error_schema, CONTEXT, backend))
    assert "Tool-call contract violated" in caplog.text
    assert exc_info.value.raw_output == "I think there is one error."


def test_binding_wrong_function_name(error_schema):
    backend = FakeBackend(tool_reply("something_else", {"errorCount": 1, "errorLevel": "error"}))
    with pytest.raises(BackendModeFailure):
        run(extract_via_binding(error_schema, CONTEXT, backend))


def test_binding_string_arguments_parsed(error_schema):
    args = json.dumps({"errorCount": 2, "errorLevel": "info"})
    backend = FakeBackend(tool_reply("analyze_errors", args))
    result = run(extract_via_binding(error_schema, CONTEXT, backend))
    assert result.value == {"errorCount": 2, "errorLevel": "info"}
    assert result.raw_output == args


def test_binding_bad_string_arguments(error_schema, caplog):
    backend = FakeBackend(tool_reply("analyze_errors", "{errorCount: 2"))
    with caplog.at_level("ERROR"):
        with pytest.raises(BackendModeFailure):
            run(extract_via_binding(error_schema, CONTEXT, backend))
    assert "are not JSON" in caplog.text


# ── Instruction-Guided ───────────────────────────────────────────────


def test_format_instructions_deterministic(error_schema):
    assert render_format_instructions(error_schema) == render_format_instructions(error_schema)


def test_format_instructions_list_fields_and_example():
    schema = load_schema(SCHEMA_DIR / "code_review.yaml")
    text = render_format_instructions(schema)
    assert "- **score** (number; required; >= 0; <= 100): Code quality score" in text
    assert "  - **severity** (enum; required; allowed values: critical, major, minor)" in text
    assert '"severity": "critical"' in text
    assert '"line": 0' in text
    assert "```json" in text


def test_format_instructions_empty_schema(empty_schema):
    text = render_format_instructions(empty_schema)
    assert "{}" in text


def test_instruction_messages_put_format_before_context(error_schema):
    messages = build_instruction_messages(error_schema, CONTEXT)
    system, user = messages
    assert system["role"] == "system"
    assert system["content"].startswith("Analyse the error report.")
    assert render_format_instructions(error_schema) in system["content"]
    assert user == {"role": "user", "content": CONTEXT.render()}


def test_instructions_parse_fenced_reply(error_schema):
    backend = FakeBackend('Here you go:\n```json\n{"errorCount": "3", "errorLevel": "Warning"}\n```')
    result = run(extract_via_instructions(error_schema, CONTEXT, backend))
    assert result.value == {"errorCount": 3, "errorLevel": "warning"}
    assert result.raw_output.startswith("Here you go:")
    assert result.strategy_used == StrategyName.INSTRUCTION_GUIDED
    assert backend.calls[0]["tools"] is None
    assert backend.calls[0]["json_mode"] is False


def test_instructions_prose_is_unparsable(error_schema):
    backend = FakeBackend("There is a single TypeError in UserList.jsx.")
    with pytest.raises(UnparsableOutputError):
        run(extract_via_instructions(error_schema, CONTEXT, backend))


def test_instructions_enum_mismatch(error_schema):
    text = 'Sure, here is the JSON: ```json\n{"errorCount":1,"errorLevel":"critical"}\n```'
    backend = FakeBackend(text)
    with pytest.raises(SchemaValidationError) as exc_info:
        run(extract_via_instructions(error_schema, CONTEXT, backend))
    assert exc_info.value.path == "errorLevel"
    assert exc_info.value.raw_output == text


def test_instructions_missing_required_field(error_schema):
    backend = FakeBackend('{"errorCount": 1}')
    with pytest.raises(SchemaValidationError) as exc_info:
        run(extract_via_instructions(error_schema, CONTEXT, backend))
    assert exc_info.value.path == "errorLevel"


# ── Native JSON Mode ─────────────────────────────────────────────────


def test_json_mode_success(error_schema):
    backend = FakeBackend('{"errorCount": 1, "errorLevel": "error"}')
    result = run(extract_via_json_mode(error_schema, CONTEXT, backend))
    assert result.value == {"errorCount": 1, "errorLevel": "error"}
    assert result.strategy_used == StrategyName.NATIVE_MODE
    call = backend.calls[0]
    assert call["json_mode"] is True
    assert '"errorLevel"' in call["messages"][0]["content"]


def test_json_mode_unsupported(error_schema):
    backend = FakeBackend(supports_json_mode=False)
    with pytest.raises(CapabilityUnsupportedError):
        run(extract_via_json_mode(error_schema, CONTEXT, backend))
    assert backend.calls == []


def test_json_mode_invalid_json_is_contract_violation(error_schema, caplog):
    backend = FakeBackend('Sure! ```json\n{"errorCount": 1}\n```')
    with caplog.at_level("ERROR"):
        with pytest.raises(BackendModeFailure) as exc_info:
            run(extract_via_json_mode(error_schema, CONTEXT, backend))
    assert exc_info.value.error_code == "backend_mode_failure"
    assert "JSON-mode contract violated" in caplog.text


def test_json_mode_missing_field(error_schema):
    backend = FakeBackend(BackendReply(content='{"errorLevel": "info"}'))
    with pytest.raises(SchemaValidationError) as exc_info:
        run(extract_via_json_mode(error_schema, CONTEXT, backend))
    assert exc_info.value.path == "errorCount"


def test_json_mode_non_object(error_schema):
    backend = FakeBackend("[1, 2, 3]")
    with pytest.raises(SchemaValidationError) as exc_info:
        run(extract_via_json_mode(error_schema, CONTEXT, backend))
    assert exc_info.value.path == "$"


@pytest.mark.parametrize("strategy", [extract_via_binding, extract_via_instructions, extract_via_json_mode])
def test_empty_schema_every_strategy(empty_schema, strategy):
    replies = {
        extract_via_binding: BackendReply(tool_calls=[ToolCall(name="nothing", arguments={})]),
        extract_via_instructions: "{}",
        extract_via_json_mode: "{}",
    }
    backend = FakeBackend(replies[strategy])
    result = run(strategy(empty_schema, ExtractionContext(data="nothing here"), backend))
    assert result.value == {}


# ── Context Rendering ────────────────────────────────────────────────


def test_context_renders_text_verbatim():
    assert ExtractionContext(data="plain words").render() == "plain words"


def test_context_renders_json_unescaped():
    rendered = ExtractionContext(data={"msg": "错误"}).render()
    assert json.loads(rendered) == {"msg": "错误"}
    assert "错误" in rendered


def test_error_context_payload():
    ctx = error_context({"type": "TypeError"}, "2026-01-01T00:00:00Z")
    assert ctx.data == {"errors": {"type": "TypeError"}, "timestamp": "2026-01-01T00:00:00Z"}
    assert "error analyst" in ctx.instruction
    assert "timestamp" not in error_context([]).data
