#!/usr/bin/env python3
"""Command-line runner: structured extraction, session chat, and backend check."""

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from schema_engine.agents.backend import OllamaBackend
from schema_engine.agents.chat import DEFAULT_SESSION, chat
from schema_engine.agents.models import ExtractionContext, StrategyName, error_context
from schema_engine.agents.orchestrator import FallbackOrchestrator
from schema_engine.core.config import EngineConfig, load_config
from schema_engine.core.errors import AllStrategiesExhaustedError, EngineError
from schema_engine.core.memory import SessionMemory
from schema_engine.core.schema import load_schema

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("extraction")

SCHEMA_DIR = PROJECT_ROOT / "schemas"


# ── Commands ─────────────────────────────────────────────────────────


def cmd_extract(args: argparse.Namespace, config: EngineConfig) -> int:
    schema_path = Path(args.schema)
    if not schema_path.exists():
        schema_path = SCHEMA_DIR / f"{args.schema}.yaml"
    try:
        schema = load_schema(schema_path)
        raw = Path(args.input).read_text() if args.input else sys.stdin.read()
    except (OSError, EngineError) as exc:
        logger.error("Cannot start extraction: %s", exc)
        return 1

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        data = raw

    if args.errors and isinstance(data, dict):
        context = error_context(data.get("errors", data), data.get("timestamp"))
    elif args.errors:
        context = error_context(data)
    else:
        context = ExtractionContext(data=data, instruction=args.instruction)

    orchestrator = FallbackOrchestrator(
        OllamaBackend(config.backend),
        strategy_order=args.strategies or config.strategy_order,
        strategy_timeout=config.strategy_timeout,
    )

    t = time.time()
    try:
        result = asyncio.run(orchestrator.run(schema, context))
    except AllStrategiesExhaustedError as exc:
        logger.error("%s", exc)
        print(json.dumps({
            "message": "extraction failed",
            "error": exc.error_code,
            "attempts": [vars(d) for d in exc.diagnostics],
        }, indent=2, ensure_ascii=False))
        return 1

    logger.info("Extraction finished in %.1fs", time.time() - t)
    print(json.dumps({
        "message": "success",
        "method": result.strategy_used.value,
        "analysis": result.value,
    }, indent=2, ensure_ascii=False))
    return 0


def cmd_chat(args: argparse.Namespace, config: EngineConfig) -> int:
    backend = OllamaBackend(config.backend)
    memory = SessionMemory(config.max_history_turns)

    async def loop() -> None:
        print(f"Chatting with {config.backend.model} (session '{args.session}'). Empty line to quit.")
        while True:
            prompt = (await asyncio.to_thread(input, "> ")).strip()
            if not prompt:
                return
            try:
                reply = await chat(backend, memory, prompt, args.session, args.system)
            except EngineError as exc:
                logger.error("Chat turn failed: %s", exc)
                continue
            print(reply.response)

    asyncio.run(loop())
    return 0


def cmd_check(args: argparse.Namespace, config: EngineConfig) -> int:
    backend = OllamaBackend(config.backend)
    try:
        answer = asyncio.run(backend.ping())
    except EngineError as exc:
        logger.error("Ollama connection failed: %s", exc)
        logger.error(
            "Make sure Ollama is running at %s and model %s is pulled",
            config.backend.host,
            config.backend.model,
        )
        return 1
    print(json.dumps({"message": "Ollama connection ok", "model": config.backend.model,
                      "response": answer}, indent=2, ensure_ascii=False))
    return 0


# ── CLI ──────────────────────────────────────────────────────────────


def main() -> None:
    parser = argparse.ArgumentParser(description="Schema-constrained extraction with fallback")
    parser.add_argument("--config", help="YAML engine config (default: config/default.yaml)")
    parser.add_argument("--model", help="Override backend model name")
    sub = parser.add_subparsers(dest="command", required=True)

    p_extract = sub.add_parser("extract", help="Extract structured data from text or JSON")
    p_extract.add_argument("schema", help="Schema YAML path or bundled schema name (e.g. error_analysis)")
    p_extract.add_argument("--input", help="Input file (default: stdin)")
    p_extract.add_argument("--instruction", help="Optional system instruction")
    p_extract.add_argument(
        "--strategies",
        nargs="+",
        choices=[s.value for s in StrategyName],
        help="Strategies to try, in order",
    )
    p_extract.add_argument("--errors", action="store_true",
                           help="Treat input as an error report {errors, timestamp}")

    p_chat = sub.add_parser("chat", help="Interactive chat with session memory")
    p_chat.add_argument("--session", default=DEFAULT_SESSION)
    p_chat.add_argument("--system", help="Optional system prompt")

    sub.add_parser("check", help="Check the Ollama connection")

    args = parser.parse_args()
    config = load_config(args.config)
    if args.model:
        config.backend.model = args.model

    handlers = {"extract": cmd_extract, "chat": cmd_chat, "check": cmd_check}
    sys.exit(handlers[args.command](args, config))


if __name__ == "__main__":
    main()
