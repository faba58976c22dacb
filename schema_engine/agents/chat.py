"""Multi-turn chat with bounded per-session memory."""

import logging
from typing import Optional

from pydantic import BaseModel

from schema_engine.agents.backend import Backend
from schema_engine.core.memory import SessionMemory, Turn

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"


class ChatReply(BaseModel):
    """Assistant answer for one chat turn."""

    session_id: str
    prompt: str
    response: str
    history_length: int


async def chat(
    backend: Backend,
    memory: SessionMemory,
    prompt: str,
    session_id: str = DEFAULT_SESSION,
    system_prompt: Optional[str] = None,
) -> ChatReply:
    """Answer ``prompt`` in the context of the session's prior turns.

    The user and assistant turns are stored only after the backend answers,
    so a failed call leaves the session unchanged.
    """
    if not prompt or not prompt.strip():
        raise ValueError("prompt must be a non-empty string")

    messages: list[dict] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.extend(turn.as_message() for turn in memory.get(session_id))
    messages.append({"role": "user", "content": prompt})

    reply = await backend.invoke(messages)

    history = memory.append(
        session_id,
        Turn(role="user", content=prompt),
        Turn(role="assistant", content=reply.content),
    )
    logger.info("Session %s: %d turns in memory", session_id, len(history))
    return ChatReply(
        session_id=session_id,
        prompt=prompt,
        response=reply.content,
        history_length=len(history),
    )
