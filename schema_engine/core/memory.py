"""Bounded per-session conversation memory."""

import logging
import threading
from typing import Literal

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 40


class Turn(BaseModel):
    """One message in a session's history."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str

    def as_message(self) -> dict:
        return {"role": self.role, "content": self.content}


class SessionMemory:
    """Process-wide map of session id -> most recent turns, capped per session.

    Entries are created on first append and trimmed (oldest first) after every
    append. Append and trim happen under one lock so concurrent requests on the
    same session never lose turns.
    """

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS) -> None:
        if max_turns < 1:
            raise ValueError(f"max_turns must be >= 1, got {max_turns}")
        self.max_turns = max_turns
        self._sessions: dict[str, list[Turn]] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> list[Turn]:
        """Snapshot of a session's turns, oldest first; empty if unknown."""
        with self._lock:
            return list(self._sessions.get(session_id, ()))

    def append(self, session_id: str, *turns: Turn) -> list[Turn]:
        """Append turns, trim to the cap, and return the resulting snapshot."""
        with self._lock:
            history = self._sessions.setdefault(session_id, [])
            history.extend(turns)
            dropped = len(history) - self.max_turns
            if dropped > 0:
                del history[:dropped]
                logger.debug("Session %s: evicted %d oldest turns", session_id, dropped)
            return list(history)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)
