from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Protocol

import structlog
from pydantic import BaseModel, Field, ValidationError

from ..cache.redis_client import RedisCache
from ..suggestions.models import PendingState

logger = structlog.get_logger("orchestrator.sessions")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str
    created_at: datetime = Field(default_factory=_utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SessionState(BaseModel):
    """Chat history plus whatever is awaiting a decision, for one session."""

    session_id: str
    messages: List[ChatMessage] = Field(default_factory=list)
    pending: PendingState = Field(default_factory=PendingState)
    updated_at: datetime = Field(default_factory=_utcnow)

    def add_message(self, role: str, content: str, **metadata: Any) -> ChatMessage:
        message = ChatMessage(role=role, content=content, metadata=metadata)
        self.messages.append(message)
        return message

    def llm_history(self, limit: int) -> List[Dict[str, str]]:
        """
        The last `limit` user/assistant messages in Messages API shape.

        System notices stay in the transcript but are not replayed. The
        history never starts with an assistant turn.
        """
        turns = [
            {"role": m.role, "content": m.content}
            for m in self.messages
            if m.role in ("user", "assistant") and m.content.strip()
        ]
        if limit > 0:
            turns = turns[-limit:]
        while turns and turns[0]["role"] != "user":
            turns.pop(0)
        return turns


class SessionStore(Protocol):
    async def load(self, session_id: str) -> SessionState: ...

    async def save(self, state: SessionState) -> None: ...

    async def delete(self, session_id: str) -> None: ...


class InMemorySessionStore:
    """Process-local session store. State is lost on restart."""

    def __init__(self) -> None:
        self._sessions: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def load(self, session_id: str) -> SessionState:
        async with self._lock:
            raw = self._sessions.get(session_id)
        if raw is None:
            return SessionState(session_id=session_id)
        return SessionState.model_validate_json(raw)

    async def save(self, state: SessionState) -> None:
        state.updated_at = _utcnow()
        async with self._lock:
            self._sessions[state.session_id] = state.model_dump_json()

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            self._sessions.pop(session_id, None)


class RedisSessionStore:
    """
    Session store backed by Redis JSON values under `session:<id>` keys.

    Every save refreshes the TTL; an expired or unreadable session loads as
    a fresh one.
    """

    def __init__(self, cache: RedisCache, *, ttl_seconds: Optional[int] = None):
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    @staticmethod
    def _key(session_id: str) -> str:
        return f"session:{session_id}"

    async def load(self, session_id: str) -> SessionState:
        data = await self._cache.get_json(self._key(session_id))
        if data is None:
            return SessionState(session_id=session_id)
        try:
            return SessionState.model_validate(data)
        except ValidationError as exc:
            logger.warning("session_state_invalid", session_id=session_id, error=str(exc))
            return SessionState(session_id=session_id)

    async def save(self, state: SessionState) -> None:
        state.updated_at = _utcnow()
        await self._cache.set_json(
            self._key(state.session_id),
            state,
            ttl_seconds=self._ttl_seconds,
            encoder=lambda value: value.model_dump_json(),
        )

    async def delete(self, session_id: str) -> None:
        await self._cache.delete(self._key(session_id))
