from __future__ import annotations

import time
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

import structlog
from pydantic import BaseModel

from ..config import Settings
from ..llm.client import friendly_error
from ..llm.context import context_for_turn
from ..streaming.demux import StreamDemultiplexer
from ..suggestions.models import PendingState, TurnOutcome
from ..topology.registry import InMemoryTopologyRegistry
from .domain_metrics import TURN_FAILURES
from .metrics import STREAM_DURATION
from .sessions import SessionStore
from .state_types import TurnState

logger = structlog.get_logger("orchestrator.turn")


class InvalidMessageError(ValueError):
    """The user message was rejected before any LLM call."""


class StreamSource(Protocol):
    def stream(
        self,
        messages: List[Dict[str, str]],
        network_context: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[BaseModel]: ...


def validate_message(message: str, max_length: int) -> str:
    text = (message or "").strip()
    if not text:
        raise InvalidMessageError("Message cannot be empty")
    if len(text) > max_length:
        raise InvalidMessageError(f"Message is too long (max {max_length} characters)")
    return text


class ChatTurnService:
    """
    Runs one conversational turn end to end.

    The LLM stream is folded through a StreamDemultiplexer; text deltas are
    yielded as they arrive, and once the stream ends the turn workflow
    resolves the completed tool invocations (or the change proposal in the
    text) into a TurnOutcome whose pending items replace the session's.

    Frames yielded by `run_turn`:
        {"type": "text", "text": ...}        one per text delta
        {"type": "outcome", "outcome": ...}  exactly once, last
    """

    def __init__(
        self,
        *,
        settings: Settings,
        registry: InMemoryTopologyRegistry,
        sessions: SessionStore,
        source: StreamSource,
        workflow: Any,
    ):
        self._settings = settings
        self._registry = registry
        self._sessions = sessions
        self._source = source
        self._workflow = workflow

    async def run_turn(
        self,
        session_id: str,
        message: str,
        *,
        include_network_context: bool = True,
        request_id: Optional[str] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        settings = self._settings
        log = logger.bind(session_id=session_id)
        if request_id:
            log = log.bind(request_id=request_id)

        text = validate_message(message, settings.max_message_length)

        session = await self._sessions.load(session_id)
        if not session.pending.is_empty:
            log.info("pending_state_discarded")
        session.pending = PendingState()
        user_message = session.add_message("user", text)

        snapshot = self._registry.snapshot()
        network_context = None
        if include_network_context:
            network_context = context_for_turn(
                snapshot,
                text,
                settings.context_detail_level,
                settings.large_topology_threshold,
            )

        outbox: List[str] = []
        demux = StreamDemultiplexer(on_text=outbox.append)
        stream_failed = False
        error: Optional[str] = None

        log.info("turn_start", message_length=len(text), context=network_context is not None)
        start = time.perf_counter()
        try:
            async for event in self._source.stream(
                session.llm_history(settings.history_limit),
                network_context,
            ):
                demux.feed(event)
                while outbox:
                    yield {"type": "text", "text": outbox.pop(0)}
        except Exception as exc:
            stream_failed = True
            error = friendly_error(exc)
            TURN_FAILURES.labels(reason=type(exc).__name__).inc()
            log.error("llm_stream_failed", error=str(exc), error_type=type(exc).__name__)
        finally:
            dropped = demux.close()
            STREAM_DURATION.labels(status="error" if stream_failed else "ok").observe(
                time.perf_counter() - start
            )

        state: TurnState = {
            "session_id": session_id,
            "user_input": text,
            "assistant_text": demux.text,
            "tool_invocations": list(demux.invocations),
            "stream_failed": stream_failed,
            "error": error,
            "snapshot": snapshot,
        }
        if request_id:
            state["request_id"] = request_id

        result = await self._workflow.ainvoke(state)
        outcome: TurnOutcome = result["outcome"]

        if outcome.failed:
            # The user retries with the same input; drop it from history.
            session.messages = [m for m in session.messages if m is not user_message]
            outcome.restored_input = message
        elif outcome.text.strip():
            session.add_message("assistant", outcome.text)

        for notice in outcome.notices:
            session.add_message("system", notice.message, level=notice.level)
        if outcome.failed and outcome.error:
            session.add_message("system", f"Error: {outcome.error}", level="error")

        session.pending = outcome.pending_state()
        await self._sessions.save(session)

        log.info(
            "turn_end",
            kind=outcome.kind,
            failed=outcome.failed,
            tool_invocations=len(demux.invocations),
            dropped_blocks=dropped,
            duration_ms=int((time.perf_counter() - start) * 1000),
        )
        yield {"type": "outcome", "outcome": outcome.model_dump(mode="json")}
