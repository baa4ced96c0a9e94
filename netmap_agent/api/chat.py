from __future__ import annotations

import json
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..config import Settings
from ..dependencies import (
    get_approval_service,
    get_context_logger,
    get_session_store,
    get_settings_dep,
    get_turn_service,
)
from ..llm.client import GENERIC_ERROR
from ..orchestrator.approval import ApprovalBlockedError, ApprovalService, NothingPendingError
from ..orchestrator.sessions import ChatMessage, SessionStore
from ..orchestrator.turn import ChatTurnService, InvalidMessageError, validate_message
from ..suggestions.models import PendingState, TurnOutcome
from ..topology.registry import RegistryWriteError

router = APIRouter(tags=["chat"], prefix="/chat")


# ---------- Schemas ----------


class ChatTurnRequest(BaseModel):
    session_id: Optional[str] = Field(
        default=None,
        description="Existing session id, or null to start a new session.",
    )
    message: str = Field(..., description="User message for this turn.")
    include_network_context: bool = Field(
        True,
        description="Send the current topology summary along with the message.",
    )


class ChatSessionResponse(BaseModel):
    session_id: str
    messages: List[ChatMessage]
    pending: PendingState


class ApprovalResponse(BaseModel):
    session_id: str
    message: str = Field(..., description="System notice describing what was applied.")


# ---------- Helpers ----------


def _sse(frame: Any) -> str:
    payload = frame if isinstance(frame, str) else json.dumps(frame, ensure_ascii=False)
    return f"data: {payload}\n\n"


async def _resolve_pending(
    session_id: str,
    kind: str,
    action: Callable[[str], Awaitable[str]],
    logger,
) -> ApprovalResponse:
    log = logger.bind(session_id=session_id, kind=kind)
    try:
        message = await action(session_id)
    except NothingPendingError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ApprovalBlockedError as exc:
        log.info("approval_blocked", errors=exc.errors)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "errors": exc.errors},
        ) from exc
    except RegistryWriteError as exc:
        log.warning("registry_write_refused", error=str(exc))
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return ApprovalResponse(session_id=session_id, message=message)


# ---------- Endpoints ----------


@router.post("/turn", status_code=status.HTTP_200_OK)
async def chat_turn(
    payload: ChatTurnRequest,
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    logger=Depends(get_context_logger),
    service: ChatTurnService = Depends(get_turn_service),
) -> StreamingResponse:
    """
    Run one chat turn and stream it back as server-sent events.

    Frames:
      data: {"type": "text", "text": ...}          per text delta
      data: {"type": "outcome", "session_id": ..., "outcome": {...}}
      data: [DONE]

    LLM failures after the stream has started arrive as a failed outcome
    frame, never as a broken response.
    """
    try:
        validate_message(payload.message, settings.max_message_length)
    except InvalidMessageError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    session_id = payload.session_id or uuid4().hex
    request_id = getattr(request.state, "request_id", None)
    log = logger.bind(session_id=session_id, request_id=request_id)
    log.info("chat_turn_received", message_length=len(payload.message))

    async def frames() -> AsyncIterator[str]:
        try:
            async for frame in service.run_turn(
                session_id,
                payload.message,
                include_network_context=payload.include_network_context,
                request_id=request_id,
            ):
                if frame["type"] == "outcome":
                    frame = {**frame, "session_id": session_id}
                yield _sse(frame)
        except Exception as exc:
            log.error("chat_turn_failed", error=str(exc), exc_info=True)
            outcome = TurnOutcome(
                kind="notice",
                failed=True,
                error=GENERIC_ERROR,
                restored_input=payload.message,
            )
            yield _sse(
                {
                    "type": "outcome",
                    "session_id": session_id,
                    "outcome": outcome.model_dump(mode="json"),
                }
            )
        yield _sse("[DONE]")

    return StreamingResponse(
        frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Session-ID": session_id},
    )


@router.get(
    "/sessions/{session_id}",
    response_model=ChatSessionResponse,
    status_code=status.HTTP_200_OK,
)
async def get_chat_session(
    session_id: str,
    sessions: SessionStore = Depends(get_session_store),
    logger=Depends(get_context_logger),
) -> ChatSessionResponse:
    """
    History and pending items for one session. Unknown ids return an empty
    session.
    """
    state = await sessions.load(session_id)
    logger.info("chat_session_requested", session_id=session_id, messages=len(state.messages))
    return ChatSessionResponse(
        session_id=state.session_id,
        messages=state.messages,
        pending=state.pending,
    )


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def clear_chat_session(
    session_id: str,
    sessions: SessionStore = Depends(get_session_store),
    logger=Depends(get_context_logger),
) -> Response:
    """
    Clear a conversation: history and every pending item are dropped.
    Nothing already committed to the topology is touched.
    """
    await sessions.delete(session_id)
    logger.info("chat_session_cleared", session_id=session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sessions/{session_id}/suggestion/approve", response_model=ApprovalResponse)
async def approve_suggestion(
    session_id: str,
    service: ApprovalService = Depends(get_approval_service),
    logger=Depends(get_context_logger),
) -> ApprovalResponse:
    return await _resolve_pending(session_id, "device", service.approve_suggestion, logger)


@router.post("/sessions/{session_id}/suggestion/decline", response_model=ApprovalResponse)
async def decline_suggestion(
    session_id: str,
    service: ApprovalService = Depends(get_approval_service),
    logger=Depends(get_context_logger),
) -> ApprovalResponse:
    return await _resolve_pending(session_id, "device", service.decline_suggestion, logger)


@router.post("/sessions/{session_id}/batch/approve", response_model=ApprovalResponse)
async def approve_batch(
    session_id: str,
    service: ApprovalService = Depends(get_approval_service),
    logger=Depends(get_context_logger),
) -> ApprovalResponse:
    return await _resolve_pending(session_id, "batch", service.approve_batch, logger)


@router.post("/sessions/{session_id}/batch/decline", response_model=ApprovalResponse)
async def decline_batch(
    session_id: str,
    service: ApprovalService = Depends(get_approval_service),
    logger=Depends(get_context_logger),
) -> ApprovalResponse:
    return await _resolve_pending(session_id, "batch", service.decline_batch, logger)


@router.post("/sessions/{session_id}/change/approve", response_model=ApprovalResponse)
async def approve_change(
    session_id: str,
    service: ApprovalService = Depends(get_approval_service),
    logger=Depends(get_context_logger),
) -> ApprovalResponse:
    return await _resolve_pending(session_id, "change", service.approve_change, logger)


@router.post("/sessions/{session_id}/change/decline", response_model=ApprovalResponse)
async def decline_change(
    session_id: str,
    service: ApprovalService = Depends(get_approval_service),
    logger=Depends(get_context_logger),
) -> ApprovalResponse:
    return await _resolve_pending(session_id, "change", service.decline_change, logger)


@router.post("/sessions/{session_id}/connection/approve", response_model=ApprovalResponse)
async def approve_connection(
    session_id: str,
    service: ApprovalService = Depends(get_approval_service),
    logger=Depends(get_context_logger),
) -> ApprovalResponse:
    return await _resolve_pending(session_id, "connection", service.approve_connection, logger)


@router.post("/sessions/{session_id}/connection/decline", response_model=ApprovalResponse)
async def decline_connection(
    session_id: str,
    service: ApprovalService = Depends(get_approval_service),
    logger=Depends(get_context_logger),
) -> ApprovalResponse:
    return await _resolve_pending(session_id, "connection", service.decline_connection, logger)


@router.post("/sessions/{session_id}/vlan/approve", response_model=ApprovalResponse)
async def approve_vlan(
    session_id: str,
    service: ApprovalService = Depends(get_approval_service),
    logger=Depends(get_context_logger),
) -> ApprovalResponse:
    return await _resolve_pending(session_id, "vlan", service.approve_vlan, logger)


@router.post("/sessions/{session_id}/vlan/decline", response_model=ApprovalResponse)
async def decline_vlan(
    session_id: str,
    service: ApprovalService = Depends(get_approval_service),
    logger=Depends(get_context_logger),
) -> ApprovalResponse:
    return await _resolve_pending(session_id, "vlan", service.decline_vlan, logger)
