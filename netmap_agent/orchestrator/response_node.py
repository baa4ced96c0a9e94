from __future__ import annotations

import time
import uuid
from typing import List, Optional

import structlog

from ..suggestions.models import Notice, PendingBatch, TurnOutcome
from ..suggestions.resolution import TurnResolution
from .domain_metrics import SUGGESTIONS_SURFACED, TURN_FAILURES
from .metrics import NODE_INVOCATIONS, NODE_LATENCY
from .state_types import TurnState

logger = structlog.get_logger("orchestrator.response")

EMPTY_RESPONSE_ERROR = "Received empty response from AI. Please try again."


def _batch_message(text: str, count: int) -> str:
    return text.strip() or f"I detected {count} devices. Review them below."


async def response_node(state: TurnState) -> TurnState:
    """
    Final node that assembles the TurnOutcome.

    Exactly one approval surface is chosen: one device suggestion, a batch
    of them, or a change proposal. Connection/VLAN suggestions and the
    security report ride along. An empty response with no tool activity
    fails the turn.
    """
    node_name = "response"
    log = logger.bind(node=node_name)
    if "request_id" in state:
        log = log.bind(request_id=state["request_id"])

    start = time.perf_counter()

    try:
        log.info("node_start")

        resolution: TurnResolution = state.get("resolution") or TurnResolution()
        notices: List[Notice] = [*state.get("notices", []), *resolution.notices]
        text: str = state.get("assistant_text", "")
        change = state.get("change_proposal")

        failed = bool(state.get("stream_failed"))
        error: Optional[str] = state.get("error")
        if not failed and not text.strip() and not state.get("tool_invocations"):
            failed = True
            error = EMPTY_RESPONSE_ERROR
            TURN_FAILURES.labels(reason="empty_response").inc()

        suggestions = resolution.device_suggestions
        outcome = TurnOutcome(
            kind="notice",
            text=text,
            connection_suggestion=resolution.connection_suggestion,
            vlan_suggestion=resolution.vlan_suggestion,
            security_report=resolution.security_report,
            import_requested=resolution.import_requested,
            notices=notices,
            failed=failed,
            error=error,
        )

        if len(suggestions) == 1:
            outcome.kind = "single_suggestion"
            outcome.suggestion = suggestions[0]
        elif len(suggestions) > 1:
            outcome.kind = "batch"
            outcome.batch = PendingBatch(
                id=f"batch-{uuid.uuid4().hex[:12]}",
                suggestions=suggestions,
                message_text=_batch_message(text, len(suggestions)),
            )
        elif change is not None:
            outcome.kind = "change_proposal"
            outcome.change = change
        elif text.strip():
            outcome.kind = "message"

        if outcome.kind in ("single_suggestion", "batch", "change_proposal"):
            SUGGESTIONS_SURFACED.labels(kind=outcome.kind).inc()
        if outcome.connection_suggestion is not None:
            SUGGESTIONS_SURFACED.labels(kind=outcome.connection_suggestion.kind).inc()
        if outcome.vlan_suggestion is not None:
            SUGGESTIONS_SURFACED.labels(kind=outcome.vlan_suggestion.kind).inc()

        state["outcome"] = outcome

        NODE_INVOCATIONS.labels(node=node_name, status="ok").inc()
        log.info(
            "node_completed",
            kind=outcome.kind,
            failed=outcome.failed,
            notices=len(outcome.notices),
        )
        return state

    except Exception as exc:  # pragma: no cover
        NODE_INVOCATIONS.labels(node=node_name, status="error").inc()
        log.exception("node_error", error=str(exc))
        raise

    finally:
        duration = time.perf_counter() - start
        NODE_LATENCY.labels(node=node_name).observe(duration)
        log.info("node_end", duration_ms=int(duration * 1000))
