from __future__ import annotations

import time
from typing import List

import structlog

from ..streaming.events import ToolInvocation
from ..suggestions.models import Notice
from ..topology.models import TopologySnapshot
from .metrics import NODE_INVOCATIONS, NODE_LATENCY
from .state_types import TurnState

logger = structlog.get_logger("orchestrator.ingress")


async def ingress_node(state: TurnState) -> TurnState:
    """
    Normalize the stream results before resolution.

    This node:
      - Defaults assistant text, invocations and notices
      - Ensures a topology snapshot is present
    """
    node_name = "ingress"
    log = logger.bind(node=node_name)
    if "request_id" in state:
        log = log.bind(request_id=state["request_id"])

    start = time.perf_counter()

    try:
        invocations: List[ToolInvocation] = state.get("tool_invocations", []) or []
        log.info(
            "node_start",
            session_id=state.get("session_id"),
            tool_invocations=len(invocations),
            stream_failed=bool(state.get("stream_failed")),
        )

        notices: List[Notice] = state.get("notices", []) or []

        state["user_input"] = state.get("user_input", "") or ""
        state["assistant_text"] = state.get("assistant_text", "") or ""
        state["tool_invocations"] = invocations
        state["stream_failed"] = bool(state.get("stream_failed", False))
        state["error"] = state.get("error")
        state["notices"] = notices
        state["change_proposal"] = None
        if state.get("snapshot") is None:
            state["snapshot"] = TopologySnapshot()

        NODE_INVOCATIONS.labels(node=node_name, status="ok").inc()
        return state

    except Exception as exc:  # pragma: no cover
        NODE_INVOCATIONS.labels(node=node_name, status="error").inc()
        log.exception("node_error", error=str(exc))
        raise

    finally:
        duration = time.perf_counter() - start
        NODE_LATENCY.labels(node=node_name).observe(duration)
        log.info(
            "node_end",
            duration_ms=int(duration * 1000),
        )
