from __future__ import annotations

import time
from typing import Optional

import structlog

from ..streaming.events import ToolInvocation
from ..suggestions.placement import PlacementEngine
from ..suggestions.resolution import ToolCallResolver
from .metrics import NODE_INVOCATIONS, NODE_LATENCY, TOOL_INVOCATIONS, TOOL_LATENCY
from .state_types import TurnState

logger = structlog.get_logger("orchestrator.tools")


def _resolve_with_metrics(resolver: ToolCallResolver, invocation: ToolInvocation) -> None:
    """
    Helper to wrap each invocation's resolution with logging + Prometheus metrics.
    """
    log = logger.bind(tool=invocation.name, tool_id=invocation.id)
    start = time.perf_counter()

    try:
        resolver.resolve(invocation)
        TOOL_INVOCATIONS.labels(tool=invocation.name, status="ok").inc()
    except Exception as exc:  # pragma: no cover
        TOOL_INVOCATIONS.labels(tool=invocation.name, status="error").inc()
        log.exception("tool_error", error=str(exc))
        raise
    finally:
        duration = time.perf_counter() - start
        TOOL_LATENCY.labels(tool=invocation.name).observe(duration)
        log.debug("tool_resolved", duration_ms=int(duration * 1000))


async def tool_resolution_node(
    state: TurnState,
    placement: Optional[PlacementEngine] = None,
) -> TurnState:
    """
    Resolve every completed tool invocation of the turn, in arrival order,
    against the turn's topology snapshot.

    Device additions are matched for duplicates and placed; connection and
    VLAN tools are resolved to entity ids; informational tools are recorded.
    """
    node_name = "tool_resolution"
    log = logger.bind(node=node_name)
    if "request_id" in state:
        log = log.bind(request_id=state["request_id"])

    start = time.perf_counter()

    try:
        invocations = state.get("tool_invocations", []) or []
        log.info("node_start", tool_invocations=len(invocations))

        resolver = ToolCallResolver(state["snapshot"], placement or PlacementEngine())
        for invocation in invocations:
            _resolve_with_metrics(resolver, invocation)
        resolution = resolver.finish()

        state["resolution"] = resolution

        NODE_INVOCATIONS.labels(node=node_name, status="ok").inc()
        log.info(
            "node_completed",
            device_suggestions=len(resolution.device_suggestions),
            connection_suggestion=resolution.connection_suggestion is not None,
            vlan_suggestion=resolution.vlan_suggestion is not None,
            notices=len(resolution.notices),
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
