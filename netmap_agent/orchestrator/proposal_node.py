from __future__ import annotations

import time

import structlog

from ..suggestions.models import Notice
from ..suggestions.proposals import build_change_proposal, extract_proposal
from .metrics import NODE_INVOCATIONS, NODE_LATENCY
from .state_types import TurnState

logger = structlog.get_logger("orchestrator.proposal")


async def proposal_node(state: TurnState) -> TurnState:
    """
    Look for a change proposal in the assistant text.

    A proposal naming any device id that does not exist is refused as a
    whole: it is reported as an error notice and never becomes pending.
    Field validation errors do not refuse the proposal; they travel with it
    and block approval.
    """
    node_name = "proposal"
    log = logger.bind(node=node_name)
    if "request_id" in state:
        log = log.bind(request_id=state["request_id"])

    start = time.perf_counter()

    try:
        log.info("node_start", text_length=len(state.get("assistant_text", "")))

        request = extract_proposal(state.get("assistant_text", ""))
        if request is None:
            log.info("node_completed", proposal_found=False)
        else:
            proposal = build_change_proposal(request, state["snapshot"])
            if proposal.missing_device_ids:
                state["notices"].append(
                    Notice(
                        level="error",
                        message=f"Error: Devices not found: {', '.join(proposal.missing_device_ids)}",
                    )
                )
                log.warning(
                    "change_proposal_refused",
                    missing_device_ids=proposal.missing_device_ids,
                )
            else:
                state["change_proposal"] = proposal
            log.info(
                "node_completed",
                proposal_found=True,
                valid=proposal.validation.valid,
            )

        NODE_INVOCATIONS.labels(node=node_name, status="ok").inc()
        return state

    except Exception as exc:  # pragma: no cover
        NODE_INVOCATIONS.labels(node=node_name, status="error").inc()
        log.exception("node_error", error=str(exc))
        raise

    finally:
        duration = time.perf_counter() - start
        NODE_LATENCY.labels(node=node_name).observe(duration)
        log.info("node_end", duration_ms=int(duration * 1000))
