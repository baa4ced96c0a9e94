from __future__ import annotations

from .state_types import TurnState


def resolution_router(state: TurnState) -> str:
    """
    Decide how the turn's stream results are resolved.

    Tool invocations take precedence: when any arrived, the text is shown as
    is and not searched for a change proposal. A failed stream with no
    completed invocations goes straight to the response.
    """
    if state.get("tool_invocations"):
        return "tool_resolution_node"
    if state.get("stream_failed"):
        return "response_node"
    return "proposal_node"
