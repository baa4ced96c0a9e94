from __future__ import annotations

from typing import Optional

from langgraph.graph import StateGraph, START, END  # type: ignore

from ..suggestions.placement import PlacementEngine
from .ingress_node import ingress_node
from .proposal_node import proposal_node
from .response_node import response_node
from .routers import resolution_router
from .state_types import TurnState
from .tool_node import tool_resolution_node


def build_workflow(placement: Optional[PlacementEngine] = None):
    """
    Build and compile the LangGraph workflow that resolves one chat turn.

    Current structure:

        START
          ↓
        ingress_node
          ↘ (via resolution_router) tool_resolution_node, proposal_node
            or response_node
                                     ↓
                                 response_node
                                     ↓
                                    END

    `placement` is shared by every turn run through the compiled graph;
    pass one with a seeded random source for reproducible positions.
    """
    engine = placement or PlacementEngine()

    async def tool_resolution(state: TurnState) -> TurnState:
        return await tool_resolution_node(state, engine)

    workflow = StateGraph(TurnState)

    # Register nodes
    workflow.add_node("ingress_node", ingress_node)
    workflow.add_node("tool_resolution_node", tool_resolution)
    workflow.add_node("proposal_node", proposal_node)
    workflow.add_node("response_node", response_node)

    # Static edges
    workflow.add_edge(START, "ingress_node")

    workflow.add_conditional_edges(
        "ingress_node",
        resolution_router,
        {
            "tool_resolution_node": "tool_resolution_node",
            "proposal_node": "proposal_node",
            "response_node": "response_node",
        },
    )

    workflow.add_edge("tool_resolution_node", "response_node")
    workflow.add_edge("proposal_node", "response_node")

    # Final edge
    workflow.add_edge("response_node", END)

    return workflow.compile()
