from __future__ import annotations

from typing import Any, Dict, List, Optional, TypedDict

from ..streaming.events import ToolInvocation
from ..suggestions.models import ChangeProposal, Notice, TurnOutcome
from ..suggestions.resolution import TurnResolution
from ..topology.models import TopologySnapshot


class TurnState(TypedDict, total=False):
    """
    Shared state that flows through the turn-resolution workflow.

    The chat turn service seeds the stream results; nodes progressively
    resolve them into a TurnOutcome.
    """

    # === Core input ===
    session_id: Optional[str]
    request_id: Optional[str]  # Correlation ID for logging/tracing
    user_input: str

    # === Stream results ===
    assistant_text: str
    tool_invocations: List[ToolInvocation]
    stream_failed: bool
    error: Optional[str]

    # Topology as of the start of resolution
    snapshot: TopologySnapshot

    # === Resolution ===
    resolution: TurnResolution
    change_proposal: Optional[ChangeProposal]
    notices: List[Notice]

    # === Final UI payload ===
    outcome: TurnOutcome
    metadata: Dict[str, Any]
