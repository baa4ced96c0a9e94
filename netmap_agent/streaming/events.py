from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Union

import structlog
from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from typing_extensions import Annotated

logger = structlog.get_logger("streaming.events")


class TextDelta(BaseModel):
    """Incremental text for a text block."""

    kind: Literal["text_delta"] = "text_delta"
    index: int
    text: str


class BlockStart(BaseModel):
    """
    A content block opened at `index`.

    `block_type` is "text" or "tool_use"; tool blocks carry their id and name.
    """

    kind: Literal["block_start"] = "block_start"
    index: int
    block_type: str
    block_id: Optional[str] = None
    tool_name: Optional[str] = None


class JsonDelta(BaseModel):
    """A fragment of a tool block's JSON input. Only meaningful once concatenated."""

    kind: Literal["json_delta"] = "json_delta"
    index: int
    fragment: str


class BlockStop(BaseModel):
    kind: Literal["block_stop"] = "block_stop"
    index: int


ProtocolEvent = Annotated[
    Union[TextDelta, BlockStart, JsonDelta, BlockStop],
    Field(discriminator="kind"),
]

_event_adapter: TypeAdapter[Any] = TypeAdapter(ProtocolEvent)


def parse_event(raw: Dict[str, Any]) -> Optional[BaseModel]:
    """
    Build a ProtocolEvent from a plain mapping.

    Unknown or malformed events return None; callers skip them.
    """
    try:
        return _event_adapter.validate_python(raw)
    except ValidationError as exc:
        logger.debug("protocol_event_ignored", kind=raw.get("kind"), error=str(exc))
        return None


class ToolInvocation(BaseModel):
    """A completed, fully-parsed tool call."""

    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)
