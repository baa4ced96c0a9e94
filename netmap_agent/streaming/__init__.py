from __future__ import annotations

"""
Incremental LLM response handling.

- Protocol event types (block start / delta / stop)
- StreamDemultiplexer: folds events into live text + completed tool invocations
"""

from .demux import StreamDemultiplexer
from .events import (
    BlockStart,
    BlockStop,
    JsonDelta,
    ProtocolEvent,
    TextDelta,
    ToolInvocation,
    parse_event,
)

__all__ = [
    "BlockStart",
    "BlockStop",
    "JsonDelta",
    "ProtocolEvent",
    "StreamDemultiplexer",
    "TextDelta",
    "ToolInvocation",
    "parse_event",
]
