from __future__ import annotations

"""
LLM utilities for the netmap agent.

This package provides:
- The Anthropic streaming client and its SDK-event -> ProtocolEvent mapping
- Tool schemas for every suggestion kind
- The system prompt and the network context formatter
"""

from .client import AnthropicStreamSource, friendly_error, to_protocol_event
from .context import format_network_context
from .prompts import build_system_prompt
from .tools import TOOL_DEFINITIONS

__all__ = [
    "AnthropicStreamSource",
    "TOOL_DEFINITIONS",
    "build_system_prompt",
    "format_network_context",
    "friendly_error",
    "to_protocol_event",
]
