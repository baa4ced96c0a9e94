from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, AsyncIterable, Callable, Dict, List, Optional, Set

import structlog

from ..orchestrator.domain_metrics import TOOL_INVOCATIONS_RECEIVED, TOOL_JSON_PARSE_FAILURES
from .events import ToolInvocation

logger = structlog.get_logger("streaming.demux")

TextSink = Callable[[str], None]
ToolSink = Callable[[ToolInvocation], None]


@dataclass
class _ToolBlock:
    """Accumulator for one open tool-use block."""

    id: str
    name: str
    partial_json: str = ""


class StreamDemultiplexer:
    """
    Fold an ordered sequence of protocol events into:

      - text deltas, forwarded to `on_text` as soon as they arrive
      - completed ToolInvocations, delivered to `on_tool` at block stop

    One instance covers exactly one streamed response. Accumulators are keyed
    by block index; each tool id is emitted at most once even if the stream
    repeats a block_stop. Nothing here raises into the caller for bad input.
    """

    def __init__(
        self,
        on_text: Optional[TextSink] = None,
        on_tool: Optional[ToolSink] = None,
    ) -> None:
        self._on_text = on_text
        self._on_tool = on_tool
        self._blocks: Dict[int, _ToolBlock] = {}
        self._emitted_ids: Set[str] = set()
        self._text_parts: List[str] = []
        self.invocations: List[ToolInvocation] = []

    @property
    def text(self) -> str:
        """All text received so far, in arrival order."""
        return "".join(self._text_parts)

    @property
    def open_blocks(self) -> int:
        return len(self._blocks)

    def feed(self, event: Any) -> None:
        kind = getattr(event, "kind", None)

        if kind == "text_delta":
            self._handle_text(event.text)
        elif kind == "block_start":
            self._handle_start(event)
        elif kind == "json_delta":
            self._handle_json(event.index, event.fragment)
        elif kind == "block_stop":
            self._handle_stop(event.index)
        else:
            logger.debug("protocol_event_unknown", kind=kind)

    async def consume(self, events: AsyncIterable[Any]) -> List[ToolInvocation]:
        """
        Feed every event from `events`, then close.

        Exceptions from the producer propagate after open accumulators are
        dropped; invocations already emitted stay in `self.invocations`.
        """
        try:
            async for event in events:
                self.feed(event)
        finally:
            self.close()
        return self.invocations

    def close(self) -> int:
        """Drop accumulators that never saw a block_stop. Returns how many were dropped."""
        dropped = len(self._blocks)
        if dropped:
            logger.warning(
                "tool_blocks_dropped",
                count=dropped,
                tool_ids=[block.id for block in self._blocks.values()],
            )
        self._blocks.clear()
        return dropped

    # ------------------------------------------------------------------ #
    # Event handlers
    # ------------------------------------------------------------------ #

    def _handle_text(self, text: str) -> None:
        if not text:
            return
        self._text_parts.append(text)
        if self._on_text is not None:
            self._on_text(text)

    def _handle_start(self, event: Any) -> None:
        if event.block_type != "tool_use":
            return
        if not event.block_id or not event.tool_name:
            logger.warning(
                "tool_block_start_incomplete",
                index=event.index,
                block_id=event.block_id,
                tool_name=event.tool_name,
            )
            return
        self._blocks[event.index] = _ToolBlock(id=event.block_id, name=event.tool_name)

    def _handle_json(self, index: int, fragment: str) -> None:
        block = self._blocks.get(index)
        if block is None:
            logger.debug("json_delta_without_block", index=index)
            return
        block.partial_json += fragment

    def _handle_stop(self, index: int) -> None:
        block = self._blocks.pop(index, None)
        if block is None or block.id in self._emitted_ids:
            return
        self._emitted_ids.add(block.id)

        invocation = ToolInvocation(
            id=block.id,
            name=block.name,
            input=_parse_tool_input(block),
        )
        self.invocations.append(invocation)
        TOOL_INVOCATIONS_RECEIVED.labels(tool=block.name).inc()
        logger.info("tool_invocation_completed", tool=block.name, tool_id=block.id)
        if self._on_tool is not None:
            self._on_tool(invocation)


def _parse_tool_input(block: _ToolBlock) -> Dict[str, Any]:
    raw = block.partial_json.strip()
    if not raw:
        return {}

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        TOOL_JSON_PARSE_FAILURES.labels(tool=block.name).inc()
        logger.error(
            "tool_json_parse_failed",
            tool=block.name,
            tool_id=block.id,
            error=str(exc),
            raw_json_snippet=raw[:200],
        )
        return {}

    if not isinstance(data, dict):
        TOOL_JSON_PARSE_FAILURES.labels(tool=block.name).inc()
        logger.error(
            "tool_json_not_object",
            tool=block.name,
            tool_id=block.id,
            json_type=type(data).__name__,
        )
        return {}

    return data
