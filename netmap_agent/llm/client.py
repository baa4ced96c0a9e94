from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional

import anthropic
import structlog
from pydantic import BaseModel

from ..config import Settings
from ..streaming.events import BlockStart, BlockStop, JsonDelta, TextDelta
from .prompts import build_system_prompt
from .tools import TOOL_DEFINITIONS

logger = structlog.get_logger("llm.client")

CONNECTION_ERROR = "Unable to connect to AI service. Please check your connection and try again."
NOT_CONFIGURED_ERROR = "AI service not configured. Please set the Anthropic API key."
LOW_CREDIT_ERROR = (
    "Anthropic API credit balance is too low. Please add credits at console.anthropic.com"
)
MODEL_UNAVAILABLE_ERROR = (
    "AI model not available. The configured model may be deprecated. Please contact support."
)
RATE_LIMIT_ERROR = "Too many requests. Please wait a moment and try again."
GENERIC_ERROR = "An error occurred while sending your message"


def to_protocol_event(raw: Any) -> Optional[BaseModel]:
    """
    Map one raw Messages API stream event onto a ProtocolEvent.

    Message-level events (message_start, message_delta, message_stop, ping)
    and unknown delta types map to None.
    """
    event_type = getattr(raw, "type", None)

    if event_type == "content_block_start":
        block = raw.content_block
        return BlockStart(
            index=raw.index,
            block_type=getattr(block, "type", ""),
            block_id=getattr(block, "id", None),
            tool_name=getattr(block, "name", None),
        )

    if event_type == "content_block_delta":
        delta = raw.delta
        delta_type = getattr(delta, "type", None)
        if delta_type == "text_delta":
            return TextDelta(index=raw.index, text=delta.text)
        if delta_type == "input_json_delta":
            return JsonDelta(index=raw.index, fragment=delta.partial_json)
        return None

    if event_type == "content_block_stop":
        return BlockStop(index=raw.index)

    return None


def friendly_error(exc: BaseException) -> str:
    """User-facing message for an LLM transport or API failure."""
    message = str(exc)
    if isinstance(exc, anthropic.APIConnectionError):
        return CONNECTION_ERROR
    if isinstance(exc, anthropic.AuthenticationError):
        return NOT_CONFIGURED_ERROR
    if "credit balance is too low" in message:
        return LOW_CREDIT_ERROR
    if isinstance(exc, anthropic.NotFoundError) or "not_found_error" in message:
        return MODEL_UNAVAILABLE_ERROR
    if isinstance(exc, anthropic.RateLimitError) or "429" in message:
        return RATE_LIMIT_ERROR
    return message or GENERIC_ERROR


class AnthropicStreamSource:
    """
    Streams one chat turn from the Anthropic Messages API as ProtocolEvents.

    The system prompt carries the network context; the tool schemas are sent
    when tools are enabled.
    """

    def __init__(self, settings: Settings, client: Optional[anthropic.AsyncAnthropic] = None):
        self._settings = settings
        if client is None:
            api_key = settings.anthropic_api_key
            client = anthropic.AsyncAnthropic(
                api_key=api_key.get_secret_value() if api_key else None,
            )
        self._client = client

    async def stream(
        self,
        messages: List[Dict[str, str]],
        network_context: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[BaseModel]:
        settings = self._settings
        params: Dict[str, Any] = {
            "model": settings.llm_model,
            "max_tokens": settings.llm_max_tokens,
            "system": build_system_prompt(network_context),
            "messages": messages,
            "stream": True,
        }
        if settings.llm_temperature is not None:
            params["temperature"] = settings.llm_temperature
        if settings.enable_tools:
            params["tools"] = TOOL_DEFINITIONS

        log = logger.bind(model=settings.llm_model, messages=len(messages))
        log.info("llm_stream_start", tools=settings.enable_tools)

        stream = await self._client.messages.create(**params)
        events = 0
        async for raw in stream:
            event = to_protocol_event(raw)
            if event is not None:
                events += 1
                yield event

        log.info("llm_stream_end", events=events)

    async def close(self) -> None:
        await self._client.close()
