"""Backend client built on pydantic-ai.

Each request builds a fresh ``Agent`` for the configured model, converts the
task's conversation into pydantic-ai message history and streams the model
response events. Text and thinking deltas become stream units and a single
usage unit follows them, which is why the request loop hands abandoned
streams to a ``BackgroundDrain``.

The pydantic-ai run lives in its own producer task and feeds a queue. The
returned stream only reads that queue, so it can be read by one task and
drained by another.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, AsyncIterator, List, Optional, Sequence, Union

from pydantic_ai import Agent
from pydantic_ai.messages import (
    BinaryContent,
    ModelMessage,
    ModelRequest,
    ModelResponse,
    PartDeltaEvent,
    PartStartEvent,
    SystemPromptPart,
    TextPartDelta,
    ThinkingPart,
    ThinkingPartDelta,
    UserPromptPart,
)
from pydantic_ai.messages import TextPart as ResponseTextPart
from pydantic_ai.models import Model

from ..schemas.domain import ApiMessage, ImagePart, ModelInfo, TextPart
from ..schemas.stream import ApiStreamChunk, ReasoningChunk, TextChunk, UsageChunk

logger = logging.getLogger(__name__)

UserContent = Union[str, BinaryContent]

# Queue item closing the stream.
_END = object()


def _user_content(message: ApiMessage) -> List[UserContent]:
    parts: List[UserContent] = []
    for part in message.content:
        if isinstance(part, TextPart):
            parts.append(part.text)
        elif isinstance(part, ImagePart):
            parts.append(BinaryContent(data=base64.b64decode(part.data), media_type=part.media_type))
    return parts


def _text(message: ApiMessage) -> str:
    return "\n\n".join(p.text for p in message.content if isinstance(p, TextPart))


def to_model_messages(history: Sequence[ApiMessage], system_prompt: str) -> List[ModelMessage]:
    """Convert stored conversation messages to pydantic-ai message history.

    The system prompt is placed in the first request since pydantic-ai only
    injects the agent's own system prompt into an empty history.
    """
    result: List[ModelMessage] = []
    for message in history:
        if message.role == "assistant":
            result.append(ModelResponse(parts=[ResponseTextPart(content=_text(message))]))
            continue
        parts: List[Any] = []
        if not result:
            parts.append(SystemPromptPart(content=system_prompt))
        parts.append(UserPromptPart(content=_user_content(message)))
        result.append(ModelRequest(parts=parts))
    return result


def usage_chunk(usage: Any) -> UsageChunk:
    """Map a pydantic-ai usage object onto a usage unit.

    pydantic-ai counts cached prompt tokens as input tokens; they are moved
    out of ``input_tokens`` so cost is computed per token class.
    """
    input_tokens = getattr(usage, "input_tokens", None)
    if input_tokens is None:
        input_tokens = getattr(usage, "request_tokens", None) or 0
    output_tokens = getattr(usage, "output_tokens", None)
    if output_tokens is None:
        output_tokens = getattr(usage, "response_tokens", None) or 0
    cache_write = getattr(usage, "cache_write_tokens", 0) or 0
    cache_read = getattr(usage, "cache_read_tokens", 0) or 0
    return UsageChunk(
        input_tokens=max(input_tokens - cache_write - cache_read, 0),
        output_tokens=output_tokens,
        cache_write_tokens=cache_write,
        cache_read_tokens=cache_read,
    )


def read_usage(source: Any) -> Any:
    """Return the usage of a pydantic-ai run; older releases expose it as a method."""
    usage = source.usage
    return usage() if callable(usage) else usage


def event_chunk(event: Any) -> Optional[ApiStreamChunk]:
    """Map a model response stream event onto a stream unit, if it carries content."""
    if isinstance(event, PartStartEvent):
        part = event.part
        if isinstance(part, ResponseTextPart) and part.content:
            return TextChunk(text=part.content)
        if isinstance(part, ThinkingPart) and part.content:
            return ReasoningChunk(text=part.content)
    elif isinstance(event, PartDeltaEvent):
        delta = event.delta
        if isinstance(delta, TextPartDelta) and delta.content_delta:
            return TextChunk(text=delta.content_delta)
        if isinstance(delta, ThinkingPartDelta) and delta.content_delta:
            return ReasoningChunk(text=delta.content_delta)
    return None


class PydanticAIApiHandler:
    """``ApiHandler`` implementation streaming through a pydantic-ai agent.

    Args:
        model: A pydantic-ai model instance or identifier such as ``openai:gpt-4o``.
        model_info: Pricing metadata used for local cost computation.
    """

    def __init__(self, model: Union[str, Model], *, model_info: Optional[ModelInfo] = None) -> None:
        self._model = model
        model_id = model if isinstance(model, str) else getattr(model, "model_name", type(model).__name__)
        self._model_info = model_info or ModelInfo(model_id=model_id)

    def get_model(self) -> ModelInfo:
        return self._model_info

    async def create_message(self, system_prompt: str, messages: List[ApiMessage]) -> AsyncIterator[ApiStreamChunk]:
        if not messages:
            raise ValueError("create_message requires at least one message")
        queue: asyncio.Queue[Any] = asyncio.Queue()
        producer = asyncio.create_task(
            self._produce(system_prompt, messages, queue), name=f"pydantic-ai-stream:{self._model_info.model_id}"
        )
        try:
            while True:
                item = await queue.get()
                if item is _END:
                    break
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            if not producer.done():
                producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)

    async def _produce(self, system_prompt: str, messages: List[ApiMessage], queue: asyncio.Queue[Any]) -> None:
        *history, last = messages
        agent: Agent[None, str] = Agent(self._model, system_prompt=system_prompt)
        logger.debug(f"Streaming request: model={self._model_info.model_id}, history={len(history)} messages")
        try:
            async with agent.iter(
                _user_content(last),
                message_history=to_model_messages(history, system_prompt) or None,
            ) as run:
                async for node in run:
                    if not Agent.is_model_request_node(node):
                        continue
                    async with node.stream(run.ctx) as events:
                        async for event in events:
                            chunk = event_chunk(event)
                            if chunk is not None:
                                queue.put_nowait(chunk)
                queue.put_nowait(usage_chunk(read_usage(run)))
        except Exception as error:
            queue.put_nowait(error)
        finally:
            queue.put_nowait(_END)
