from __future__ import annotations

import logging
from typing import AsyncIterator, List, Protocol, runtime_checkable

from ..schemas.domain import ApiMessage, ModelInfo
from ..schemas.stream import ApiStreamChunk

logger = logging.getLogger(__name__)


@runtime_checkable
class ApiHandler(Protocol):
    """Client of a generative-language backend.

    ``create_message`` returns a lazy, finite, non-restartable stream of
    units. The stream may be abandoned at any point and may be handed to
    another asyncio task mid-way, so reading it must not depend on the task
    that started it. Callers that stop early close it with ``close_stream``.
    """

    def create_message(self, system_prompt: str, messages: List[ApiMessage]) -> AsyncIterator[ApiStreamChunk]:
        ...

    def get_model(self) -> ModelInfo:
        ...


async def close_stream(stream: AsyncIterator[ApiStreamChunk]) -> None:
    """Close a response stream, logging instead of raising on failure."""
    aclose = getattr(stream, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.debug(f"Closing response stream failed: {e}")
