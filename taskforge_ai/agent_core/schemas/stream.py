"""Units yielded by a backend response stream."""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import Field

from .base import BaseSchema


class TextChunk(BaseSchema):
    type: Literal["text"] = "text"
    text: str


class ReasoningChunk(BaseSchema):
    type: Literal["reasoning"] = "reasoning"
    text: str


class UsageChunk(BaseSchema):
    """
    Token accounting reported by the backend.

    A stream may carry several usage units; counters are added up. When
    ``total_cost`` is set it takes precedence over the locally computed cost.
    """

    type: Literal["usage"] = "usage"
    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: Optional[int] = None
    cache_read_tokens: Optional[int] = None
    total_cost: Optional[float] = None


ApiStreamChunk = Annotated[Union[TextChunk, ReasoningChunk, UsageChunk], Field(discriminator="type")]
