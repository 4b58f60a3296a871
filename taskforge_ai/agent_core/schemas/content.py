"""
Assistant content blocks.

The parser turns the accumulated assistant text into an ordered list of these
blocks. A block is ``partial`` while the stream may still extend it; once the
stream ends every block is finalized.
"""

from __future__ import annotations

from typing import Annotated, Dict, Literal, Union

from pydantic import Field

from .base import BaseSchema


class TextContent(BaseSchema):
    type: Literal["text"] = "text"
    content: str = ""
    partial: bool = False


class ToolUse(BaseSchema):
    """
    A tool invocation requested by the model.

    Attributes:
        name: Tool name, one of the registered tool definitions.
        params: Parameter values keyed by parameter name. Values are stripped.
        partial: True while the closing tag has not been seen yet.
    """

    type: Literal["tool_use"] = "tool_use"
    name: str
    params: Dict[str, str] = Field(default_factory=dict)
    partial: bool = False


class ReasoningContent(BaseSchema):
    type: Literal["reasoning"] = "reasoning"
    content: str = ""
    partial: bool = False


ContentBlock = Annotated[Union[TextContent, ToolUse, ReasoningContent], Field(discriminator="type")]
