"""Pydantic schemas shared by the agent core."""

from .base import BaseSchema
from .content import ContentBlock, ReasoningContent, TextContent, ToolUse
from .domain import (
    ApiMessage,
    ApiRequestInfo,
    AskKind,
    AskResponse,
    AskResult,
    CancelReason,
    HistoryItem,
    ImagePart,
    MessagePart,
    ModelInfo,
    ProviderState,
    SayKind,
    TextPart,
    UiMessage,
    UsageTotals,
)
from .stream import ApiStreamChunk, ReasoningChunk, TextChunk, UsageChunk

__all__ = [
    "BaseSchema",
    "ContentBlock",
    "TextContent",
    "ToolUse",
    "ReasoningContent",
    "ApiMessage",
    "ApiRequestInfo",
    "AskKind",
    "AskResponse",
    "AskResult",
    "CancelReason",
    "HistoryItem",
    "ImagePart",
    "MessagePart",
    "ModelInfo",
    "ProviderState",
    "SayKind",
    "TextPart",
    "UiMessage",
    "UsageTotals",
    "ApiStreamChunk",
    "TextChunk",
    "ReasoningChunk",
    "UsageChunk",
]
