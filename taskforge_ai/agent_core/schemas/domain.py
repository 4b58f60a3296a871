from __future__ import annotations

import time
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import Field

from .base import BaseSchema


def now_ms() -> int:
    return int(time.time() * 1000)


# =====================================================================
# Conversation (backend side)
# =====================================================================


class TextPart(BaseSchema):
    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseSchema):
    """A base64 encoded image attached to a user message."""

    type: Literal["image"] = "image"
    media_type: str = "image/png"
    data: str


MessagePart = Annotated[Union[TextPart, ImagePart], Field(discriminator="type")]


class ApiMessage(BaseSchema):
    role: Literal["user", "assistant"]
    content: List[MessagePart] = Field(default_factory=list)
    ts: Optional[int] = None


# =====================================================================
# Usage accounting
# =====================================================================


class UsageTotals(BaseSchema):
    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int = 0
    cache_read_tokens: int = 0
    total_cost: Optional[float] = None

    @property
    def has_usage(self) -> bool:
        return bool(
            self.input_tokens
            or self.output_tokens
            or self.cache_write_tokens
            or self.cache_read_tokens
            or self.total_cost
        )


class CancelReason(str, Enum):
    user_cancelled = "user_cancelled"
    streaming_failed = "streaming_failed"


class ApiRequestInfo(BaseSchema):
    """
    Per-turn request record stored as JSON in the ``api_req_started`` UI message.

    The record is written before the network call with only ``request`` set
    and rewritten as usage arrives. Field aliases are the persisted
    (camelCase) keys.
    """

    request: Optional[str] = None
    tokens_in: Optional[int] = Field(default=None, alias="tokensIn")
    tokens_out: Optional[int] = Field(default=None, alias="tokensOut")
    cache_writes: Optional[int] = Field(default=None, alias="cacheWrites")
    cache_reads: Optional[int] = Field(default=None, alias="cacheReads")
    cost: Optional[float] = None
    usage_missing: Optional[bool] = Field(default=None, alias="usageMissing")
    cancel_reason: Optional[CancelReason] = Field(default=None, alias="cancelReason")
    streaming_failed_message: Optional[str] = Field(default=None, alias="streamingFailedMessage")

    def to_text(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_text(cls, text: Optional[str]) -> "ApiRequestInfo":
        if not text:
            return cls()
        return cls.model_validate_json(text)


# =====================================================================
# UI messages
# =====================================================================


class AskKind(str, Enum):
    followup = "followup"
    command = "command"
    tool = "tool"
    completion_result = "completion_result"
    api_req_failed = "api_req_failed"
    resume_task = "resume_task"
    resume_completed_task = "resume_completed_task"
    mistake_limit_reached = "mistake_limit_reached"


class SayKind(str, Enum):
    task = "task"
    text = "text"
    reasoning = "reasoning"
    api_req_started = "api_req_started"
    api_req_retried = "api_req_retried"
    error = "error"
    user_feedback = "user_feedback"
    completion_result = "completion_result"
    command_output = "command_output"
    tool = "tool"
    subtask_result = "subtask_result"


class UiMessage(BaseSchema):
    ts: int = Field(default_factory=now_ms)
    type: Literal["ask", "say"]
    ask: Optional[AskKind] = None
    say: Optional[SayKind] = None
    text: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    partial: Optional[bool] = None


class AskResponse(str, Enum):
    yes_button = "yes_button"
    no_button = "no_button"
    message_response = "message_response"


class AskResult(BaseSchema):
    response: AskResponse
    text: Optional[str] = None
    images: List[str] = Field(default_factory=list)


# =====================================================================
# Persistence and host state
# =====================================================================


class HistoryItem(BaseSchema):
    """
    Persisted summary of one task.

    ``root_task_id`` and ``parent_task_id`` are unset for a standalone task;
    the stack orchestrator follows ``parent_task_id`` to rebuild the
    ancestor chain of a subtask.
    """

    id: str
    root_task_id: Optional[str] = None
    parent_task_id: Optional[str] = None
    number: int = 1
    ts: int = Field(default_factory=now_ms)
    task: str = ""
    tokens_in: int = 0
    tokens_out: int = 0
    cache_writes: int = 0
    cache_reads: int = 0
    total_cost: float = 0.0
    workspace: Optional[str] = None
    mode: Optional[str] = None


class ModelInfo(BaseSchema):
    """Backend model metadata. Prices are USD per million tokens."""

    model_id: str
    input_price: Optional[float] = None
    output_price: Optional[float] = None
    cache_writes_price: Optional[float] = None
    cache_reads_price: Optional[float] = None


class ProviderState(BaseSchema):
    """Snapshot posted to the UI after state changes."""

    mode: str
    current_task_id: Optional[str] = None
    task_stack: List[str] = Field(default_factory=list)
    ui_messages: List[UiMessage] = Field(default_factory=list)
