"""Backend clients producing response streams."""

from .base import ApiHandler, close_stream
from .pydantic_ai_handler import PydanticAIApiHandler, event_chunk, read_usage, to_model_messages, usage_chunk

__all__ = [
    "ApiHandler",
    "PydanticAIApiHandler",
    "close_stream",
    "event_chunk",
    "read_usage",
    "to_model_messages",
    "usage_chunk",
]
