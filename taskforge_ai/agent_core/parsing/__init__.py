"""Assistant response parsing."""

from .parser import parse_assistant_message

__all__ = ["parse_assistant_message"]
