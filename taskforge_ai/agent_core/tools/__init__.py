"""Local tools the model can invoke.

- ``definitions``: tool names, parameter schemas and prompt descriptions.
- ``handlers``: one ``ToolHandler`` per tool.
- ``registry``: dispatch with mode and parameter checks.
- ``edit_tracker``: revert support for file writes.
"""

from .definitions import TOOL_DEFINITIONS, TOOL_PARAM_NAMES, ToolDefinition
from .edit_tracker import EditTracker
from .handlers import (
    AskFollowupQuestionHandler,
    AttemptCompletionHandler,
    ExecuteCommandHandler,
    NewTaskHandler,
    ReadFileHandler,
    ToolHandler,
    ToolOutcome,
    WriteToFileHandler,
)
from .registry import ToolHandlerRegistry

__all__ = [
    "TOOL_DEFINITIONS",
    "TOOL_PARAM_NAMES",
    "ToolDefinition",
    "EditTracker",
    "ToolHandler",
    "ToolOutcome",
    "ReadFileHandler",
    "WriteToFileHandler",
    "ExecuteCommandHandler",
    "AskFollowupQuestionHandler",
    "AttemptCompletionHandler",
    "NewTaskHandler",
    "ToolHandlerRegistry",
]
