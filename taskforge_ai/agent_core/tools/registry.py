from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from ..errors import AbortedTaskError, ToolExecutionError
from ..modes import get_mode_spec
from ..runtime import responses
from ..schemas.content import ToolUse
from ..schemas.domain import SayKind
from .handlers import ToolHandler, ToolOutcome

if TYPE_CHECKING:
    from ..task import Task

logger = logging.getLogger(__name__)


class ToolHandlerRegistry:
    """Registry of tool handlers keyed by tool name.

    ``execute`` is the single entry point used by the presenter: it enforces
    the task mode's tool permissions and required parameters before
    dispatching, and converts handler failures into error outcomes so a
    broken tool never ends the task.
    """

    def __init__(self, handlers: Iterable[ToolHandler] = ()) -> None:
        self._handlers: Dict[str, ToolHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: ToolHandler) -> None:
        self._handlers[handler.name] = handler

    def get(self, name: str) -> Optional[ToolHandler]:
        return self._handlers.get(name)

    def names(self) -> List[str]:
        return list(self._handlers)

    async def execute(self, task: Task, block: ToolUse) -> ToolOutcome:
        handler = self.get(block.name)
        if handler is None:
            return ToolOutcome(content=responses.tool_error(f"Unknown tool: {block.name}"), is_error=True)

        spec = get_mode_spec(task.mode)
        if block.name not in spec.allowed_tools:
            await task.say(SayKind.error, f"Tool '{block.name}' is not allowed in {spec.name} mode.")
            return ToolOutcome(
                content=responses.tool_error(f"Tool '{block.name}' is not allowed in {spec.slug.value} mode."),
                is_error=True,
            )

        for param in handler.definition.required_params:
            if not block.params.get(param):
                task.consecutive_mistake_count += 1
                await task.say(
                    SayKind.error,
                    f"Tried to use {block.name} without value for required parameter '{param}'. Retrying...",
                )
                return ToolOutcome(content=responses.missing_tool_parameter_error(param), is_error=True)

        try:
            outcome = await handler.execute(task, block)
        except AbortedTaskError:
            raise
        except ToolExecutionError as e:
            logger.error(f"Tool {block.name} failed: {e}")
            await task.say(SayKind.error, f"Error executing {block.name}: {e}")
            return ToolOutcome(content=responses.tool_error(str(e)), is_error=True)
        except Exception as e:
            logger.exception(f"Unexpected error executing tool {block.name}")
            await task.say(SayKind.error, f"Error executing {block.name}: {e}")
            return ToolOutcome(content=responses.tool_error(f"{type(e).__name__}: {e}"), is_error=True)

        if not outcome.is_error:
            task.consecutive_mistake_count = 0
        return outcome
