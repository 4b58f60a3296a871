"""Presentation of parsed assistant content.

``present_assistant_message`` is called every time the parsed block list of
the current response changes. It walks the blocks in order starting at the
task's streaming index, shows text and reasoning (as partial UI updates while
a block is still streaming), and executes a tool block once it is complete.

Only the first tool of a response is executed; later tools and any tool after
a rejection are answered with an explanatory result instead. Once the last
block has been handled the task's ``user_message_content_ready`` event is set,
which the request loop waits on before it builds the next turn.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from ..errors import AbortedTaskError
from ..schemas.content import ReasoningContent, TextContent, ToolUse
from ..schemas.domain import SayKind, TextPart
from . import responses

if TYPE_CHECKING:
    from ..task import Task

logger = logging.getLogger(__name__)

# A tag that is still being streamed at the end of a partial text block.
_PARTIAL_TAG = re.compile(r"\s?<\/?[\w-]*$")


async def present_assistant_message(task: Task) -> None:
    if task.abort:
        raise AbortedTaskError(task.task_id, task.instance_id)

    if task.present_locked:
        task.present_has_pending_updates = True
        return

    task.present_locked = True
    task.present_has_pending_updates = False
    try:
        while True:
            index = task.current_streaming_content_index
            if index >= len(task.assistant_message_content):
                if task.did_complete_reading_stream:
                    task.user_message_content_ready.set()
                break

            block = task.assistant_message_content[index].model_copy(deep=True)
            await _present_block(task, block)

            if block.partial and not (task.did_reject_tool or task.did_already_use_tool):
                break

            if index == len(task.assistant_message_content) - 1:
                task.user_message_content_ready.set()
            task.current_streaming_content_index += 1
    finally:
        task.present_locked = False

    if task.present_has_pending_updates:
        await present_assistant_message(task)


async def _present_block(task: Task, block: TextContent | ToolUse | ReasoningContent) -> None:
    if isinstance(block, ToolUse):
        await _present_tool(task, block)
        return

    if task.did_reject_tool or task.did_already_use_tool:
        return

    content = block.content
    if block.partial:
        content = _PARTIAL_TAG.sub("", content)
        if not content:
            return

    kind = SayKind.reasoning if isinstance(block, ReasoningContent) else SayKind.text
    await task.say(kind, content, partial=block.partial)


async def _present_tool(task: Task, block: ToolUse) -> None:
    if task.did_reject_tool:
        task.user_message_content.append(TextPart(text=responses.tool_skipped_after_rejection(block)))
        return

    if task.did_already_use_tool:
        task.user_message_content.append(TextPart(text=responses.tool_skipped_after_tool_use(block)))
        return

    if block.partial:
        return

    logger.debug(f"Executing tool {block.name} for task {task.task_id}.{task.instance_id}")
    outcome = await task.deps.tools.execute(task, block)

    task.user_message_content.append(TextPart(text=f"{responses.tool_description(block)} Result:"))
    task.user_message_content.append(TextPart(text=outcome.content or "(tool did not return anything)"))
    task.did_already_use_tool = True
    if outcome.rejected:
        task.did_reject_tool = True
