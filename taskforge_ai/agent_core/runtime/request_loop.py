"""The request loop of a task.

``RequestLoop.run`` performs one or more conversation turns with the backend:

1. On entering a turn (``start``): enforce the consecutive-mistake threshold,
   wait while the task is paused for a subtask (restoring its mode), persist
   the outbound content plus a separate environment-details unit, and record
   a placeholder request record before the network call.
2. Stream the reply with a manual pull model, parsing the accumulated text
   into content blocks and presenting them as they arrive. Reading stops
   early on abort, on a rejected tool, or once a tool has been used; the same
   stream handle is then given to a ``BackgroundDrain`` to recover trailing
   usage. A failing stream is treated as a cancellation
   (``streaming_failed``) and the task is reloaded from its history.
3. After the stream (``after_api_call``): finalize partial blocks, persist the
   assistant turn and either push a continuation frame carrying the tool
   results, end the loop (task completed), or record a failure turn when the
   backend produced nothing.

Turns are explicit ``StackFrame`` records on an owned list. When a frame
completes, its result propagates to the frame beneath it; the result of the
bottom frame is the return value of ``run``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, AsyncIterator, List, Optional, Sequence

from ...core import monitoring
from ..errors import AbortedTaskError, TaskNotFoundError
from ..parsing import parse_assistant_message
from ..providers.base import close_stream
from ..schemas.content import ToolUse
from ..schemas.domain import (
    ApiRequestInfo,
    AskKind,
    AskResponse,
    CancelReason,
    MessagePart,
    SayKind,
    TextPart,
    UsageTotals,
)
from ..schemas.stream import ApiStreamChunk, ReasoningChunk, TextChunk, UsageChunk
from ..usage.drain import DEFAULT_DRAIN_TIMEOUT_SECONDS, BackgroundDrain
from . import responses
from .environment import build_environment_details
from .models import FrameStage, StackFrame
from .presenter import present_assistant_message

if TYPE_CHECKING:
    from ..task import Task

logger = logging.getLogger(__name__)


class RequestLoop:
    """Drive conversation turns of a task until the loop ends.

    Args:
        drain_timeout_seconds: Budget of the background usage drain.
        mode_switch_delay_seconds: Settle delay after restoring a paused task's mode.
        environment_max_files: Bound of the file listing in environment details.
    """

    def __init__(
        self,
        *,
        drain_timeout_seconds: float = DEFAULT_DRAIN_TIMEOUT_SECONDS,
        mode_switch_delay_seconds: float = 0.5,
        environment_max_files: int = 200,
    ) -> None:
        self._drain_timeout = drain_timeout_seconds
        self._mode_switch_delay = mode_switch_delay_seconds
        self._environment_max_files = environment_max_files

    async def run(self, task: Task, user_content: Sequence[MessagePart], include_file_details: bool = False) -> bool:
        """Run turns starting with ``user_content``.

        Returns:
            True when the task loop should end (task completed or failed),
            False when the turn ended without a decisive result.

        Raises:
            AbortedTaskError: The task was aborted when a turn was about to start.
        """
        stack: List[StackFrame] = [
            StackFrame(user_content=list(user_content), include_file_details=include_file_details)
        ]
        result = False

        while stack:
            frame = stack[-1]

            if frame.stage is FrameStage.complete:
                stack.pop()
                result = frame.did_end_loop
                if stack:
                    below = stack[-1]
                    below.did_end_loop = result
                    below.stage = FrameStage.complete
                continue

            if frame.stage is FrameStage.start and task.abort:
                raise AbortedTaskError(task.task_id, task.instance_id)

            continuation = await self._process(task, frame)
            if continuation is not None:
                stack.append(continuation)

        return result

    async def _process(self, task: Task, frame: StackFrame) -> Optional[StackFrame]:
        try:
            if frame.stage is FrameStage.start:
                await self._start(task, frame)
                return None
            return await self._after_api_call(task, frame)
        except AbortedTaskError as e:
            logger.info(f"Ending request loop: {e}")
        except Exception as e:
            logger.exception(f"Request loop failed for task {task.task_id}.{task.instance_id}")
            monitoring.capture_task_exception(
                task.task_id, e, {"abandoned": task.abandoned, "abort": task.abort, "context": "request_loop"}
            )
        frame.did_end_loop = True
        frame.stage = FrameStage.complete
        return None

    # =====================================================================
    # start
    # =====================================================================

    async def _start(self, task: Task, frame: StackFrame) -> None:
        await self._check_mistake_limit(task, frame)
        await self._resolve_pause(task)

        await task.say(
            SayKind.api_req_started,
            ApiRequestInfo(request=responses.format_request(frame.user_content) + "\n\nLoading...").to_text(),
        )
        frame.api_req_message = task.ui_messages[-1]

        environment_details = build_environment_details(
            task.cwd, task.mode, frame.include_file_details, self._environment_max_files
        )
        final_content: List[MessagePart] = [*frame.user_content, TextPart(text=environment_details)]
        await task.add_to_api_conversation_history("user", final_content)

        frame.api_req_message.text = ApiRequestInfo(request=responses.format_request(final_content)).to_text()
        await task.save_ui_messages()
        await task.host.post_state_update()

        await self._stream(task, frame)

    async def _check_mistake_limit(self, task: Task, frame: StackFrame) -> None:
        limit = task.consecutive_mistake_limit
        if limit <= 0 or task.consecutive_mistake_count < limit:
            return
        answer = await task.ask(AskKind.mistake_limit_reached, responses.MISTAKE_LIMIT_GUIDANCE)
        if answer.response == AskResponse.message_response:
            frame.user_content.append(TextPart(text=responses.too_many_mistakes(answer.text)))
            frame.user_content.extend(responses.image_parts(answer.images))
            await task.say(SayKind.user_feedback, answer.text, answer.images)
            monitoring.capture_consecutive_mistake_error(task.task_id)
        task.consecutive_mistake_count = 0

    async def _resolve_pause(self, task: Task) -> None:
        if not task.is_paused:
            return
        host = task.host
        host.log(f"[subtasks] paused {task.task_id}.{task.instance_id}")
        await task.wait_for_resume()
        host.log(f"[subtasks] resumed {task.task_id}.{task.instance_id}")

        current_mode = await host.get_mode()
        if task.paused_mode_slug and current_mode != task.paused_mode_slug:
            await host.handle_mode_switch(task.paused_mode_slug)
            await asyncio.sleep(self._mode_switch_delay)
            host.log(
                f"[subtasks] task {task.task_id}.{task.instance_id} has switched back to "
                f"'{task.paused_mode_slug}' from '{current_mode}'"
            )

    # =====================================================================
    # streaming
    # =====================================================================

    def _update_record(
        self,
        task: Task,
        frame: StackFrame,
        cancel_reason: Optional[CancelReason] = None,
        streaming_failed_message: Optional[str] = None,
    ) -> None:
        message = frame.api_req_message
        if message is None:
            return
        info = ApiRequestInfo.from_text(message.text)
        message.text = frame.accountant.apply_to(
            info,
            task.deps.api.get_model(),
            cancel_reason or info.cancel_reason,
            streaming_failed_message or info.streaming_failed_message,
        ).to_text()

    async def _abort_stream(
        self,
        task: Task,
        frame: StackFrame,
        cancel_reason: CancelReason,
        streaming_failed_message: Optional[str] = None,
    ) -> None:
        if task.edit_tracker.is_editing:
            task.edit_tracker.revert_changes()

        if task.ui_messages and task.ui_messages[-1].partial:
            task.ui_messages[-1].partial = False

        notice = (
            responses.INTERRUPTED_BY_API_ERROR
            if cancel_reason == CancelReason.streaming_failed
            else responses.INTERRUPTED_BY_USER
        )
        await task.add_to_api_conversation_history(
            "assistant", [TextPart(text=f"{frame.assistant_message}\n\n[{notice}]")]
        )

        self._update_record(task, frame, cancel_reason, streaming_failed_message)
        await task.save_ui_messages()
        task.did_finish_aborting_stream = True

    async def _stream(self, task: Task, frame: StackFrame) -> None:
        task.reset_streaming_state()
        model_info = task.deps.api.get_model()

        iterator = task.attempt_api_request().__aiter__()
        reasoning = ""
        task.is_streaming = True
        try:
            while True:
                try:
                    chunk = await iterator.__anext__()
                except StopAsyncIteration:
                    break

                if isinstance(chunk, ReasoningChunk):
                    reasoning += chunk.text
                    await task.say(SayKind.reasoning, reasoning, partial=True)
                elif isinstance(chunk, UsageChunk):
                    frame.accountant.add(chunk)
                elif isinstance(chunk, TextChunk):
                    frame.assistant_message += chunk.text
                    previous_count = len(task.assistant_message_content)
                    task.assistant_message_content = parse_assistant_message(frame.assistant_message)
                    if len(task.assistant_message_content) > previous_count:
                        task.user_message_content_ready.clear()
                    await present_assistant_message(task)

                if task.abort:
                    logger.info(f"Aborting stream of task {task.task_id}.{task.instance_id}, abandoned={task.abandoned}")
                    if not task.abandoned:
                        await self._abort_stream(task, frame, CancelReason.user_cancelled)
                    break

                if task.did_reject_tool:
                    frame.assistant_message += responses.INTERRUPTED_BY_FEEDBACK
                    break

                if task.did_already_use_tool:
                    frame.assistant_message += responses.INTERRUPTED_BY_TOOL_USE
                    break

            self._start_drain(task, frame, iterator, model_info.model_id)
            frame.stage = FrameStage.after_api_call
        except AbortedTaskError:
            await close_stream(iterator)
            if not task.abandoned and not task.did_finish_aborting_stream:
                await self._abort_stream(task, frame, CancelReason.user_cancelled)
        except Exception as error:
            monitoring.capture_task_exception(
                task.task_id, error, {"abandoned": task.abandoned, "abort": task.abort, "context": "request"}
            )
            await close_stream(iterator)
            if not task.abandoned:
                cancel_reason = CancelReason.user_cancelled if task.abort else CancelReason.streaming_failed
                failed_message = None if task.abort else (str(error) or type(error).__name__)
                await task.abort_task()
                await self._abort_stream(task, frame, cancel_reason, failed_message)
                try:
                    item = await task.host.get_task_with_id(task.task_id)
                except TaskNotFoundError:
                    logger.warning(f"Cannot reload task {task.task_id} after a failed stream: no history item")
                else:
                    await task.host.init_task_with_history_item(item)
        finally:
            task.is_streaming = False

        if task.abort or task.abandoned:
            raise AbortedTaskError(task.task_id, task.instance_id)

    def _start_drain(
        self,
        task: Task,
        frame: StackFrame,
        iterator: AsyncIterator[ApiStreamChunk],
        model_id: str,
    ) -> BackgroundDrain:
        async def refresh() -> None:
            if task.abandoned:
                return
            self._update_record(task, frame)
            await task.save_ui_messages()
            if frame.api_req_message is not None:
                await task.host.update_ui_message(task, frame.api_req_message)

        async def on_usage(totals: UsageTotals) -> None:
            await refresh()
            monitoring.capture_llm_completion(
                task.task_id,
                totals.input_tokens,
                totals.output_tokens,
                totals.cache_write_tokens,
                totals.cache_read_tokens,
                frame.accountant.cost(task.deps.api.get_model()),
            )

        drain = BackgroundDrain(
            iterator,
            frame.accountant,
            on_usage=on_usage,
            on_missing=refresh,
            timeout_seconds=self._drain_timeout,
            is_cancelled=lambda: task.abort,
            model_id=model_id,
        )
        drain.start()
        task.background_drains.append(drain)
        return drain

    # =====================================================================
    # after_api_call
    # =====================================================================

    async def _after_api_call(self, task: Task, frame: StackFrame) -> Optional[StackFrame]:
        task.did_complete_reading_stream = True

        partial_blocks = [block for block in task.assistant_message_content if block.partial]
        for block in partial_blocks:
            block.partial = False
        if partial_blocks:
            await present_assistant_message(task)

        self._update_record(task, frame)
        await task.save_ui_messages()
        await task.host.post_state_update()

        if not frame.assistant_message:
            await task.say(SayKind.error, responses.NO_RESPONSE_ERROR)
            await task.add_to_api_conversation_history("assistant", [TextPart(text=responses.NO_RESPONSE_FAILURE)])
            frame.did_end_loop = False
            frame.stage = FrameStage.complete
            return None

        await task.add_to_api_conversation_history("assistant", [TextPart(text=frame.assistant_message)])

        if not task.user_message_content_ready.is_set():
            await present_assistant_message(task)
        await task.user_message_content_ready.wait()

        if task.did_complete_task:
            frame.did_end_loop = True
            frame.stage = FrameStage.complete
            return None

        if not any(isinstance(block, ToolUse) for block in task.assistant_message_content):
            task.user_message_content.append(TextPart(text=responses.no_tools_used()))
            task.consecutive_mistake_count += 1

        return StackFrame(user_content=list(task.user_message_content), include_file_details=False)
