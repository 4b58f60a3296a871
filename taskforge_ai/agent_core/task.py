"""A single agent task.

``Task`` owns the state of one conversation with the backend: the UI
timeline, the backend conversation, the abort/pause flags, and the per-turn
streaming state shared between the request loop and the presenter.

Lifecycle
---------

- ``start_task`` begins a new task from the user's text.
- ``resume_task_from_history`` reopens a persisted task and asks the user
  whether to continue.
- ``resume_after_subtask`` continues a task that was rebuilt from history
  while one of its subtasks was running, once that subtask has finished.

Every entry point ends up in ``initiate_task_loop``, which keeps calling
``RequestLoop.run`` until the loop ends or the task is aborted.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator, List, Literal, Optional, Sequence

from ..core import monitoring
from .errors import AbortedTaskError
from .providers.base import close_stream
from .runtime import responses
from .runtime.prompts import build_system_prompt
from .schemas.content import ContentBlock
from .schemas.domain import (
    ApiMessage,
    ApiRequestInfo,
    AskKind,
    AskResponse,
    AskResult,
    HistoryItem,
    MessagePart,
    SayKind,
    TextPart,
    UiMessage,
    UsageTotals,
    now_ms,
)
from .schemas.stream import ApiStreamChunk
from .tools.edit_tracker import EditTracker

if TYPE_CHECKING:
    from .host.interfaces import TaskHost
    from .runtime.models import TaskDeps
    from .usage.drain import BackgroundDrain

logger = logging.getLogger(__name__)

_RESUME_ASKS = (AskKind.resume_task, AskKind.resume_completed_task)


def _format_ago(ts: Optional[int]) -> str:
    if not ts:
        return "some time ago"
    seconds = max(0, (now_ms() - ts) // 1000)
    if seconds < 60:
        return "just now"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''} ago"


class Task:
    """One task of the task stack.

    Args:
        deps: Collaborators shared by all tasks of the host.
        host: The host owning the task stack.
        mode: Mode slug the task runs in.
        workspace: Working directory of the task.
        task_id: Persistent id; a new one is generated when omitted.
        root_task_id: Id of the root of the task's hierarchy (subtasks only).
        parent_task_id: Id of the task that created this one (subtasks only).
        task_number: Sequence number shown to the user.
        paused: Start paused, waiting for a subtask to finish.
        paused_mode_slug: Mode to restore when a paused task resumes.
    """

    def __init__(
        self,
        *,
        deps: TaskDeps,
        host: TaskHost,
        mode: str,
        workspace: str,
        task_id: Optional[str] = None,
        root_task_id: Optional[str] = None,
        parent_task_id: Optional[str] = None,
        task_number: int = 1,
        paused: bool = False,
        paused_mode_slug: Optional[str] = None,
    ) -> None:
        self.deps = deps
        self.host = host
        self.mode = mode
        self.workspace = workspace
        self.task_id = task_id or str(uuid.uuid4())
        self.instance_id = uuid.uuid4().hex[:8]
        self.root_task_id = root_task_id
        self.parent_task_id = parent_task_id
        self.task_number = task_number

        self.api_conversation_history: List[ApiMessage] = []
        self.ui_messages: List[UiMessage] = []
        self._messages_loaded = False
        self._last_ts = 0

        self.abort = False
        self.abandoned = False
        self.is_paused = paused
        self.paused_mode_slug = paused_mode_slug or (mode if paused else None)
        self.did_finish_aborting_stream = False
        self.is_running = False
        self.is_streaming = False
        self.is_waiting_for_first_chunk = False
        self.did_complete_task = False

        self.consecutive_mistake_count = 0
        self.consecutive_mistake_limit = deps.settings.consecutive_mistake_limit
        self.edit_tracker = EditTracker()
        self.background_drains: List[BackgroundDrain] = []

        self._resume_event = asyncio.Event()
        self._resume_content: Optional[List[MessagePart]] = None

        # Streaming state of the current turn
        self.current_streaming_content_index = 0
        self.assistant_message_content: List[ContentBlock] = []
        self.user_message_content: List[MessagePart] = []
        self.user_message_content_ready = asyncio.Event()
        self.did_reject_tool = False
        self.did_already_use_tool = False
        self.did_complete_reading_stream = False
        self.present_locked = False
        self.present_has_pending_updates = False

    @classmethod
    def from_history_item(cls, item: HistoryItem, *, deps: TaskDeps, host: TaskHost, paused: bool = False) -> "Task":
        """Rebuild a task object from its persisted history item."""
        mode = item.mode or deps.settings.default_mode
        return cls(
            deps=deps,
            host=host,
            mode=mode,
            workspace=item.workspace or deps.settings.workspace,
            task_id=item.id,
            root_task_id=item.root_task_id,
            parent_task_id=item.parent_task_id,
            task_number=item.number,
            paused=paused,
            paused_mode_slug=mode if paused else None,
        )

    @property
    def cwd(self) -> str:
        return self.workspace

    @property
    def is_subtask(self) -> bool:
        return self.parent_task_id is not None

    def resolve_path(self, rel_path: str) -> Path:
        path = Path(rel_path)
        return path if path.is_absolute() else Path(self.cwd) / path

    def _next_ts(self) -> int:
        ts = max(now_ms(), self._last_ts + 1)
        self._last_ts = ts
        return ts

    def _raise_if_aborted(self) -> None:
        if self.abort:
            raise AbortedTaskError(self.task_id, self.instance_id)

    def reset_streaming_state(self) -> None:
        self.current_streaming_content_index = 0
        self.assistant_message_content = []
        self.did_complete_reading_stream = False
        self.user_message_content = []
        self.user_message_content_ready = asyncio.Event()
        self.did_reject_tool = False
        self.did_already_use_tool = False
        self.present_locked = False
        self.present_has_pending_updates = False
        self.did_finish_aborting_stream = False
        self.background_drains = [drain for drain in self.background_drains if not drain.done]
        self.edit_tracker.reset()

    # =====================================================================
    # UI timeline
    # =====================================================================

    async def say(
        self,
        kind: SayKind,
        text: Optional[str] = None,
        images: Optional[Sequence[str]] = None,
        partial: Optional[bool] = None,
    ) -> None:
        """Show a message to the user.

        ``partial=True`` streams a message: consecutive partial calls of the
        same kind update the last message in place, and ``partial=False``
        finalizes it.
        """
        self._raise_if_aborted()
        last = self.ui_messages[-1] if self.ui_messages else None
        is_update = bool(last is not None and last.partial and last.type == "say" and last.say == kind)

        if partial is not None and is_update and last is not None:
            last.text = text
            last.images = list(images or [])
            last.partial = partial
            if not partial:
                await self.save_ui_messages()
            await self.host.update_ui_message(self, last)
            return

        message = UiMessage(
            ts=self._next_ts(),
            type="say",
            say=kind,
            text=text,
            images=list(images or []),
            partial=partial,
        )
        self.ui_messages.append(message)
        if not partial:
            await self.save_ui_messages()
        await self.deps.ui.say(self, message)

    async def ask(self, kind: AskKind, text: Optional[str] = None) -> AskResult:
        """Ask the user and wait for the answer.

        Raises:
            AbortedTaskError: The task was aborted before or while waiting.
        """
        self._raise_if_aborted()
        message = UiMessage(ts=self._next_ts(), type="ask", ask=kind, text=text)
        self.ui_messages.append(message)
        await self.save_ui_messages()
        result = await self.deps.ui.ask(self, message)
        self._raise_if_aborted()
        return result

    # =====================================================================
    # Persistence
    # =====================================================================

    async def add_to_api_conversation_history(
        self, role: Literal["user", "assistant"], content: Sequence[MessagePart]
    ) -> None:
        self.api_conversation_history.append(ApiMessage(role=role, content=list(content), ts=now_ms()))
        await self.deps.messages.save_api_messages(self.task_id, self.api_conversation_history)
        monitoring.capture_conversation_message(self.task_id, role)

    async def save_ui_messages(self) -> None:
        await self.deps.messages.save_ui_messages(self.task_id, self.ui_messages)
        await self.host.update_task_history(self.to_history_item())

    async def load_saved_messages(self) -> None:
        self.ui_messages = await self.deps.messages.load_ui_messages(self.task_id)
        self.api_conversation_history = await self.deps.messages.load_api_messages(self.task_id)
        if self.ui_messages:
            self._last_ts = self.ui_messages[-1].ts
        self._messages_loaded = True

    def get_token_usage(self) -> UsageTotals:
        """Sum the request records of the UI timeline."""
        totals = UsageTotals(total_cost=0.0)
        for message in self.ui_messages:
            if message.say != SayKind.api_req_started or not message.text:
                continue
            try:
                info = ApiRequestInfo.from_text(message.text)
            except ValueError:
                logger.warning(f"Skipping malformed request record in task {self.task_id}")
                continue
            totals.input_tokens += info.tokens_in or 0
            totals.output_tokens += info.tokens_out or 0
            totals.cache_write_tokens += info.cache_writes or 0
            totals.cache_read_tokens += info.cache_reads or 0
            totals.total_cost = (totals.total_cost or 0.0) + (info.cost or 0.0)
        return totals

    def to_history_item(self) -> HistoryItem:
        usage = self.get_token_usage()
        first = next((m for m in self.ui_messages if m.say == SayKind.task), None)
        return HistoryItem(
            id=self.task_id,
            root_task_id=self.root_task_id,
            parent_task_id=self.parent_task_id,
            number=self.task_number,
            ts=self.ui_messages[-1].ts if self.ui_messages else now_ms(),
            task=(first.text or "") if first is not None else "",
            tokens_in=usage.input_tokens,
            tokens_out=usage.output_tokens,
            cache_writes=usage.cache_write_tokens,
            cache_reads=usage.cache_read_tokens,
            total_cost=usage.total_cost or 0.0,
            workspace=self.workspace,
            mode=self.mode,
        )

    # =====================================================================
    # Pause / resume / abort
    # =====================================================================

    def pause(self, mode: Optional[str]) -> None:
        """Pause the task while a subtask runs, remembering the mode to restore."""
        self.is_paused = True
        self.paused_mode_slug = mode or self.mode
        self._resume_event.clear()

    async def wait_for_resume(self) -> None:
        while self.is_paused and not self.abort:
            await self._resume_event.wait()
            self._resume_event.clear()
        self._raise_if_aborted()

    async def resume_paused_task(self, last_message: Optional[str] = None) -> None:
        """Resume after a subtask finished.

        A running task receives the subtask result as a user message right
        away; a task that is not running yet keeps it for
        ``resume_after_subtask``.
        """
        self.is_paused = False
        if not self._messages_loaded:
            await self.load_saved_messages()

        if last_message is not None:
            await self.say(SayKind.subtask_result, last_message)
            content: List[MessagePart] = [TextPart(text=responses.subtask_completed(last_message))]
            if self.is_running:
                await self.add_to_api_conversation_history("user", content)
            else:
                self._resume_content = content

        self._resume_event.set()

    async def abort_task(self, abandoned: bool = False) -> None:
        if abandoned:
            self.abandoned = True
        self.abort = True
        self._resume_event.set()
        logger.info(f"Aborting task {self.task_id}.{self.instance_id} (abandoned={self.abandoned})")

        if self.is_streaming and self.edit_tracker.is_editing:
            self.edit_tracker.revert_changes()

        try:
            await self.save_ui_messages()
        except Exception:
            logger.exception(f"Failed to save messages of aborted task {self.task_id}")

    # =====================================================================
    # Backend request
    # =====================================================================

    async def attempt_api_request(self) -> AsyncIterator[ApiStreamChunk]:
        """Stream the backend's reply to the current conversation.

        A failure before the first unit is offered to the user as a retry;
        later failures propagate to the request loop.
        """
        system_prompt = build_system_prompt(self.mode, self.cwd)

        while True:
            stream = self.deps.api.create_message(system_prompt, list(self.api_conversation_history)).__aiter__()
            self.is_waiting_for_first_chunk = True
            try:
                first = await stream.__anext__()
            except StopAsyncIteration:
                return
            except AbortedTaskError:
                await close_stream(stream)
                raise
            except Exception as error:
                await close_stream(stream)
                self.is_waiting_for_first_chunk = False
                logger.warning(f"API request of task {self.task_id} failed: {error}")
                answer = await self.ask(AskKind.api_req_failed, str(error) or type(error).__name__)
                if answer.response != AskResponse.yes_button:
                    raise
                await self.say(SayKind.api_req_retried)
                continue
            finally:
                self.is_waiting_for_first_chunk = False
            break

        try:
            yield first
            async for chunk in stream:
                yield chunk
        finally:
            await close_stream(stream)

    # =====================================================================
    # Entry points
    # =====================================================================

    async def start_task(self, text: str, images: Optional[Sequence[str]] = None) -> None:
        self.ui_messages = []
        self.api_conversation_history = []
        self._messages_loaded = True
        await self.say(SayKind.task, text, images)
        await self.initiate_task_loop(
            [TextPart(text=f"<task>\n{text}\n</task>"), *responses.image_parts(images)]
        )

    async def resume_task_from_history(self) -> None:
        await self.load_saved_messages()

        ui_messages = list(self.ui_messages)
        while ui_messages and ui_messages[-1].type == "ask" and ui_messages[-1].ask in _RESUME_ASKS:
            ui_messages.pop()
        # A request that never got a reply carries neither a cost nor a cancel reason.
        if ui_messages and ui_messages[-1].say == SayKind.api_req_started:
            info = ApiRequestInfo.from_text(ui_messages[-1].text)
            if info.cost is None and info.cancel_reason is None:
                ui_messages.pop()
        self.ui_messages = ui_messages

        last = ui_messages[-1] if ui_messages else None
        ago = _format_ago(last.ts if last is not None else None)
        completed = last is not None and last.ask == AskKind.completion_result
        answer = await self.ask(AskKind.resume_completed_task if completed else AskKind.resume_task)
        if answer.response == AskResponse.no_button:
            logger.info(f"Task {self.task_id} was not resumed")
            return

        feedback: Optional[str] = None
        if answer.response == AskResponse.message_response:
            feedback = answer.text
            await self.say(SayKind.user_feedback, answer.text, answer.images)

        history = list(self.api_conversation_history)
        content: List[MessagePart] = []
        if history and history[-1].role == "user":
            previous = history.pop()
            content.extend(
                part
                for part in previous.content
                if not (isinstance(part, TextPart) and part.text.startswith("<environment_details>"))
            )
        content.append(TextPart(text=responses.task_resumption(ago, self.cwd, feedback)))
        content.extend(responses.image_parts(answer.images))

        self.api_conversation_history = history
        await self.deps.messages.save_api_messages(self.task_id, history)
        monitoring.capture_task_restarted(self.task_id)
        await self.initiate_task_loop(content)

    async def resume_after_subtask(self) -> None:
        if not self._messages_loaded:
            await self.load_saved_messages()
        content = self._resume_content
        self._resume_content = None
        if not content:
            await self.resume_task_from_history()
            return
        await self.initiate_task_loop(content)

    async def initiate_task_loop(self, user_content: Sequence[MessagePart]) -> None:
        self.is_running = True
        next_content: List[MessagePart] = list(user_content)
        include_file_details = True
        started = time.monotonic()
        try:
            while not self.abort:
                did_end_loop = await self.deps.loop.run(self, next_content, include_file_details)
                include_file_details = False
                if did_end_loop:
                    break
                next_content = [TextPart(text=responses.no_tools_used())]
                self.consecutive_mistake_count += 1
        except AbortedTaskError as e:
            logger.info(f"Task loop ended: {e}")
        finally:
            self.is_running = False
            logger.debug(f"Task {self.task_id}.{self.instance_id} loop finished after {time.monotonic() - started:.2f}s")
