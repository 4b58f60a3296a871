"""The task provider.

``TaskProvider`` is the host of a task stack. It owns the current mode and the
``TaskStackOrchestrator``, creates root tasks and subtasks, reopens persisted
tasks (rebuilding the ancestor chain of a subtask), and runs every task loop
as a background ``asyncio`` task so the caller is never blocked by a
conversation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, List, Optional, Sequence, Set

from sqlalchemy.ext.asyncio import AsyncEngine

from ...core import monitoring
from ...core.config import Settings
from ..errors import AbortedTaskError, TaskNotFoundError
from ..modes import coerce_mode
from ..orchestrator import TaskStackOrchestrator
from ..repos.interfaces import TaskHistoryRepository
from ..runtime.models import TaskDeps
from ..schemas.domain import HistoryItem, ProviderState, UiMessage
from ..task import Task

logger = logging.getLogger(__name__)

CANCEL_WAIT_SECONDS = 3.0


class TaskProvider:
    """Host of the task stack.

    Args:
        deps: Collaborators shared by all tasks.
        history: Repository of task history items.
        settings: Application settings.
        engine: Database engine owned by the provider; disposed by ``dispose``.
    """

    def __init__(
        self,
        *,
        deps: TaskDeps,
        history: TaskHistoryRepository,
        settings: Settings,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self._deps = deps
        self._history = history
        self._settings = settings
        self._engine = engine
        self._mode = coerce_mode(settings.default_mode).value
        self._running: Set[asyncio.Task[None]] = set()
        self.orchestrator = TaskStackOrchestrator(self.get_task_with_id, self._task_from_history, self)

    @property
    def current_task(self) -> Optional[Task]:
        return self.orchestrator.current_task

    def _task_from_history(self, item: HistoryItem, paused: bool) -> Task:
        return Task.from_history_item(item, deps=self._deps, host=self, paused=paused)

    # =====================================================================
    # Background task loops
    # =====================================================================

    def _launch(self, coro: Awaitable[None], name: str) -> asyncio.Task[None]:
        running = asyncio.create_task(self._run_guarded(coro, name), name=name)
        self._running.add(running)
        running.add_done_callback(self._running.discard)
        return running

    async def _run_guarded(self, coro: Awaitable[None], name: str) -> None:
        try:
            await coro
        except AbortedTaskError as e:
            logger.info(f"{name} ended: {e}")
        except Exception:
            logger.exception(f"{name} failed")

    async def wait_for_idle(self) -> None:
        """Wait until every launched task loop has finished."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    # =====================================================================
    # Modes
    # =====================================================================

    async def get_mode(self) -> str:
        return self._mode

    async def handle_mode_switch(self, mode: str) -> None:
        new_mode = coerce_mode(mode).value
        previous = self._mode
        self._mode = new_mode
        task = self.current_task
        if task is not None:
            task.mode = new_mode
        logger.info(f"Switched mode from '{previous}' to '{new_mode}'")
        await self.post_state_update()

    # =====================================================================
    # Task creation
    # =====================================================================

    async def create_task(
        self,
        text: str,
        images: Optional[Sequence[str]] = None,
        mode: Optional[str] = None,
        parent: Optional[Task] = None,
    ) -> Task:
        """Create a task and start its loop in the background.

        Without ``parent`` the stack is cleared and the task becomes the new
        root. With ``parent`` the task is pushed above it and the parent is
        paused in the current mode.
        """
        if mode is not None and parent is None:
            await self.handle_mode_switch(mode)
        task_mode = coerce_mode(mode).value if mode is not None else self._mode

        if parent is None:
            await self.orchestrator.clear_stack()
            task = Task(deps=self._deps, host=self, mode=task_mode, workspace=self._settings.workspace)
        else:
            task = Task(
                deps=self._deps,
                host=self,
                mode=task_mode,
                workspace=parent.workspace,
                root_task_id=parent.root_task_id or parent.task_id,
                parent_task_id=parent.task_id,
                task_number=self.orchestrator.size + 1,
            )

        await self.orchestrator.add_to_stack(task)
        if parent is not None and task_mode != self._mode:
            await self.handle_mode_switch(task_mode)
            await asyncio.sleep(self._settings.mode_switch_delay_seconds)

        monitoring.capture_task_created(task.task_id, task_mode)
        self.log(f"[subtasks] created task {task.task_id}.{task.instance_id} (parent={task.parent_task_id})")
        self._launch(task.start_task(text, images), name=f"task:{task.task_id}")
        return task

    async def create_subtask(self, parent: Task, mode: str, message: str) -> Task:
        return await self.create_task(message, mode=mode, parent=parent)

    async def finish_subtask(self, last_message: str) -> None:
        parent = await self.orchestrator.remove_from_stack(last_message)
        if parent is None:
            return
        self.log(f"[subtasks] resumed task {parent.task_id}.{parent.instance_id}")
        if not parent.is_running:
            self._launch(parent.resume_after_subtask(), name=f"task:{parent.task_id}")
        await self.post_state_update()

    # =====================================================================
    # Persisted tasks
    # =====================================================================

    async def get_task_with_id(self, task_id: str) -> HistoryItem:
        item = await self._history.get(task_id)
        if item is None:
            raise TaskNotFoundError(task_id)
        return item

    async def init_task_with_history_item(self, item: HistoryItem) -> Optional[Task]:
        """Replace the stack top (same id) or the whole stack with a task rebuilt from ``item``."""
        task = self._task_from_history(item, False)
        current = self.current_task
        if current is not None and current.task_id == item.id:
            self.orchestrator.replace_current(task)
        else:
            await self.orchestrator.clear_stack()
            await self.orchestrator.add_to_stack(task)

        if item.mode and item.mode != self._mode:
            await self.handle_mode_switch(item.mode)

        self._launch(task.resume_task_from_history(), name=f"task:{task.task_id}")
        return task

    async def show_task_with_id(self, task_id: str) -> Optional[Task]:
        """Open a task, rebuilding its ancestor chain when it is a subtask."""
        current = self.current_task
        if current is not None and current.task_id == task_id:
            return current

        leaf = await self.orchestrator.reconstruct_stack(task_id)
        if leaf is None:
            return await self.init_task_with_history_item(await self.get_task_with_id(task_id))

        if leaf.mode != self._mode:
            await self.handle_mode_switch(leaf.mode)
        self._launch(leaf.resume_task_from_history(), name=f"task:{leaf.task_id}")
        await self.post_state_update()
        return leaf

    async def cancel_task(self) -> Optional[Task]:
        """Abort the current task and reload it from history."""
        task = self.current_task
        if task is None:
            return None
        logger.info(f"Cancelling task {task.task_id}.{task.instance_id}")
        await task.abort_task()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + CANCEL_WAIT_SECONDS
        while loop.time() < deadline:
            if not task.is_streaming or task.did_finish_aborting_stream or task.is_waiting_for_first_chunk:
                break
            await asyncio.sleep(0.05)
        else:
            logger.warning(f"Timed out waiting for task {task.task_id} to finish aborting")

        # Drains still running for this task must not write to the reloaded one.
        task.abandoned = True

        try:
            item = await self.get_task_with_id(task.task_id)
        except TaskNotFoundError:
            logger.warning(f"Cannot reload cancelled task {task.task_id}: no history item")
            return None
        return await self.init_task_with_history_item(item)

    # =====================================================================
    # Collaborator callbacks
    # =====================================================================

    async def update_task_history(self, item: HistoryItem) -> None:
        await self._history.upsert(item)

    async def post_state_update(self) -> None:
        task = self.current_task
        state = ProviderState(
            mode=self._mode,
            current_task_id=task.task_id if task is not None else None,
            task_stack=self.orchestrator.task_ids(),
            ui_messages=list(task.ui_messages) if task is not None else [],
        )
        await self._deps.ui.post_state(state)

    async def update_ui_message(self, task: Task, message: UiMessage) -> None:
        await self._deps.ui.update_message(task, message)

    def log(self, message: str) -> None:
        logger.info(message)

    async def list_history(self, limit: int = 100) -> List[HistoryItem]:
        return await self._history.list(limit)

    async def dispose(self) -> None:
        await self.orchestrator.clear_stack()
        for running in list(self._running):
            running.cancel()
        await asyncio.gather(*list(self._running), return_exceptions=True)
        if self._engine is not None:
            await self._engine.dispose()
        logger.debug("Task provider disposed")
