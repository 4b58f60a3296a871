"""The task stack.

The stack holds a root task and its active chain of subtasks. Only the top
task runs; every task below it is paused until the task above it finishes.

``reconstruct_stack`` rebuilds the chain from persisted history items when a
subtask is reopened, so finishing that subtask resumes its parent exactly as
if the engine had never been restarted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional, Protocol, Set

from ..schemas.domain import HistoryItem

if TYPE_CHECKING:
    from ..task import Task

logger = logging.getLogger(__name__)

HistoryLookup = Callable[[str], Awaitable[HistoryItem]]
TaskFactory = Callable[[HistoryItem, bool], "Task"]


class ModeController(Protocol):
    async def get_mode(self) -> str:
        ...

    async def handle_mode_switch(self, mode: str) -> None:
        ...


class TaskStackOrchestrator:
    """Maintain the stack of active tasks.

    Args:
        history_lookup: Resolve a task id to its history item; raises
            ``TaskNotFoundError`` for unknown ids.
        task_factory: Build a task from a history item; the flag tells
            whether the task starts paused.
        modes: Source of the current mode and mode switches.
    """

    def __init__(self, history_lookup: HistoryLookup, task_factory: TaskFactory, modes: ModeController) -> None:
        self._history_lookup = history_lookup
        self._task_factory = task_factory
        self._modes = modes
        self._stack: List[Task] = []

    @property
    def current_task(self) -> Optional[Task]:
        return self._stack[-1] if self._stack else None

    @property
    def size(self) -> int:
        return len(self._stack)

    def task_ids(self) -> List[str]:
        return [task.task_id for task in self._stack]

    async def add_to_stack(self, task: Task) -> None:
        """Push a task, pausing the previous top in the current mode."""
        previous = self.current_task
        if previous is not None:
            previous.pause(await self._modes.get_mode())
        self._push(task)

    def _push(self, task: Task) -> None:
        self._stack.append(task)
        logger.debug(f"Pushed task {task.task_id}.{task.instance_id} (stack size {len(self._stack)})")

    async def remove_from_stack(self, last_message: Optional[str] = None) -> Optional[Task]:
        """Pop the top task and resume the task beneath it.

        Returns:
            The new top task, or None when the stack is empty.
        """
        if not self._stack:
            return None
        finished = self._stack.pop()
        logger.debug(f"Popped task {finished.task_id}.{finished.instance_id} (stack size {len(self._stack)})")
        await finished.abort_task(abandoned=True)

        top = self.current_task
        if top is None:
            return None

        current_mode = await self._modes.get_mode()
        if top.paused_mode_slug and top.paused_mode_slug != current_mode:
            await self._modes.handle_mode_switch(top.paused_mode_slug)
        await top.resume_paused_task(last_message)
        return top

    def replace_current(self, task: Task) -> None:
        if self._stack:
            self._stack[-1] = task
        else:
            self._stack.append(task)

    async def clear_stack(self) -> None:
        while self._stack:
            task = self._stack.pop()
            await task.abort_task(abandoned=True)

    async def build_hierarchy(self, leaf: HistoryItem) -> List[HistoryItem]:
        """Return the ancestor chain of ``leaf``, root first.

        A parent link that revisits an already collected task ends the walk.

        Raises:
            TaskNotFoundError: A parent id has no history item.
        """
        chain = [leaf]
        seen: Set[str] = {leaf.id}
        current = leaf
        while current.parent_task_id:
            if current.parent_task_id in seen:
                logger.warning(
                    f"Circular parent reference detected at task {current.id} -> {current.parent_task_id}; "
                    "stopping hierarchy walk"
                )
                break
            current = await self._history_lookup(current.parent_task_id)
            seen.add(current.id)
            chain.append(current)
        chain.reverse()
        return chain

    async def reconstruct_stack(self, leaf_id: str) -> Optional[Task]:
        """Rebuild the stack ending at the subtask ``leaf_id``.

        Every ancestor is pushed paused; the leaf is pushed unpaused.

        Returns:
            The leaf task, or None when ``leaf_id`` is not a subtask.
        """
        leaf = await self._history_lookup(leaf_id)
        if not leaf.parent_task_id:
            return None

        hierarchy = await self.build_hierarchy(leaf)
        await self.clear_stack()
        last = len(hierarchy) - 1
        for index, item in enumerate(hierarchy):
            self._push(self._task_factory(item, index < last))

        logger.info(f"Reconstructed task stack of {len(hierarchy)} tasks ending at {leaf_id}")
        return self.current_task
