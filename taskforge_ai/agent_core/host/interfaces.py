"""Host and UI contracts.

Tasks never talk to the task stack or to a concrete UI directly; they go
through these Protocols so the engine can run headless, inside an editor
integration, or against test fakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Protocol

from ..schemas.domain import AskResult, HistoryItem, ProviderState, UiMessage

if TYPE_CHECKING:
    from ..task import Task


class TaskUI(Protocol):
    """Presentation surface of the tasks."""

    async def ask(self, task: Task, message: UiMessage) -> AskResult:
        """
        Present a question and wait for the user's answer.

        Args:
            task: The asking task.
            message: The ``ask`` UI message already appended to the timeline.
        """
        ...

    async def say(self, task: Task, message: UiMessage) -> None:
        ...

    async def update_message(self, task: Task, message: UiMessage) -> None:
        """Refresh a message that was changed in place (partial updates, usage)."""
        ...

    async def post_state(self, state: ProviderState) -> None:
        ...


class TaskHost(Protocol):
    """Owner of the task stack as seen from a task."""

    def log(self, message: str) -> None:
        ...

    async def get_mode(self) -> str:
        ...

    async def handle_mode_switch(self, mode: str) -> None:
        ...

    async def get_task_with_id(self, task_id: str) -> HistoryItem:
        """
        Resolve a task id to its persisted history item.

        Raises:
            TaskNotFoundError: No history item exists for the id.
        """
        ...

    async def init_task_with_history_item(self, item: HistoryItem) -> Optional[Task]:
        ...

    async def post_state_update(self) -> None:
        ...

    async def update_ui_message(self, task: Task, message: UiMessage) -> None:
        ...

    async def update_task_history(self, item: HistoryItem) -> None:
        ...

    async def create_subtask(self, parent: Task, mode: str, message: str) -> Task:
        """Create a child of ``parent`` in ``mode``; ``parent`` is paused."""
        ...

    async def finish_subtask(self, last_message: str) -> None:
        """Pop the finished top task and resume its parent with ``last_message``."""
        ...
