"""Exception hierarchy of the agent core."""

from __future__ import annotations


class TaskforgeError(Exception):
    """Base class for all errors raised by the agent core."""


class AbortedTaskError(TaskforgeError):
    """Raised when work is attempted on a task that has been aborted."""

    def __init__(self, task_id: str, instance_id: str) -> None:
        self.task_id = task_id
        self.instance_id = instance_id
        super().__init__(f"[TaskforgeAI#request] task {task_id}.{instance_id} aborted")


class TaskNotFoundError(TaskforgeError):
    """Raised when no persisted history record exists for a task id."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class ToolExecutionError(TaskforgeError):
    """Raised by a tool handler when the tool itself failed to run."""


class ModeNotFoundError(TaskforgeError):
    """Raised when a mode slug does not name a known mode."""

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"Unknown mode: {slug}")
