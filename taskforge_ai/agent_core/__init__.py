"""Agent engine: request loop, task stack and persistence abstractions.

Design overview
---------------

A ``Task`` is one conversation with the backend. Its turns are driven by
``runtime.RequestLoop``:

- Each turn sends the pending user content plus an environment-details unit
  and streams the reply.
- The reply is parsed incrementally (``parsing``) into text, reasoning and
  tool-use blocks. The presenter shows them and executes the first complete
  tool through ``tools.ToolHandlerRegistry``.
- Token usage arriving after the loop stopped reading is collected by a
  ``usage.BackgroundDrain`` and written into the turn's request record.

Tasks may delegate work with the ``new_task`` tool. The
``orchestrator.TaskStackOrchestrator`` keeps the chain of active tasks, pauses
a parent while its child runs and resumes it with the child's result. The
chain can be rebuilt from persisted ``HistoryItem`` records.

Typical usage
-------------

Most applications should use ``host.TaskProvider`` built by
``factory.build_provider``:

1. Create a root task with ``create_task``.
2. Wait for it (``wait_for_idle``) or cancel it (``cancel_task``).
3. Reopen any persisted task with ``show_task_with_id``.
"""

from .errors import AbortedTaskError, ModeNotFoundError, TaskforgeError, TaskNotFoundError, ToolExecutionError
from .host import HeadlessUI, TaskProvider
from .modes import Mode, get_mode_spec
from .orchestrator import TaskStackOrchestrator
from .task import Task

__all__ = [
    "AbortedTaskError",
    "ModeNotFoundError",
    "TaskforgeError",
    "TaskNotFoundError",
    "ToolExecutionError",
    "HeadlessUI",
    "TaskProvider",
    "Mode",
    "get_mode_spec",
    "TaskStackOrchestrator",
    "Task",
]
