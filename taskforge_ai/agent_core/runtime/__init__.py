"""Request loop runtime.

- ``RequestLoop`` drives the conversation turns of one task.
- ``StackFrame``/``FrameStage`` model a pending turn.
- ``TaskDeps`` bundles the collaborators shared by the tasks of a host.
"""

from .models import FrameStage, StackFrame, TaskDeps
from .presenter import present_assistant_message
from .request_loop import RequestLoop

__all__ = ["FrameStage", "StackFrame", "TaskDeps", "RequestLoop", "present_assistant_message"]
