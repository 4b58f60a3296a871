"""Host collaborator of the tasks.

- ``TaskProvider``: owns the task stack and the current mode.
- ``TaskUI`` / ``TaskHost``: Protocols the tasks talk to.
- ``HeadlessUI``: a ``TaskUI`` that answers from a fixed table and logs.
"""

from .headless import HeadlessUI
from .interfaces import TaskHost, TaskUI
from .provider import TaskProvider

__all__ = ["HeadlessUI", "TaskHost", "TaskProvider", "TaskUI"]
