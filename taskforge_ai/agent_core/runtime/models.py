"""Runtime dependency bundle and request-loop frame types.

The runtime is designed to be dependency-injected.

- ``TaskDeps`` collects the collaborators every task of a host shares.
- ``StackFrame`` is one pending turn of the request loop. Turns are kept on
  an explicit, owned list instead of the native call stack, so an arbitrarily
  long tool chain never deepens recursion and stopping a task is simply a
  matter of not processing further frames.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from ..schemas.domain import MessagePart, UiMessage
from ..usage.accountant import UsageAccountant

if TYPE_CHECKING:
    from ...core.config import Settings
    from ..host.interfaces import TaskUI
    from ..providers.base import ApiHandler
    from ..repos.interfaces import TaskMessageRepository
    from ..tools.registry import ToolHandlerRegistry
    from .request_loop import RequestLoop


@dataclass(frozen=True)
class TaskDeps:
    """Dependency bundle shared by the tasks of one host.

    This object is typically constructed by ``taskforge_ai.agent_core.factory``.
    It holds:

    - the backend client and the UI,
    - the message repository,
    - the tool registry and the request loop,
    - the settings the loop and tools read their limits from.
    """

    api: ApiHandler
    ui: TaskUI
    messages: TaskMessageRepository
    tools: ToolHandlerRegistry
    loop: RequestLoop
    settings: Settings


class FrameStage(str, Enum):
    start = "start"
    after_api_call = "after_api_call"
    complete = "complete"


@dataclass
class StackFrame:
    """One turn of the request loop.

    Attributes:
        user_content: Content sent to the backend in this turn.
        include_file_details: Whether the environment details list workspace files.
        stage: Processing stage of the turn.
        did_end_loop: Result of the turn once ``stage`` is ``complete``.
        assistant_message: Raw assistant text accumulated from the stream.
        api_req_message: The ``api_req_started`` UI message holding the request record.
        accountant: Usage observed for this turn's request.
    """

    user_content: List[MessagePart]
    include_file_details: bool = False
    stage: FrameStage = FrameStage.start
    did_end_loop: bool = False
    assistant_message: str = ""
    api_req_message: Optional[UiMessage] = None
    accountant: UsageAccountant = field(default_factory=UsageAccountant)
