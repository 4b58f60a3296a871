"""
In-memory collaborators shared by the agent-core tests.

The fakes mirror the Protocols of ``taskforge_ai.agent_core``: repositories
keep everything in dicts, ``ScriptedApi`` replays one scripted response per
request, ``RecordingUI`` answers asks from a table and records everything it
is shown, and ``FakeHost`` records the host callbacks a task makes.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from taskforge_ai.agent_core.errors import TaskNotFoundError
from taskforge_ai.agent_core.factory import build_task_deps
from taskforge_ai.agent_core.runtime.models import TaskDeps
from taskforge_ai.agent_core.schemas.domain import (
    ApiMessage,
    AskKind,
    AskResponse,
    AskResult,
    HistoryItem,
    ModelInfo,
    ProviderState,
    UiMessage,
)
from taskforge_ai.agent_core.schemas.stream import ApiStreamChunk, TextChunk, UsageChunk
from taskforge_ai.agent_core.task import Task
from taskforge_ai.core.config import Settings

# Script item that blocks the stream forever.
HANG = object()

ScriptItem = Union[ApiStreamChunk, BaseException, object]


class InMemoryHistoryRepo:
    def __init__(self, items: Sequence[HistoryItem] = ()) -> None:
        self.by_id: Dict[str, HistoryItem] = {item.id: item for item in items}

    async def upsert(self, item: HistoryItem) -> None:
        self.by_id[item.id] = item.model_copy(deep=True)

    async def get(self, task_id: str) -> Optional[HistoryItem]:
        item = self.by_id.get(task_id)
        return item.model_copy(deep=True) if item is not None else None

    async def list(self, limit: int = 100) -> List[HistoryItem]:
        return sorted(self.by_id.values(), key=lambda i: i.ts, reverse=True)[:limit]


class InMemoryMessageRepo:
    def __init__(self) -> None:
        self.ui: Dict[str, List[UiMessage]] = {}
        self.api: Dict[str, List[ApiMessage]] = {}

    async def save_ui_messages(self, task_id: str, messages: List[UiMessage]) -> None:
        self.ui[task_id] = [m.model_copy(deep=True) for m in messages]

    async def load_ui_messages(self, task_id: str) -> List[UiMessage]:
        return [m.model_copy(deep=True) for m in self.ui.get(task_id, [])]

    async def save_api_messages(self, task_id: str, messages: List[ApiMessage]) -> None:
        self.api[task_id] = [m.model_copy(deep=True) for m in messages]

    async def load_api_messages(self, task_id: str) -> List[ApiMessage]:
        return [m.model_copy(deep=True) for m in self.api.get(task_id, [])]


class ScriptedApi:
    """Backend client replaying one script per ``create_message`` call.

    Script items are stream units, exceptions (raised when reached) or
    ``HANG``. Requests beyond the scripts get an empty stream.
    """

    def __init__(self, scripts: Sequence[Sequence[ScriptItem]] = (), model_info: Optional[ModelInfo] = None) -> None:
        self.scripts: List[List[ScriptItem]] = [list(s) for s in scripts]
        self.model_info = model_info or ModelInfo(model_id="scripted")
        self.calls: List[Tuple[str, List[ApiMessage]]] = []
        self.pulled: List[ApiStreamChunk] = []
        self.closed = 0

    def get_model(self) -> ModelInfo:
        return self.model_info

    def create_message(self, system_prompt: str, messages: List[ApiMessage]):
        self.calls.append((system_prompt, [m.model_copy(deep=True) for m in messages]))
        script = self.scripts.pop(0) if self.scripts else []
        return self._stream(script)

    async def _stream(self, script: List[ScriptItem]):
        try:
            for item in script:
                if item is HANG:
                    await asyncio.Event().wait()
                if isinstance(item, BaseException):
                    raise item
                self.pulled.append(item)  # type: ignore[arg-type]
                yield item
        finally:
            self.closed += 1


class RecordingUI:
    """UI answering asks from ``responses`` (yes by default) and recording output."""

    def __init__(self, responses: Optional[Dict[AskKind, Any]] = None) -> None:
        self.responses: Dict[AskKind, Any] = dict(responses or {})
        self.asks: List[UiMessage] = []
        self.says: List[UiMessage] = []
        self.updates: List[UiMessage] = []
        self.states: List[ProviderState] = []

    async def ask(self, task: Task, message: UiMessage) -> AskResult:
        self.asks.append(message.model_copy())
        answer = self.responses.get(message.ask)  # type: ignore[arg-type]
        if isinstance(answer, list):
            answer = answer.pop(0) if answer else None
        return answer or AskResult(response=AskResponse.yes_button)

    async def say(self, task: Task, message: UiMessage) -> None:
        self.says.append(message.model_copy())

    async def update_message(self, task: Task, message: UiMessage) -> None:
        self.updates.append(message.model_copy())

    async def post_state(self, state: ProviderState) -> None:
        self.states.append(state)

    def ask_kinds(self) -> List[AskKind]:
        return [m.ask for m in self.asks if m.ask is not None]


class FakeHost:
    def __init__(self, mode: str = "code") -> None:
        self.mode = mode
        self.logs: List[str] = []
        self.history: Dict[str, HistoryItem] = {}
        self.mode_switches: List[str] = []
        self.subtasks: List[Tuple[str, str, str]] = []
        self.finished: List[str] = []
        self.reloaded: List[HistoryItem] = []
        self.updated: List[UiMessage] = []
        self.state_updates = 0

    def log(self, message: str) -> None:
        self.logs.append(message)

    async def get_mode(self) -> str:
        return self.mode

    async def handle_mode_switch(self, mode: str) -> None:
        self.mode_switches.append(mode)
        self.mode = mode

    async def get_task_with_id(self, task_id: str) -> HistoryItem:
        item = self.history.get(task_id)
        if item is None:
            raise TaskNotFoundError(task_id)
        return item

    async def init_task_with_history_item(self, item: HistoryItem) -> None:
        self.reloaded.append(item)

    async def post_state_update(self) -> None:
        self.state_updates += 1

    async def update_ui_message(self, task: Task, message: UiMessage) -> None:
        self.updated.append(message.model_copy())

    async def update_task_history(self, item: HistoryItem) -> None:
        self.history[item.id] = item

    async def create_subtask(self, parent: Task, mode: str, message: str) -> Task:
        self.subtasks.append((parent.task_id, mode, message))
        return parent

    async def finish_subtask(self, last_message: str) -> None:
        self.finished.append(last_message)


def make_settings(workspace: Path, **overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "workspace": str(workspace),
        "background_drain_timeout_seconds": 0.5,
        "mode_switch_delay_seconds": 0.0,
        "command_timeout_seconds": 5.0,
    }
    values.update(overrides)
    return Settings(**values)


def make_deps(
    workspace: Path,
    api: ScriptedApi,
    ui: Optional[RecordingUI] = None,
    messages: Optional[InMemoryMessageRepo] = None,
    **settings_overrides: Any,
) -> TaskDeps:
    return build_task_deps(
        settings=make_settings(workspace, **settings_overrides),
        api=api,
        ui=ui or RecordingUI(),
        messages=messages or InMemoryMessageRepo(),
    )


def make_task(deps: TaskDeps, host: Optional[FakeHost] = None, **kwargs: Any) -> Task:
    kwargs.setdefault("mode", "code")
    kwargs.setdefault("workspace", deps.settings.workspace)
    return Task(deps=deps, host=host or FakeHost(), **kwargs)


def text_chunks(*texts: str) -> List[ApiStreamChunk]:
    return [TextChunk(text=t) for t in texts]


def usage(input_tokens: int = 0, output_tokens: int = 0, **kwargs: Any) -> UsageChunk:
    return UsageChunk(input_tokens=input_tokens, output_tokens=output_tokens, **kwargs)


def completion(result: str = "done") -> List[ApiStreamChunk]:
    return text_chunks(f"<attempt_completion>\n<result>{result}</result>\n</attempt_completion>")


async def wait_for_drains(task: Task) -> None:
    await asyncio.gather(*(drain.wait() for drain in task.background_drains))
