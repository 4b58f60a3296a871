"""Integration tests for the task provider driving parent tasks and subtasks end to end."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, List

import pytest

from taskforge_ai.agent_core.factory import build_provider, build_provider_with_repos
from taskforge_ai.agent_core.host import HeadlessUI, TaskProvider
from taskforge_ai.agent_core.schemas.domain import AskKind, SayKind, TextPart
from taskforge_ai.agent_core.task import Task
from test.fakes import (
    HANG,
    InMemoryHistoryRepo,
    InMemoryMessageRepo,
    RecordingUI,
    ScriptedApi,
    completion,
    make_settings,
    text_chunks,
    usage,
    wait_for_drains,
)

NEW_TASK = "Delegating.<new_task>\n<mode>ask</mode>\n<message>explain the parser</message>\n</new_task>"


def _user_texts(api: ScriptedApi, call: int) -> List[str]:
    _, messages = api.calls[call]
    return [p.text for m in messages if m.role == "user" for p in m.content if isinstance(p, TextPart)]


async def _until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


async def _settle(provider: TaskProvider, *tasks: Task) -> None:
    await provider.wait_for_idle()
    for task in tasks:
        await wait_for_drains(task)


class TestSubtaskLifecycle:
    """A parent delegates to a subtask and continues with its result."""

    @pytest.fixture
    def history(self) -> InMemoryHistoryRepo:
        return InMemoryHistoryRepo()

    @pytest.fixture
    def messages(self) -> InMemoryMessageRepo:
        return InMemoryMessageRepo()

    @pytest.mark.asyncio
    async def test_parent_resumes_with_the_subtask_result(
        self, tmp_path: Path, history: InMemoryHistoryRepo, messages: InMemoryMessageRepo
    ) -> None:
        api = ScriptedApi(
            [
                [*text_chunks(NEW_TASK), usage(10, 5)],
                [*completion("done"), usage(7, 3)],
                [*completion("all finished"), usage(4, 2)],
            ]
        )
        ui = RecordingUI()
        provider = build_provider_with_repos(
            settings=make_settings(tmp_path), api=api, ui=ui, history=history, messages=messages
        )

        parent = await provider.create_task("coordinate the work", mode="orchestrator")
        await _settle(provider, parent)
        child_item = next(item for item in history.by_id.values() if item.parent_task_id == parent.task_id)

        assert len(api.calls) == 3
        assert any(t == "[new_task completed] Result: done" for t in _user_texts(api, 2))
        assert _user_texts(api, 1)[0] == "<task>\nexplain the parser\n</task>"

        assert parent.did_complete_task is True
        assert await provider.get_mode() == "orchestrator"
        assert provider.orchestrator.task_ids() == [parent.task_id]
        assert parent.is_paused is False

        assert child_item.root_task_id == parent.task_id
        assert child_item.number == 2
        assert child_item.mode == "ask"
        assert history.by_id[parent.task_id].mode == "orchestrator"

        # Only the root task asks the user to accept its result.
        assert ui.ask_kinds().count(AskKind.completion_result) == 1
        assert any(m.say == SayKind.subtask_result and m.text == "done" for m in parent.ui_messages)

        await provider.dispose()

    @pytest.mark.asyncio
    async def test_reopened_subtask_rebuilds_the_stack_and_resumes_its_parent(
        self, tmp_path: Path, history: InMemoryHistoryRepo, messages: InMemoryMessageRepo
    ) -> None:
        # The subtask's request never answers; disposing the provider stands in for a process exit.
        first_api = ScriptedApi([[*text_chunks(NEW_TASK), usage(10, 5)], [HANG]])
        first = build_provider_with_repos(
            settings=make_settings(tmp_path), api=first_api, ui=RecordingUI(), history=history, messages=messages
        )
        parent = await first.create_task("coordinate the work", mode="orchestrator")
        await _until(lambda: len(first_api.calls) == 2 and parent.is_paused)
        child_id = first.orchestrator.task_ids()[-1]
        await first.dispose()

        second_api = ScriptedApi([[*completion("wrapped up"), usage(1, 1)]])
        second = build_provider_with_repos(
            settings=make_settings(tmp_path), api=second_api, ui=HeadlessUI(), history=history, messages=messages
        )

        leaf = await second.show_task_with_id(child_id)
        await second.wait_for_idle()

        assert leaf is not None and leaf.task_id == child_id
        assert second.orchestrator.task_ids() == [parent.task_id, child_id]
        rebuilt_parent = second.orchestrator._stack[0]
        assert rebuilt_parent.is_paused is True
        assert rebuilt_parent.paused_mode_slug == "orchestrator"
        assert leaf.is_paused is False
        assert await second.get_mode() == "ask"
        # The headless UI declines resuming, so no request was made yet.
        assert second_api.calls == []

        await second.finish_subtask("late result")
        await _settle(second, rebuilt_parent)

        assert await second.get_mode() == "orchestrator"
        assert second.orchestrator.task_ids() == [parent.task_id]
        assert len(second_api.calls) == 1
        assert "[new_task completed] Result: late result" in _user_texts(second_api, 0)
        assert rebuilt_parent.did_complete_task is True

        await second.dispose()

    @pytest.mark.asyncio
    async def test_showing_the_current_task_keeps_the_stack(
        self, tmp_path: Path, history: InMemoryHistoryRepo, messages: InMemoryMessageRepo
    ) -> None:
        provider = build_provider_with_repos(
            settings=make_settings(tmp_path),
            api=ScriptedApi([completion()]),
            ui=RecordingUI(),
            history=history,
            messages=messages,
        )
        task = await provider.create_task("hello")
        await _settle(provider, task)

        assert await provider.show_task_with_id(task.task_id) is task
        assert [item.id for item in await provider.list_history()] == [task.task_id]

        await provider.dispose()


class TestCancellation:
    """Cancelling a task reloads it from history."""

    @pytest.mark.asyncio
    async def test_cancel_reloads_a_fresh_instance(self, tmp_path: Path) -> None:
        history = InMemoryHistoryRepo()
        provider = build_provider_with_repos(
            settings=make_settings(tmp_path),
            api=ScriptedApi([completion()]),
            ui=HeadlessUI(),
            history=history,
            messages=InMemoryMessageRepo(),
        )
        task = await provider.create_task("hello")
        await _settle(provider, task)

        reloaded = await provider.cancel_task()
        await provider.wait_for_idle()

        assert task.abort is True and task.abandoned is True
        assert reloaded is not None
        assert reloaded is not task
        assert reloaded.task_id == task.task_id
        assert provider.current_task is reloaded

        await provider.dispose()


class TestSqlBackedProvider:
    """The default wiring persists tasks in SQLite."""

    @pytest.mark.asyncio
    async def test_build_provider_persists_history(self, tmp_path: Path, test_config) -> None:
        settings = make_settings(
            tmp_path,
            database_url=test_config.database.url or f"sqlite+aiosqlite:///{tmp_path / 'tasks.db'}",
        )
        api = ScriptedApi([[*completion("stored"), usage(3, 4)]])
        provider = await build_provider(settings=settings, ui=HeadlessUI(), api=api, configure_observability=False)

        task = await provider.create_task("persist me")
        await _settle(provider, task)

        items = await provider.list_history()
        assert [item.id for item in items] == [task.task_id]
        assert items[0].task == "persist me"
        assert (items[0].tokens_in, items[0].tokens_out) == (3, 4)

        await provider.dispose()
