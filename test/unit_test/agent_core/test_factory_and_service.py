from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from taskforge_ai.agent_core.factory import (
    build_model_info,
    build_provider,
    build_request_loop,
    build_task_deps,
    build_tool_registry,
)
from taskforge_ai.agent_core.host import HeadlessUI, TaskProvider
from taskforge_ai.agent_core.providers import PydanticAIApiHandler
from taskforge_ai.agent_core.tools.definitions import TOOL_DEFINITIONS
from test.fakes import InMemoryMessageRepo, RecordingUI, ScriptedApi, make_settings


def test_build_tool_registry_registers_all_builtin_tools() -> None:
    reg = build_tool_registry()
    for name in TOOL_DEFINITIONS:
        handler = reg.get(name)
        assert handler is not None
        assert handler.name == name


def test_build_request_loop_reads_limits_from_settings(tmp_path: Path) -> None:
    settings = make_settings(
        tmp_path, background_drain_timeout_seconds=7.0, mode_switch_delay_seconds=0.25, environment_max_files=9
    )

    loop = build_request_loop(settings)

    assert loop._drain_timeout == 7.0
    assert loop._mode_switch_delay == 0.25
    assert loop._environment_max_files == 9


def test_build_task_deps_wires_collaborators(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    api = ScriptedApi()
    ui = RecordingUI()
    messages = InMemoryMessageRepo()
    tools = build_tool_registry()

    deps = build_task_deps(settings=settings, api=api, ui=ui, messages=messages, tools=tools)

    assert deps.api is api
    assert deps.ui is ui
    assert deps.messages is messages
    assert deps.tools is tools
    assert deps.settings is settings


def test_build_model_info_uses_configured_prices(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, model="openai:gpt-4o-mini", input_price=0.15, output_price=0.6)

    info = build_model_info(settings)

    assert info.model_id == "openai:gpt-4o-mini"
    assert info.input_price == 0.15
    assert info.output_price == 0.6
    assert info.cache_reads_price is None


@pytest.mark.asyncio
async def test_build_provider_defaults_to_pydantic_ai_and_headless_ui(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, database_url=f"sqlite+aiosqlite:///{tmp_path / 'tf.db'}", model="test")

    provider = await build_provider(settings=settings, configure_observability=False)
    try:
        assert isinstance(provider, TaskProvider)
        assert isinstance(provider._deps.api, PydanticAIApiHandler)
        assert isinstance(provider._deps.ui, HeadlessUI)
        assert await provider.get_mode() == "code"
        assert await provider.list_history() == []
    finally:
        await provider.dispose()

    assert (tmp_path / "tf.db").exists()


@pytest.mark.asyncio
@pytest.mark.parametrize("configure", [True, False])
async def test_build_provider_sets_up_logging_and_logfire(tmp_path: Path, configure: bool) -> None:
    settings = make_settings(tmp_path, database_url=f"sqlite+aiosqlite:///{tmp_path / 'obs.db'}")

    with patch("taskforge_ai.agent_core.factory.setup_logging") as mock_setup, patch(
        "taskforge_ai.core.monitoring.initialize_logfire"
    ) as mock_logfire:
        provider = await build_provider(settings=settings, api=ScriptedApi(), configure_observability=configure)
        await provider.dispose()

    assert mock_setup.called is configure
    assert mock_logfire.called is configure
