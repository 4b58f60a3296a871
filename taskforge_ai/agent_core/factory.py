from __future__ import annotations

"""Convenience factories for wiring the agent core.

This module contains small helpers to build the default tool registry, the
request loop and the dependency bundle shared by tasks, and to instantiate a
``TaskProvider`` backed by the SQL repositories and the pydantic-ai client.

The intent is to keep application wiring and tests concise, while still
allowing advanced deployments to provide their own UI, backend client and
repositories.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from ..core import monitoring
from ..core.config import Settings, get_settings
from ..core.logging_config import setup_logging
from .host import HeadlessUI, TaskProvider, TaskUI
from .providers import ApiHandler, PydanticAIApiHandler
from .repos.interfaces import TaskHistoryRepository, TaskMessageRepository
from .repos.sql import build_sql_repos, create_all, create_engine, create_sessionmaker
from .runtime import RequestLoop, TaskDeps
from .schemas.domain import ModelInfo
from .tools import (
    AskFollowupQuestionHandler,
    AttemptCompletionHandler,
    ExecuteCommandHandler,
    NewTaskHandler,
    ReadFileHandler,
    ToolHandlerRegistry,
    WriteToFileHandler,
)


def build_tool_registry() -> ToolHandlerRegistry:
    """Build the registry holding the built-in tools."""
    reg = ToolHandlerRegistry()
    reg.register(ReadFileHandler())
    reg.register(WriteToFileHandler())
    reg.register(ExecuteCommandHandler())
    reg.register(AskFollowupQuestionHandler())
    reg.register(AttemptCompletionHandler())
    reg.register(NewTaskHandler())
    return reg


def build_request_loop(settings: Settings) -> RequestLoop:
    return RequestLoop(
        drain_timeout_seconds=settings.background_drain_timeout_seconds,
        mode_switch_delay_seconds=settings.mode_switch_delay_seconds,
        environment_max_files=settings.environment_max_files,
    )


def build_task_deps(
    *,
    settings: Settings,
    api: ApiHandler,
    ui: TaskUI,
    messages: TaskMessageRepository,
    tools: Optional[ToolHandlerRegistry] = None,
) -> TaskDeps:
    """Construct the ``TaskDeps`` bundle from settings and collaborators."""
    return TaskDeps(
        api=api,
        ui=ui,
        messages=messages,
        tools=tools or build_tool_registry(),
        loop=build_request_loop(settings),
        settings=settings,
    )


def build_model_info(settings: Settings) -> ModelInfo:
    pricing = settings.pricing
    return ModelInfo(
        model_id=settings.model,
        input_price=pricing.input_price,
        output_price=pricing.output_price,
        cache_writes_price=pricing.cache_writes_price,
        cache_reads_price=pricing.cache_reads_price,
    )


def build_provider_with_repos(
    *,
    settings: Settings,
    api: ApiHandler,
    ui: TaskUI,
    history: TaskHistoryRepository,
    messages: TaskMessageRepository,
    engine: Optional[AsyncEngine] = None,
) -> TaskProvider:
    deps = build_task_deps(settings=settings, api=api, ui=ui, messages=messages)
    return TaskProvider(deps=deps, history=history, settings=settings, engine=engine)


async def build_provider(
    *,
    settings: Optional[Settings] = None,
    ui: Optional[TaskUI] = None,
    api: Optional[ApiHandler] = None,
    configure_observability: bool = True,
) -> TaskProvider:
    """Build a ``TaskProvider`` persisted in ``settings.database_url``.

    Tables are created when missing. Without ``api`` the configured
    pydantic-ai model is used; without ``ui`` tasks run headless. Logging and
    Logfire are set up first unless ``configure_observability`` is False, for
    hosts that configure them on their own.
    """
    if configure_observability:
        setup_logging()
        monitoring.initialize_logfire()
    cfg = settings or get_settings()
    engine = create_engine(cfg.database_url)
    await create_all(engine)
    repos = build_sql_repos(session_factory=create_sessionmaker(engine))
    return build_provider_with_repos(
        settings=cfg,
        api=api or PydanticAIApiHandler(cfg.model, model_info=build_model_info(cfg)),
        ui=ui or HeadlessUI(),
        history=repos.history,
        messages=repos.messages,
        engine=engine,
    )
