"""SQLAlchemy async repository implementations.

This module provides a SQL-backed persistence implementation for the
repository interfaces defined in ``taskforge_ai.agent_core.repos.interfaces``.
SQLite (``aiosqlite``) is the default backend; any other async SQLAlchemy URL
works unchanged.

Usage
-----

Typical wiring (tests or application setup):

- Create an async engine with ``create_engine``.
- Create tables with ``create_all``.
- Create a session factory with ``create_sessionmaker``.
- Build repository instances with ``build_sql_repos``.

Transaction model
-----------------

Each repository method opens an ``AsyncSession``, performs its operation, and
commits. Every persisted message list is durable when the method returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..schemas.domain import ApiMessage, HistoryItem, UiMessage
from .interfaces import TaskHistoryRepository, TaskMessageRepository
from .models import Base, TaskHistoryRow, TaskMessagesRow


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    SQLite URLs get the default pool; other backends enable ``pool_pre_ping``.
    """
    if db_url.startswith("sqlite"):
        return create_async_engine(db_url)
    return create_async_engine(db_url, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _history_from_row(row: TaskHistoryRow) -> HistoryItem:
    return HistoryItem(
        id=row.id,
        root_task_id=row.root_task_id,
        parent_task_id=row.parent_task_id,
        number=row.number,
        ts=row.ts,
        task=row.task,
        tokens_in=row.tokens_in,
        tokens_out=row.tokens_out,
        cache_writes=row.cache_writes,
        cache_reads=row.cache_reads,
        total_cost=row.total_cost,
        workspace=row.workspace,
        mode=row.mode,
    )


@dataclass(frozen=True)
class SqlTaskHistoryRepository(TaskHistoryRepository):
    """SQL implementation of ``TaskHistoryRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def upsert(self, item: HistoryItem) -> None:
        """
        Insert or update the history row of a task.

        Args:
            item: The history item to persist.
        """
        async with self.session_factory() as s:
            row = await s.get(TaskHistoryRow, item.id)
            if row is None:
                row = TaskHistoryRow(id=item.id)
                s.add(row)
            row.root_task_id = item.root_task_id
            row.parent_task_id = item.parent_task_id
            row.number = item.number
            row.ts = item.ts
            row.task = item.task
            row.tokens_in = item.tokens_in
            row.tokens_out = item.tokens_out
            row.cache_writes = item.cache_writes
            row.cache_reads = item.cache_reads
            row.total_cost = item.total_cost
            row.workspace = item.workspace
            row.mode = item.mode
            await s.commit()

    async def get(self, task_id: str) -> Optional[HistoryItem]:
        async with self.session_factory() as s:
            row = await s.get(TaskHistoryRow, task_id)
            if row is None:
                return None
            return _history_from_row(row)

    async def list(self, limit: int = 100) -> List[HistoryItem]:
        """
        List history items, most recent first.

        Args:
            limit: Maximum number of items to return.
        """
        async with self.session_factory() as s:
            stmt = select(TaskHistoryRow).order_by(TaskHistoryRow.ts.desc()).limit(limit)
            res = await s.execute(stmt)
            return [_history_from_row(r) for r in res.scalars().all()]


@dataclass(frozen=True)
class SqlTaskMessageRepository(TaskMessageRepository):
    """SQL implementation of ``TaskMessageRepository``.

    Messages are serialized with their field names (``by_alias=False``) so
    the stored JSON round-trips through ``model_validate``.
    """

    session_factory: async_sessionmaker[AsyncSession]

    async def _row(self, s: AsyncSession, task_id: str) -> TaskMessagesRow:
        row = await s.get(TaskMessagesRow, task_id)
        if row is None:
            row = TaskMessagesRow(task_id=task_id, ui_messages=[], api_messages=[], updated_at=_utc_now())
            s.add(row)
        return row

    async def save_ui_messages(self, task_id: str, messages: List[UiMessage]) -> None:
        async with self.session_factory() as s:
            row = await self._row(s, task_id)
            row.ui_messages = [m.model_dump(mode="json") for m in messages]
            row.updated_at = _utc_now()
            await s.commit()

    async def load_ui_messages(self, task_id: str) -> List[UiMessage]:
        async with self.session_factory() as s:
            row = await s.get(TaskMessagesRow, task_id)
            if row is None:
                return []
            return [UiMessage.model_validate(m) for m in row.ui_messages or []]

    async def save_api_messages(self, task_id: str, messages: List[ApiMessage]) -> None:
        async with self.session_factory() as s:
            row = await self._row(s, task_id)
            row.api_messages = [m.model_dump(mode="json") for m in messages]
            row.updated_at = _utc_now()
            await s.commit()

    async def load_api_messages(self, task_id: str) -> List[ApiMessage]:
        async with self.session_factory() as s:
            row = await s.get(TaskMessagesRow, task_id)
            if row is None:
                return []
            return [ApiMessage.model_validate(m) for m in row.api_messages or []]


@dataclass(frozen=True)
class SqlRepoBundle:
    """Convenience bundle of all SQL repositories for dependency injection."""

    history: SqlTaskHistoryRepository
    messages: SqlTaskMessageRepository


def build_sql_repos(*, session_factory: async_sessionmaker[AsyncSession]) -> SqlRepoBundle:
    """Build a ``SqlRepoBundle`` from a session factory."""
    return SqlRepoBundle(
        history=SqlTaskHistoryRepository(session_factory=session_factory),
        messages=SqlTaskMessageRepository(session_factory=session_factory),
    )
