"""SQLAlchemy ORM models for task persistence.

These ORM models define the SQL schema used by the SQL repository
implementation in ``taskforge_ai.agent_core.repos.sql``.

Design
------

- History rows mirror ``HistoryItem`` column by column so parent links can be
  followed with plain primary-key lookups.
- Message rows keep the UI timeline and the backend conversation of a task
  as JSON lists; they are always written and read as a whole.

Table names are prefixed with ``tf_`` to avoid collisions in shared databases.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class TaskHistoryRow(Base):
    """Row model for ``tf_task_history``.

    Key fields:

    - ``parent_task_id``/``root_task_id``: hierarchy links of a subtask.
    - ``mode``: the mode the task was last running in.
    - token and cost totals aggregated from the task's request records.
    """

    __tablename__ = "tf_task_history"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    root_task_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    parent_task_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    number: Mapped[int] = mapped_column(Integer)
    ts: Mapped[int] = mapped_column(BigInteger, index=True)
    task: Mapped[str] = mapped_column(Text)

    tokens_in: Mapped[int] = mapped_column(Integer)
    tokens_out: Mapped[int] = mapped_column(Integer)
    cache_writes: Mapped[int] = mapped_column(Integer)
    cache_reads: Mapped[int] = mapped_column(Integer)
    total_cost: Mapped[float] = mapped_column(Float)

    workspace: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mode: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class TaskMessagesRow(Base):
    """Row model for ``tf_task_messages``.

    One row per task holding both message lists.
    """

    __tablename__ = "tf_task_messages"

    task_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    ui_messages: Mapped[List[Any]] = mapped_column(JSON, default=list)
    api_messages: Mapped[List[Any]] = mapped_column(JSON, default=list)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
