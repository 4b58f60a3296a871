"""Repository interface contracts.

The task runtime depends on these Protocols instead of concrete persistence
implementations.

Contract guidelines
-------------------

- All methods are async.
- Repository implementations should be safe to call from the request loop
  without leaking SQLAlchemy sessions/transactions.
- Saving a message list replaces the previously stored list for the task.

Two stores are needed to resume work after a restart:

- History items summarize every task (parent links, token totals, mode) and
  are what the stack orchestrator walks to rebuild a task hierarchy.
- Message lists hold the UI timeline and the backend conversation of a task.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from ..schemas.domain import ApiMessage, HistoryItem, UiMessage


class TaskHistoryRepository(Protocol):
    """Persist and query task history items."""

    async def upsert(self, item: HistoryItem) -> None:
        """
        Insert or replace the history item of a task.

        Args:
            item: The history item; ``item.id`` is the task id.
        """
        ...

    async def get(self, task_id: str) -> Optional[HistoryItem]:
        """
        Retrieve a history item by task id.

        Args:
            task_id: The task identifier.

        Returns:
            The HistoryItem if found, else None.
        """
        ...

    async def list(self, limit: int = 100) -> List[HistoryItem]:
        """
        List history items, most recent first.

        Args:
            limit: Max number of records to return.
        """
        ...


class TaskMessageRepository(Protocol):
    """Persist the UI timeline and backend conversation of tasks."""

    async def save_ui_messages(self, task_id: str, messages: List[UiMessage]) -> None:
        ...

    async def load_ui_messages(self, task_id: str) -> List[UiMessage]:
        """Return the stored UI messages of a task, or an empty list."""
        ...

    async def save_api_messages(self, task_id: str, messages: List[ApiMessage]) -> None:
        ...

    async def load_api_messages(self, task_id: str) -> List[ApiMessage]:
        """Return the stored conversation of a task, or an empty list."""
        ...
