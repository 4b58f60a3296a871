"""Repository interfaces and SQL implementations for task persistence.

The repository layer is the persistence boundary for the task runtime.

Responsibilities
----------------

- Provide a small set of async repository interfaces (Protocols) that tasks
  and the host can depend on.
- Persist what is needed to reopen a task after a restart:

  - history items (task summaries with parent links),
  - UI timelines,
  - backend conversations.

Design notes
------------

The runtime is written against interfaces so it can be used with:

- a SQL database (async SQLAlchemy implementation provided in ``repos.sql``),
- in-memory fakes for unit tests.
"""

from .interfaces import TaskHistoryRepository, TaskMessageRepository

__all__ = [
    "TaskHistoryRepository",
    "TaskMessageRepository",
]
