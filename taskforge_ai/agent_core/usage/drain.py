"""Background collection of trailing usage units.

Some backends only report token usage at the very end of a response. When the
request loop stops reading early (tool use, rejection, abort) the remaining
units would be lost, so the same stream handle is handed to a
``BackgroundDrain`` which keeps pulling for a bounded time and then rewrites
the persisted request record.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional, Set

from ..providers.base import close_stream
from ..schemas.domain import UsageTotals
from ..schemas.stream import ApiStreamChunk, UsageChunk
from .accountant import UsageAccountant, add_usage

logger = logging.getLogger(__name__)

DEFAULT_DRAIN_TIMEOUT_SECONDS = 30.0

# Strong references to running drains; the event loop only keeps weak ones.
_RUNNING_DRAINS: Set[asyncio.Task[None]] = set()


def _never_cancelled() -> bool:
    return False


class BackgroundDrain:
    """Drain a response stream for usage after the primary consumer stopped.

    Args:
        iterator: The stream handle the primary consumer was pulling from.
        accountant: Accountant holding the usage the primary consumer saw.
        timeout_seconds: Wall-clock budget for the whole drain.
        is_cancelled: Polled before every pull; a True result stops the drain.
        on_usage: Awaited with the combined totals when any usage was seen.
        on_missing: Awaited when neither consumer saw any usage.
        model_id: Used in log lines only.
    """

    def __init__(
        self,
        iterator: AsyncIterator[ApiStreamChunk],
        accountant: UsageAccountant,
        *,
        on_usage: Callable[[UsageTotals], Awaitable[None]],
        on_missing: Callable[[], Awaitable[None]],
        timeout_seconds: float = DEFAULT_DRAIN_TIMEOUT_SECONDS,
        is_cancelled: Callable[[], bool] = _never_cancelled,
        model_id: str = "",
    ) -> None:
        self._iterator = iterator
        self._accountant = accountant
        self._on_usage = on_usage
        self._on_missing = on_missing
        self._timeout = timeout_seconds
        self._is_cancelled = is_cancelled
        self._model_id = model_id
        self._task: Optional[asyncio.Task[None]] = None

    def start(self) -> asyncio.Task[None]:
        """Schedule ``run`` on the running loop and return its task."""
        task = asyncio.create_task(self.run(), name=f"usage-drain:{self._model_id}")
        _RUNNING_DRAINS.add(task)
        task.add_done_callback(_RUNNING_DRAINS.discard)
        self._task = task
        return task

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        totals = self._accountant.snapshot()
        pulled = 0
        try:
            try:
                async with asyncio.timeout(self._timeout):
                    while not self._is_cancelled():
                        try:
                            chunk = await self._iterator.__anext__()
                        except StopAsyncIteration:
                            break
                        pulled += 1
                        if isinstance(chunk, UsageChunk):
                            totals = add_usage(totals, chunk)
                    else:
                        self._log_cancelled(loop.time() - started, pulled)
                        await close_stream(self._iterator)
            except TimeoutError:
                self._log_cancelled(loop.time() - started, pulled)
                await close_stream(self._iterator)
            await self._finish(totals)
        except Exception:
            logger.exception("Error draining stream for usage data")
            try:
                await self._finish(totals)
            except Exception:
                logger.exception("Background usage collection failed")

    async def _finish(self, totals: UsageTotals) -> None:
        if totals.has_usage:
            self._accountant.replace(totals)
            await self._on_usage(totals)
            return
        logger.warning(
            f"[Background Usage Collection] Suspicious: request is complete, but no usage info was found. "
            f"Model: {self._model_id}"
        )
        self._accountant.usage_missing = True
        await self._on_missing()

    def _log_cancelled(self, elapsed: float, pulled: int) -> None:
        logger.warning(
            f"[Background Usage Collection] Cancelled after {elapsed * 1000:.0f}ms for model: {self._model_id}, "
            f"processed {pulled} chunks"
        )
