from __future__ import annotations

import asyncio
from typing import AsyncIterator, List

import pytest

from taskforge_ai.agent_core.schemas.domain import ApiRequestInfo, ModelInfo, UsageTotals
from taskforge_ai.agent_core.schemas.stream import ApiStreamChunk, TextChunk, UsageChunk
from taskforge_ai.agent_core.usage import BackgroundDrain, UsageAccountant


class _Callbacks:
    def __init__(self) -> None:
        self.usage: List[UsageTotals] = []
        self.missing = 0

    async def on_usage(self, totals: UsageTotals) -> None:
        self.usage.append(totals)

    async def on_missing(self) -> None:
        self.missing += 1


async def _stream(*chunks: ApiStreamChunk, hang: bool = False) -> AsyncIterator[ApiStreamChunk]:
    for chunk in chunks:
        yield chunk
    if hang:
        await asyncio.Event().wait()


def _drain(iterator, accountant: UsageAccountant, callbacks: _Callbacks, **kwargs) -> BackgroundDrain:
    return BackgroundDrain(
        iterator,
        accountant,
        on_usage=callbacks.on_usage,
        on_missing=callbacks.on_missing,
        model_id="m",
        **kwargs,
    )


@pytest.mark.asyncio
async def test_drain_collects_trailing_usage_without_double_counting() -> None:
    accountant = UsageAccountant()
    accountant.add(UsageChunk(input_tokens=10, output_tokens=5))
    callbacks = _Callbacks()

    drain = _drain(_stream(TextChunk(text="ignored"), UsageChunk(input_tokens=3, output_tokens=2)), accountant, callbacks)
    await drain.start()

    assert drain.done
    assert len(callbacks.usage) == 1
    assert callbacks.usage[0].input_tokens == 13
    assert callbacks.usage[0].output_tokens == 7
    assert accountant.snapshot().input_tokens == 13
    assert callbacks.missing == 0


@pytest.mark.asyncio
async def test_drain_reports_usage_seen_only_by_primary_consumer() -> None:
    accountant = UsageAccountant()
    accountant.add(UsageChunk(input_tokens=4))
    callbacks = _Callbacks()

    await _drain(_stream(), accountant, callbacks).start()

    assert callbacks.usage[0].input_tokens == 4
    assert accountant.usage_missing is False


@pytest.mark.asyncio
async def test_drain_timeout_without_usage_marks_usage_missing() -> None:
    accountant = UsageAccountant()
    callbacks = _Callbacks()

    drain = _drain(_stream(TextChunk(text="x"), hang=True), accountant, callbacks, timeout_seconds=0.05)
    await drain.start()

    assert callbacks.missing == 1
    assert callbacks.usage == []
    assert accountant.usage_missing is True

    record = accountant.apply_to(ApiRequestInfo(request="r"), ModelInfo(model_id="m"))
    assert record.usage_missing is True
    assert record.cost is None
    assert "usageMissing" in record.to_text()
    assert "cost" not in record.to_text()


@pytest.mark.asyncio
async def test_drain_timeout_keeps_usage_found_before_the_deadline() -> None:
    accountant = UsageAccountant()
    callbacks = _Callbacks()

    drain = _drain(_stream(UsageChunk(output_tokens=9), hang=True), accountant, callbacks, timeout_seconds=0.05)
    await drain.start()

    assert callbacks.usage[0].output_tokens == 9
    assert callbacks.missing == 0


@pytest.mark.asyncio
async def test_cancelled_drain_stops_pulling_and_closes_the_stream() -> None:
    pulled: List[str] = []
    closed = asyncio.Event()

    async def stream() -> AsyncIterator[ApiStreamChunk]:
        try:
            for i in range(100):
                pulled.append(str(i))
                yield TextChunk(text=str(i))
        finally:
            closed.set()

    iterator = stream()
    await iterator.__anext__()
    accountant = UsageAccountant()
    callbacks = _Callbacks()

    await _drain(iterator, accountant, callbacks, is_cancelled=lambda: True).start()

    assert pulled == ["0"]
    assert closed.is_set()
    assert callbacks.missing == 1


@pytest.mark.asyncio
async def test_drain_logs_and_finishes_when_the_stream_fails() -> None:
    async def failing() -> AsyncIterator[ApiStreamChunk]:
        yield UsageChunk(input_tokens=2)
        raise RuntimeError("connection reset")

    accountant = UsageAccountant()
    callbacks = _Callbacks()

    await _drain(failing(), accountant, callbacks).start()

    assert callbacks.usage[0].input_tokens == 2


@pytest.mark.asyncio
async def test_budget_bounds_the_whole_drain_not_each_pull() -> None:
    async def trickle() -> AsyncIterator[ApiStreamChunk]:
        while True:
            await asyncio.sleep(0.02)
            yield TextChunk(text=".")

    accountant = UsageAccountant()
    callbacks = _Callbacks()
    loop = asyncio.get_running_loop()
    started = loop.time()

    await _drain(trickle(), accountant, callbacks, timeout_seconds=0.1).start()

    assert loop.time() - started < 1.0
    assert callbacks.missing == 1
