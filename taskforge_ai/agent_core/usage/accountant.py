"""Token and cost accounting for one request."""

from __future__ import annotations

from typing import Optional

from ..schemas.domain import ApiRequestInfo, CancelReason, ModelInfo, UsageTotals
from ..schemas.stream import UsageChunk
from .cost import calculate_api_cost


def add_usage(totals: UsageTotals, chunk: UsageChunk) -> UsageTotals:
    """Return ``totals`` extended by one usage unit.

    Token counters are summed. A reported total cost replaces the previous
    one; a unit without a cost keeps it.
    """
    return UsageTotals(
        input_tokens=totals.input_tokens + chunk.input_tokens,
        output_tokens=totals.output_tokens + chunk.output_tokens,
        cache_write_tokens=totals.cache_write_tokens + (chunk.cache_write_tokens or 0),
        cache_read_tokens=totals.cache_read_tokens + (chunk.cache_read_tokens or 0),
        total_cost=chunk.total_cost if chunk.total_cost is not None else totals.total_cost,
    )


class UsageAccountant:
    """Accumulate usage units observed for a single request.

    The primary stream consumer calls ``add`` for every usage unit it pulls.
    A ``BackgroundDrain`` later starts from ``snapshot()`` and publishes the
    combined totals through ``replace``, so units are never counted twice.
    """

    def __init__(self) -> None:
        self._totals = UsageTotals()
        self.usage_missing = False

    def add(self, chunk: UsageChunk) -> None:
        self._totals = add_usage(self._totals, chunk)

    def snapshot(self) -> UsageTotals:
        return self._totals.model_copy()

    def replace(self, totals: UsageTotals) -> None:
        self._totals = totals.model_copy()

    @property
    def has_usage(self) -> bool:
        return self._totals.has_usage

    def cost(self, model_info: ModelInfo) -> Optional[float]:
        t = self._totals
        if t.total_cost is not None:
            return t.total_cost
        return calculate_api_cost(
            model_info,
            t.input_tokens,
            t.output_tokens,
            t.cache_write_tokens,
            t.cache_read_tokens,
        )

    def apply_to(
        self,
        info: ApiRequestInfo,
        model_info: ModelInfo,
        cancel_reason: Optional[CancelReason] = None,
        streaming_failed_message: Optional[str] = None,
    ) -> ApiRequestInfo:
        """Return ``info`` with the current counters, cost and cancellation state."""
        t = self._totals
        return info.model_copy(
            update={
                "tokens_in": t.input_tokens,
                "tokens_out": t.output_tokens,
                "cache_writes": t.cache_write_tokens,
                "cache_reads": t.cache_read_tokens,
                "cost": self.cost(model_info),
                "usage_missing": self.usage_missing,
                "cancel_reason": cancel_reason,
                "streaming_failed_message": streaming_failed_message,
            }
        )
