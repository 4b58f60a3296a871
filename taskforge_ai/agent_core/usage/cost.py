from __future__ import annotations

from typing import Optional

from ..schemas.domain import ModelInfo


def calculate_api_cost(
    model_info: ModelInfo,
    input_tokens: int,
    output_tokens: int,
    cache_write_tokens: int = 0,
    cache_read_tokens: int = 0,
) -> Optional[float]:
    """Compute the USD cost of one request.

    ``input_tokens`` is expected to exclude cached tokens, which are priced
    separately. Returns ``None`` when the model carries no prices at all.
    """
    prices = (
        model_info.input_price,
        model_info.output_price,
        model_info.cache_writes_price,
        model_info.cache_reads_price,
    )
    if all(p is None for p in prices):
        return None

    per_token = 1_000_000
    cache_writes_cost = (model_info.cache_writes_price or 0.0) / per_token * cache_write_tokens
    cache_reads_cost = (model_info.cache_reads_price or 0.0) / per_token * cache_read_tokens
    input_cost = (model_info.input_price or 0.0) / per_token * input_tokens
    output_cost = (model_info.output_price or 0.0) / per_token * output_tokens
    return cache_writes_cost + cache_reads_cost + input_cost + output_cost
