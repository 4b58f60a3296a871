"""Usage accounting: per-request counters, cost and background draining."""

from .accountant import UsageAccountant, add_usage
from .cost import calculate_api_cost
from .drain import BackgroundDrain

__all__ = ["UsageAccountant", "add_usage", "calculate_api_cost", "BackgroundDrain"]
