"""Token budgeting of JSON responses."""

from .limiter import ResponseBudgeter, serialize

__all__ = ["ResponseBudgeter", "serialize"]
