"""Read-side query package."""

from maaser.queries.history import HistoryReader

__all__ = ["HistoryReader"]
