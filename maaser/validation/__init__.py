"""Input validation package."""

from maaser.validation.validator import LedgerInputValidator

__all__ = ["LedgerInputValidator"]
