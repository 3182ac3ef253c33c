"""
Ledger engine package.

Income ledger, fixed charity registry, month calculator, settlement
engine, group aggregation and carry-forward.
"""

from maaser.ledger.errors import (
    FrozenRecordError,
    LedgerError,
    NotFoundError,
    OverpaymentExceedsDebtError,
    ValidationError,
)
from maaser.ledger.calculator import compute_state
from maaser.ledger.carry_forward import CarryForwardCalculator, summarize
from maaser.ledger.charities import FixedCharityRegistry
from maaser.ledger.group import GroupAggregator, combine
from maaser.ledger.income import IncomeLedger
from maaser.ledger.locks import OwnerLocks
from maaser.ledger.settlement import PaymentSnapshotEngine, allocate

__all__ = [
    # Errors
    "FrozenRecordError",
    "LedgerError",
    "NotFoundError",
    "OverpaymentExceedsDebtError",
    "ValidationError",
    # Pure computations
    "allocate",
    "combine",
    "compute_state",
    "summarize",
    # Services
    "CarryForwardCalculator",
    "FixedCharityRegistry",
    "GroupAggregator",
    "IncomeLedger",
    "OwnerLocks",
    "PaymentSnapshotEngine",
]
