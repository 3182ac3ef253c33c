"""
Data Models Package

This package contains all Pydantic models used in the Maaser Ledger.
All data flowing through the engine must conform to these schemas.
"""

from maaser.models.ledger import (
    CarryForwardSummary,
    FixedCharityCommitment,
    FixedChargeSnapshotEntry,
    GroupAggregate,
    GroupSettlementMatch,
    IncomeRecord,
    IncomeSnapshotEntry,
    MonthHistory,
    ParticipantState,
    PaymentSnapshot,
    PeriodAggregate,
    PeriodBalance,
    SettlementStatus,
)
from maaser.models.money import apply_rate, format_amount, parse_amount
from maaser.models.period import Period, current_period, period_of, validate_period
from maaser.models.validation import ValidationIssue, ValidationResult
from maaser.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CarryForwardSummary",
    "FixedCharityCommitment",
    "FixedChargeSnapshotEntry",
    "GroupAggregate",
    "GroupSettlementMatch",
    "IncomeRecord",
    "IncomeSnapshotEntry",
    "MonthHistory",
    "ParticipantState",
    "PaymentSnapshot",
    "PeriodAggregate",
    "PeriodBalance",
    "SettlementStatus",
    # Money and periods
    "Period",
    "apply_rate",
    "current_period",
    "format_amount",
    "parse_amount",
    "period_of",
    "validate_period",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
