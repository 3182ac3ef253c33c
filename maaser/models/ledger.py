"""
Core Data Models for the Maaser Ledger

These models define the strict schemas for everything the ledger stores
or derives. They are designed to:
1. Enforce type safety at runtime
2. Keep derived values derived (obligation amounts are never stored apart
   from their inputs)
3. Be serializable for storage and logging
4. Make historical records immutable

DESIGN DECISION: Amount and rate fields are strict integers.
A float or a numeric string is a caller bug, not something to coerce.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    model_validator,
)

from maaser.models.money import apply_rate
from maaser.models.period import Period


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class SettlementStatus(str, Enum):
    """
    Where a period stands for one owner.

    There is no stored "paid" flag: the status is read off the aggregate.
    """
    UNSETTLED = "unsettled"                  # Nothing paid yet, something due
    PARTIALLY_SETTLED = "partially_settled"  # At least one payment, still due
    SETTLED = "settled"                      # Nothing due


class GroupSettlementMatch(str, Enum):
    """
    How a group's settled amount was determined.

    EXACT_GROUP_MATCH: the group has only ever settled with exactly this
    membership, so the snapshot totals are used directly.
    NO_HISTORY / MIXED_HISTORY: fall back to summing each member's own
    attributed payments.
    """
    EXACT_GROUP_MATCH = "exact_group_match"
    NO_HISTORY = "no_history"
    MIXED_HISTORY = "mixed_history"


# =============================================================================
# INCOME LEDGER
# =============================================================================

class IncomeRecord(BaseModel):
    """
    One income event for one owner in one period.

    CRITICAL: obligation_amount is computed from gross_amount and
    obligation_rate every time it is read. It cannot drift from its inputs.

    Once is_frozen is set (by a settlement) the record is locked for good.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique income record ID"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="Owner of this income (verified by the caller)"
    )
    period: Period = Field(
        ...,
        description="Month this income belongs to (YYYY-MM)"
    )
    gross_amount: int = Field(
        ...,
        gt=0,
        strict=True,
        description="Gross income in minor units"
    )
    obligation_rate: int = Field(
        ...,
        ge=1,
        le=100,
        strict=True,
        description="Obligation percentage for this income"
    )
    label: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="Free-text description"
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    is_frozen: bool = Field(
        default=False,
        description="True once included in a payment snapshot"
    )

    @computed_field
    @property
    def obligation_amount(self) -> int:
        return apply_rate(self.gross_amount, self.obligation_rate)


class IncomeSnapshotEntry(BaseModel):
    """Copy of an income record as it was when a payment was made."""
    model_config = ConfigDict(frozen=True)

    income_id: UUID
    owner_id: str
    gross_amount: int
    obligation_rate: int
    obligation_amount: int
    label: Optional[str] = None

    @classmethod
    def from_record(cls, record: IncomeRecord) -> "IncomeSnapshotEntry":
        return cls(
            income_id=record.id,
            owner_id=record.owner_id,
            gross_amount=record.gross_amount,
            obligation_rate=record.obligation_rate,
            obligation_amount=record.obligation_amount,
            label=record.label,
        )


# =============================================================================
# FIXED CHARITY REGISTRY
# =============================================================================

class FixedCharityCommitment(BaseModel):
    """
    A recurring charitable commitment, deducted once per period.

    Only active commitments count, and only for computations that haven't
    already been fixed by a payment snapshot.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=1000,
        description="Who the commitment goes to"
    )
    amount: int = Field(
        ...,
        gt=0,
        strict=True,
        description="Monthly amount in minor units"
    )
    active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class FixedChargeSnapshotEntry(BaseModel):
    """Copy of a commitment amount that was deducted in a payment."""
    model_config = ConfigDict(frozen=True)

    commitment_id: UUID
    owner_id: str
    name: str
    amount: int

    @classmethod
    def from_commitment(
        cls,
        commitment: FixedCharityCommitment,
    ) -> "FixedChargeSnapshotEntry":
        return cls(
            commitment_id=commitment.id,
            owner_id=commitment.owner_id,
            name=commitment.name,
            amount=commitment.amount,
        )


# =============================================================================
# DERIVED PERIOD STATE
# =============================================================================

class PeriodAggregate(BaseModel):
    """
    What one owner owes for one period, right now.

    Derived on demand; never the source of truth.
    """
    model_config = ConfigDict(frozen=True)

    owner_id: str
    period: Period
    total_obligation: int = Field(ge=0)
    fixed_deduction: int = Field(ge=0)
    amount_settled: int = Field(ge=0)
    amount_due: int = Field(ge=0)
    snapshot_count: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def validate_due(self) -> 'PeriodAggregate':
        expected = max(
            0,
            self.total_obligation - self.fixed_deduction - self.amount_settled,
        )
        if self.amount_due != expected:
            raise ValueError(
                f"amount_due must be {expected}, got {self.amount_due}"
            )
        return self

    @property
    def net_obligation(self) -> int:
        """Obligation after the fixed deduction, before any payment."""
        return max(0, self.total_obligation - self.fixed_deduction)

    @property
    def credit(self) -> int:
        """Amount settled beyond this period's net obligation."""
        return max(0, self.amount_settled - self.net_obligation)

    @property
    def has_payments(self) -> bool:
        return self.snapshot_count > 0

    @property
    def status(self) -> SettlementStatus:
        if self.amount_due == 0:
            return SettlementStatus.SETTLED
        if self.snapshot_count == 0:
            return SettlementStatus.UNSETTLED
        return SettlementStatus.PARTIALLY_SETTLED


# =============================================================================
# PAYMENT SNAPSHOTS
# =============================================================================

class ParticipantState(BaseModel):
    """
    One participant's numbers as they stood when a payment was made.

    amount_attributed is this participant's share of the payment. It is
    fixed at settlement time and never re-derived.
    """
    model_config = ConfigDict(frozen=True)

    owner_id: str = Field(..., min_length=1)
    total_obligation: int = Field(ge=0)
    fixed_deduction_attributed: int = Field(ge=0)
    due_before_payment: int = Field(ge=0)
    amount_attributed: int = Field(default=0, ge=0)


class PaymentSnapshot(BaseModel):
    """
    An immutable record of money applied toward a period.

    CRITICAL: Snapshots are historical facts. They are created only by the
    settlement engine and are never edited or deleted.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    period: Period
    participant_ids: frozenset[str] = Field(
        ...,
        min_length=1,
        description="Everyone whose obligation this payment covers"
    )
    participant_states: tuple[ParticipantState, ...] = Field(
        ...,
        min_length=1,
        description="Per-participant state, in payment order"
    )
    amount_settled: int = Field(
        ...,
        gt=0,
        strict=True,
        description="Total money moved in this event"
    )
    settled_at: datetime = Field(default_factory=utc_now)
    income_snapshot: tuple[IncomeSnapshotEntry, ...] = Field(default_factory=tuple)
    fixed_charge_snapshot: tuple[FixedChargeSnapshotEntry, ...] = Field(
        default_factory=tuple
    )
    initiated_by: Optional[str] = Field(
        default=None,
        description="Who pressed pay (informational)"
    )

    @model_validator(mode='after')
    def validate_participants(self) -> 'PaymentSnapshot':
        """Participant states must cover the participant set exactly once."""
        owners = [state.owner_id for state in self.participant_states]
        if len(owners) != len(set(owners)):
            raise ValueError("Participant states contain a duplicate owner")
        if set(owners) != set(self.participant_ids):
            raise ValueError("Participant states do not match participant ids")

        attributed = sum(state.amount_attributed for state in self.participant_states)
        if attributed != self.amount_settled:
            raise ValueError(
                f"Attributed amounts ({attributed}) must add up to "
                f"amount settled ({self.amount_settled})"
            )
        return self

    def includes(self, owner_id: str) -> bool:
        return owner_id in self.participant_ids

    def state_for(self, owner_id: str) -> Optional[ParticipantState]:
        for state in self.participant_states:
            if state.owner_id == owner_id:
                return state
        return None

    def has_exact_members(self, owner_ids: Iterable[str]) -> bool:
        """Set equality with the given participants (order is irrelevant)."""
        return self.participant_ids == frozenset(owner_ids)

    @property
    def total_obligation(self) -> int:
        return sum(state.total_obligation for state in self.participant_states)

    @property
    def total_fixed_deduction(self) -> int:
        return sum(state.fixed_deduction_attributed for state in self.participant_states)

    @property
    def is_group_payment(self) -> bool:
        return len(self.participant_ids) > 1


# =============================================================================
# GROUP AND CARRY-FORWARD RESULTS
# =============================================================================

class GroupAggregate(BaseModel):
    """Combined state of several owners for one period."""
    model_config = ConfigDict(frozen=True)

    period: Period
    participant_ids: tuple[str, ...] = Field(..., min_length=1)
    members: tuple[PeriodAggregate, ...]
    total_obligation: int = Field(ge=0)
    fixed_deduction: int = Field(ge=0)
    amount_settled: int = Field(ge=0)
    amount_due: int = Field(ge=0)
    match: GroupSettlementMatch
    matched_snapshot_ids: tuple[UUID, ...] = Field(default_factory=tuple)

    @property
    def status(self) -> SettlementStatus:
        if self.amount_due == 0:
            return SettlementStatus.SETTLED
        if any(member.has_payments for member in self.members):
            return SettlementStatus.PARTIALLY_SETTLED
        return SettlementStatus.UNSETTLED


class PeriodBalance(BaseModel):
    """One period's line in a carry-forward summary."""
    model_config = ConfigDict(frozen=True)

    period: Period
    amount_due: int = Field(ge=0)
    credit: int = Field(ge=0)
    credit_applied: int = Field(
        ge=0,
        description="Pooled credit from overpayments used against this period"
    )
    outstanding: int = Field(ge=0)


class CarryForwardSummary(BaseModel):
    """Everything one owner still owes, up to and including a period."""
    model_config = ConfigDict(frozen=True)

    owner_id: str
    upto_period: Period
    periods: tuple[PeriodBalance, ...] = Field(default_factory=tuple)
    total_unpaid: int = Field(ge=0)
    unused_credit: int = Field(default=0, ge=0)

    @property
    def outstanding_periods(self) -> list[str]:
        return [balance.period for balance in self.periods if balance.outstanding > 0]


class MonthHistory(BaseModel):
    """One period of an owner's history, for display."""
    model_config = ConfigDict(frozen=True)

    period: Period
    state: PeriodAggregate
    outstanding: int = Field(
        default=0,
        ge=0,
        description="Still owed after pooled credit from overpayments is applied"
    )
    snapshots: tuple[PaymentSnapshot, ...] = Field(default_factory=tuple)
