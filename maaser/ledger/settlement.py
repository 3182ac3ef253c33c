"""
Payment Snapshot Engine

The only way money gets applied to a month. A settlement:
1. Validates the request
2. Computes every participant's current state for the period
3. Rejects the payment if it exceeds what the participants owe in total
   across all months up to this one
4. Splits the amount between participants (see ALLOCATION)
5. Deducts each participant's fixed charities iff this is their first
   payment of the month
6. Commits the snapshot and freezes every participant's income for the
   month in ONE atomic storage call

Steps 1-4 never write. If step 6 fails nothing was applied.

ALLOCATION (overpayment policy): participants are served in the order
given. First pass: each gets up to their current-month due. Second pass:
whatever is left goes to older debt, again in order. Each participant's
share is capped by their own accumulated unpaid and stored on the
snapshot, so it is never re-derived later.

CONCURRENCY: settlements hold the lock of every participant for their
whole read-check-commit cycle. Settling is NOT idempotent; callers must
not retry a failed call blindly (a PersistenceError from a remote backend
may hide a commit that did land).
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Optional
from uuid import UUID

import pydantic

from maaser.audit import AuditLogger, create_correlation_id
from maaser.ledger.calculator import compute_state, pending_fixed_deduction
from maaser.ledger.carry_forward import CarryForwardCalculator
from maaser.ledger.errors import OverpaymentExceedsDebtError, ValidationError
from maaser.ledger.locks import OwnerLocks
from maaser.models.ledger import (
    FixedChargeSnapshotEntry,
    IncomeSnapshotEntry,
    ParticipantState,
    PaymentSnapshot,
    PeriodAggregate,
    utc_now,
)
from maaser.models.validation import ValidationIssue
from maaser.services.storage import LedgerStorageInterface, PersistenceError
from maaser.validation import LedgerInputValidator


def allocate(
    amount: int,
    participants: list[str],
    current_due: dict[str, int],
    capacity: dict[str, int],
) -> dict[str, int]:
    """
    Split a payment between participants, current month first.

    Args:
        amount: Total to split; must not exceed sum(capacity)
        participants: Payment order
        current_due: Each participant's due for the settled month
        capacity: Each participant's accumulated unpaid (the cap)

    Returns:
        Share per participant; shares add up to amount
    """
    shares = {owner_id: 0 for owner_id in participants}
    remaining = amount

    for owner_id in participants:
        take = min(remaining, current_due[owner_id], capacity[owner_id])
        shares[owner_id] += take
        remaining -= take

    for owner_id in participants:
        take = min(remaining, capacity[owner_id] - shares[owner_id])
        shares[owner_id] += take
        remaining -= take

    if remaining:
        raise ValueError(f"Amount exceeds total capacity by {remaining}")
    return shares


class PaymentSnapshotEngine:
    """Creates payment snapshots, solo or group."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerInputValidator] = None,
        locks: Optional[OwnerLocks] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._validator = validator or LedgerInputValidator()
        self._locks = locks or OwnerLocks()
        self._carry_forward = CarryForwardCalculator(storage)

    async def ceiling(self, period: str, participant_ids: Iterable[str]) -> int:
        """The most a settlement for these participants may apply right now."""
        return await self._carry_forward.total_accumulated_unpaid(participant_ids, period)

    async def settle(
        self,
        period: str,
        participant_ids: Iterable[str],
        amount: int,
        initiated_by: Optional[str] = None,
        settled_at: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> PaymentSnapshot:
        """
        Apply a payment to a month for one or more participants.

        Args:
            period: Month being paid (YYYY-MM)
            participant_ids: Everyone whose obligation this covers;
                             order decides allocation, duplicates are ignored
            amount: Money moved, minor units, > 0
            initiated_by: Who pressed pay (informational)
            settled_at: Payment time (timezone-aware); defaults to now,
                        may not precede an existing payment of the period

        Returns:
            The committed snapshot

        Raises:
            ValidationError: Invalid request
            OverpaymentExceedsDebtError: amount exceeds accumulated unpaid
            PersistenceError: Storage failed; nothing was applied
        """
        correlation_id = correlation_id or create_correlation_id()

        if not isinstance(participant_ids, (str, bytes)) and isinstance(participant_ids, Iterable):
            participant_ids = list(participant_ids)

        result = self._validator.validate_settlement(period, participant_ids, amount)
        if result.has_errors:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    subject=result.subject,
                    issues=[issue.model_dump() for issue in result.errors],
                    owner_id=initiated_by,
                    correlation_id=correlation_id,
                )
            ValidationError.raise_for(result)

        participants = list(dict.fromkeys(participant_ids))

        async with self._locks.hold(participants):
            snapshot = await self._build_snapshot(
                period=period,
                participants=participants,
                amount=amount,
                initiated_by=initiated_by,
                settled_at=settled_at,
                correlation_id=correlation_id,
            )

            try:
                frozen_count = await self._storage.commit_settlement(snapshot)
            except PersistenceError as e:
                if self._audit_logger:
                    await self._audit_logger.log_storage_error(
                        operation="commit_settlement",
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                raise

        if self._audit_logger:
            await self._audit_logger.log_settlement_recorded(
                snapshot_id=snapshot.id,
                period=period,
                participant_ids=participants,
                amount_settled=amount,
                frozen_count=frozen_count,
                fixed_deduction=snapshot.total_fixed_deduction,
                initiated_by=initiated_by,
                correlation_id=correlation_id,
            )
        return snapshot

    async def _build_snapshot(
        self,
        period: str,
        participants: list[str],
        amount: int,
        initiated_by: Optional[str],
        settled_at: Optional[datetime],
        correlation_id: UUID,
    ) -> PaymentSnapshot:
        """Everything up to (not including) the commit. Never writes."""
        prior = await self._storage.list_snapshots(period=period)

        # Keep snapshot order equal to payment order
        latest = max((s.settled_at for s in prior), default=None)
        if settled_at is None:
            settled_at = utc_now() if latest is None else max(utc_now(), latest)
        elif latest is not None and settled_at < latest:
            raise ValidationError(
                [ValidationIssue(
                    field="settled_at",
                    issue_type="out_of_order",
                    message="Payment time is earlier than an existing payment for this period",
                    severity="error",
                )],
                subject="settlement",
            )

        states: dict[str, PeriodAggregate] = {}
        capacity: dict[str, int] = {}
        income_entries: list[IncomeSnapshotEntry] = []
        charge_entries: list[FixedChargeSnapshotEntry] = []
        deductions: dict[str, int] = {}

        for owner_id in participants:
            income = await self._storage.list_income(owner_id, period=period)
            charities = await self._storage.list_charities(owner_id, active_only=True)

            states[owner_id] = compute_state(owner_id, period, income, charities, prior)
            capacity[owner_id] = (
                await self._carry_forward.summary(owner_id, period)
            ).total_unpaid

            deductions[owner_id], deducted = pending_fixed_deduction(
                owner_id, period, charities, prior
            )
            income_entries.extend(IncomeSnapshotEntry.from_record(r) for r in income)
            charge_entries.extend(FixedChargeSnapshotEntry.from_commitment(c) for c in deducted)

        ceiling = sum(capacity.values())
        if amount > ceiling:
            if self._audit_logger:
                await self._audit_logger.log_settlement_rejected(
                    period=period,
                    participant_ids=participants,
                    requested=amount,
                    ceiling=ceiling,
                    initiated_by=initiated_by,
                    correlation_id=correlation_id,
                )
            raise OverpaymentExceedsDebtError(requested=amount, ceiling=ceiling)

        shares = allocate(
            amount,
            participants,
            {owner_id: state.amount_due for owner_id, state in states.items()},
            capacity,
        )

        try:
            return PaymentSnapshot(
                period=period,
                participant_ids=frozenset(participants),
                participant_states=tuple(
                    ParticipantState(
                        owner_id=owner_id,
                        total_obligation=states[owner_id].total_obligation,
                        fixed_deduction_attributed=deductions[owner_id],
                        due_before_payment=states[owner_id].amount_due,
                        amount_attributed=shares[owner_id],
                    )
                    for owner_id in participants
                ),
                amount_settled=amount,
                settled_at=settled_at,
                income_snapshot=tuple(income_entries),
                fixed_charge_snapshot=tuple(charge_entries),
                initiated_by=initiated_by,
            )
        except pydantic.ValidationError as e:
            raise ValidationError.from_pydantic(e, subject="settlement")
