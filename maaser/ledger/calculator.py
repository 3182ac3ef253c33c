"""
Month Obligation Calculator

Pure functions: no storage, no clock, no hidden state. The same inputs
always produce the same PeriodAggregate.

For one owner and one period:
1. total obligation = sum of every income record's obligation amount
   (frozen and unfrozen alike)
2. fixed deduction = the active commitments' total while the owner has no
   payment this period, otherwise the amount fixed in the owner's earliest
   payment of the period
3. amount settled = the owner's attributed share of every payment of the
   period they took part in
4. amount due = max(0, total - fixed - settled)
"""

from typing import Iterable

from maaser.models.ledger import (
    FixedCharityCommitment,
    IncomeRecord,
    PaymentSnapshot,
    PeriodAggregate,
)


def order_snapshots(snapshots: Iterable[PaymentSnapshot]) -> list[PaymentSnapshot]:
    """Snapshots by settled_at ascending. Ties keep their given order."""
    return sorted(snapshots, key=lambda s: s.settled_at)


def owner_snapshots(
    owner_id: str,
    period: str,
    snapshots: Iterable[PaymentSnapshot],
) -> list[PaymentSnapshot]:
    """The owner's payments in the period, earliest first."""
    return order_snapshots(
        s for s in snapshots if s.period == period and s.includes(owner_id)
    )


def active_charities_for(
    owner_id: str,
    charities: Iterable[FixedCharityCommitment],
) -> list[FixedCharityCommitment]:
    return [c for c in charities if c.owner_id == owner_id and c.active]


def pending_fixed_deduction(
    owner_id: str,
    period: str,
    charities: Iterable[FixedCharityCommitment],
    snapshots: Iterable[PaymentSnapshot],
) -> tuple[int, list[FixedCharityCommitment]]:
    """
    What the owner's next payment in the period would deduct.

    The active total (and the commitments making it up) if the owner has
    not paid this period yet; (0, []) otherwise.
    """
    if owner_snapshots(owner_id, period, snapshots):
        return 0, []
    active = active_charities_for(owner_id, charities)
    return sum(c.amount for c in active), active


def compute_state(
    owner_id: str,
    period: str,
    income_records: Iterable[IncomeRecord],
    active_charities: Iterable[FixedCharityCommitment],
    prior_snapshots: Iterable[PaymentSnapshot],
) -> PeriodAggregate:
    """
    Derive one owner's state for one period.

    Inputs may contain other owners' or periods' data; only the matching
    rows are used.
    """
    records = [
        r for r in income_records
        if r.owner_id == owner_id and r.period == period
    ]
    total_obligation = sum(r.obligation_amount for r in records)

    paid = owner_snapshots(owner_id, period, prior_snapshots)
    if paid:
        # Fixed by the first payment, never recomputed from the registry
        fixed_deduction = paid[0].state_for(owner_id).fixed_deduction_attributed
    else:
        fixed_deduction = sum(
            c.amount for c in active_charities_for(owner_id, active_charities)
        )

    amount_settled = sum(s.state_for(owner_id).amount_attributed for s in paid)

    return PeriodAggregate(
        owner_id=owner_id,
        period=period,
        total_obligation=total_obligation,
        fixed_deduction=fixed_deduction,
        amount_settled=amount_settled,
        amount_due=max(0, total_obligation - fixed_deduction - amount_settled),
        snapshot_count=len(paid),
    )
