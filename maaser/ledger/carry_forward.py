"""
Carry-Forward / Accumulation

Sums what an owner still owes across every period up to a target period.
The result bounds how much a single settlement may apply.

CREDIT HANDLING: a period can be settled beyond its net obligation when a
payment is used to clear older debt. That credit is pooled across the
owner's whole history, later periods included, and applied to the oldest
outstanding period first. Without any credit the total is exactly the sum
of each period's amount_due; with credit it never counts money twice, so
settling A reduces the total by exactly A.
"""

from collections import defaultdict
from typing import Iterable, Optional

from maaser.ledger.calculator import compute_state
from maaser.models.ledger import (
    CarryForwardSummary,
    PeriodAggregate,
    PeriodBalance,
)
from maaser.services.storage import LedgerStorageInterface


def summarize(
    owner_id: str,
    upto_period: str,
    aggregates: Iterable[PeriodAggregate],
) -> CarryForwardSummary:
    """
    Pure carry-forward over already-computed period states.

    Credit is pooled from every period, later ones included, and applied
    oldest period first. Only periods up to upto_period are reported and
    counted as unpaid, so a month already cleared by a later overpayment
    never counts as owing again.
    """
    ordered = sorted(aggregates, key=lambda a: a.period)
    pool = sum(a.credit for a in ordered)

    balances = []
    for aggregate in ordered:
        applied = min(pool, aggregate.amount_due)
        pool -= applied
        balances.append(PeriodBalance(
            period=aggregate.period,
            amount_due=aggregate.amount_due,
            credit=aggregate.credit,
            credit_applied=applied,
            outstanding=aggregate.amount_due - applied,
        ))

    reported = [b for b in balances if b.period <= upto_period]
    return CarryForwardSummary(
        owner_id=owner_id,
        upto_period=upto_period,
        periods=tuple(reported),
        total_unpaid=sum(b.outstanding for b in reported),
        unused_credit=pool,
    )


class CarryForwardCalculator:
    """Loads an owner's history from storage and accumulates it."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def period_states(
        self,
        owner_id: str,
        upto_period: Optional[str] = None,
    ) -> list[PeriodAggregate]:
        """
        The owner's state for every period with income or payments.

        Periods come from the union of income periods and snapshot periods,
        ascending, optionally cut off after upto_period.
        """
        income = await self._storage.list_income(owner_id)
        snapshots = await self._storage.list_snapshots(owner_id=owner_id)
        charities = await self._storage.list_charities(owner_id, active_only=True)

        income_by_period = defaultdict(list)
        for record in income:
            income_by_period[record.period].append(record)
        snapshots_by_period = defaultdict(list)
        for snapshot in snapshots:
            snapshots_by_period[snapshot.period].append(snapshot)

        periods = sorted(set(income_by_period) | set(snapshots_by_period))
        if upto_period is not None:
            periods = [p for p in periods if p <= upto_period]

        return [
            compute_state(
                owner_id,
                period,
                income_by_period[period],
                charities,
                snapshots_by_period[period],
            )
            for period in periods
        ]

    async def summary(self, owner_id: str, upto_period: str) -> CarryForwardSummary:
        states = await self.period_states(owner_id)
        return summarize(owner_id, upto_period, states)

    async def total_accumulated_unpaid(
        self,
        participant_ids: Iterable[str],
        upto_period: str,
    ) -> int:
        """Sum of every participant's accumulated unpaid up to upto_period."""
        total = 0
        for owner_id in dict.fromkeys(participant_ids):
            total += (await self.summary(owner_id, upto_period)).total_unpaid
        return total
