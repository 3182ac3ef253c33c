"""
History Queries

Read-side views for the presentation layer: what an owner owes this month,
what they paid and when, month by month.

DESIGN DECISION: Every number shown comes from the same calculator the
settlement engine uses. Nothing here is cached or estimated, and nothing
here writes.
"""

from typing import Optional

from maaser.ledger.calculator import compute_state, order_snapshots
from maaser.ledger.carry_forward import CarryForwardCalculator, summarize
from maaser.models.ledger import MonthHistory, PaymentSnapshot, PeriodAggregate
from maaser.services.storage import LedgerStorageInterface


class HistoryReader:
    """
    Per-owner history reads.

    GUARANTEES:
    - Snapshots are always ordered by settled_at ascending
    - A month appears once it has income or a payment
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        carry_forward: Optional[CarryForwardCalculator] = None,
    ):
        self._storage = storage
        self._carry_forward = carry_forward or CarryForwardCalculator(storage)

    async def period_state(self, owner_id: str, period: str) -> PeriodAggregate:
        """The owner's current state for one month (zeros if untouched)."""
        income = await self._storage.list_income(owner_id, period=period)
        charities = await self._storage.list_charities(owner_id, active_only=True)
        snapshots = await self._storage.list_snapshots(period=period, owner_id=owner_id)
        return compute_state(owner_id, period, income, charities, snapshots)

    async def period_snapshots(self, owner_id: str, period: str) -> list[PaymentSnapshot]:
        """The owner's payments for one month, oldest first."""
        snapshots = await self._storage.list_snapshots(period=period, owner_id=owner_id)
        return order_snapshots(snapshots)

    async def month_history(
        self,
        owner_id: str,
        limit: Optional[int] = None,
    ) -> list[MonthHistory]:
        """
        Every month the owner has income or payments in, newest first.

        Args:
            limit: Return at most this many months
        """
        states = await self._carry_forward.period_states(owner_id)
        if not states:
            return []
        snapshots = order_snapshots(await self._storage.list_snapshots(owner_id=owner_id))
        balances = {
            balance.period: balance.outstanding
            for balance in summarize(owner_id, states[-1].period, states).periods
        }

        history = [
            MonthHistory(
                period=state.period,
                state=state,
                outstanding=balances[state.period],
                snapshots=tuple(s for s in snapshots if s.period == state.period),
            )
            for state in reversed(states)
        ]
        return history[:limit] if limit is not None else history
