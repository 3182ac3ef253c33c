"""
Group Aggregation Layer

Combines several owners' month states into one shared total.

Membership changes over time (a partner joins, a sharer is deselected), so
the group's settled amount is chosen by a tagged strategy:

- EXACT_GROUP_MATCH: every payment touching any member this month was made
  by exactly this membership. The payments' totals are used directly.
- NO_HISTORY: no payment by exactly this membership. Each member's own
  attributed share is summed.
- MIXED_HISTORY: exact-membership payments exist alongside payments by
  other compositions. Summing the exact ones alone would miss the others,
  so each member's own attributed share is summed here too.

Fixed deductions are summed per member, each counted once. The group due
is NOT the sum of member dues: it is capped at zero once, for the group.
"""

from collections.abc import Iterable, Sequence

from maaser.ledger.calculator import compute_state
from maaser.ledger.errors import ValidationError
from maaser.models.ledger import (
    GroupAggregate,
    GroupSettlementMatch,
    PaymentSnapshot,
    PeriodAggregate,
)
from maaser.models.validation import ValidationIssue
from maaser.services.storage import LedgerStorageInterface


def combine(
    period: str,
    participant_ids: Sequence[str],
    members: Sequence[PeriodAggregate],
    snapshots: Iterable[PaymentSnapshot],
) -> GroupAggregate:
    """Pure group aggregation over already-computed member states."""
    participants = list(dict.fromkeys(participant_ids))

    touching = [
        s for s in snapshots
        if s.period == period and any(s.includes(p) for p in participants)
    ]
    exact = [s for s in touching if s.has_exact_members(participants)]

    if exact and len(exact) == len(touching):
        match = GroupSettlementMatch.EXACT_GROUP_MATCH
        amount_settled = sum(s.amount_settled for s in exact)
    else:
        match = (
            GroupSettlementMatch.MIXED_HISTORY if exact
            else GroupSettlementMatch.NO_HISTORY
        )
        amount_settled = sum(m.amount_settled for m in members)

    total_obligation = sum(m.total_obligation for m in members)
    fixed_deduction = sum(m.fixed_deduction for m in members)

    return GroupAggregate(
        period=period,
        participant_ids=tuple(participants),
        members=tuple(members),
        total_obligation=total_obligation,
        fixed_deduction=fixed_deduction,
        amount_settled=amount_settled,
        amount_due=max(0, total_obligation - fixed_deduction - amount_settled),
        match=match,
        matched_snapshot_ids=tuple(s.id for s in exact),
    )


class GroupAggregator:
    """Reads member states from storage and combines them."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def aggregate(
        self,
        period: str,
        participant_ids: Iterable[str],
    ) -> GroupAggregate:
        """
        The shared state of a group for one month.

        Raises:
            ValidationError: If participant_ids is empty
        """
        participants = list(dict.fromkeys(participant_ids))
        if not participants:
            raise ValidationError(
                [ValidationIssue(
                    field="participant_ids",
                    issue_type="missing",
                    message="At least one participant is required",
                    severity="error",
                )],
                subject="group",
            )

        snapshots = await self._storage.list_snapshots(period=period)
        members = []
        for owner_id in participants:
            income = await self._storage.list_income(owner_id, period=period)
            charities = await self._storage.list_charities(owner_id, active_only=True)
            members.append(compute_state(owner_id, period, income, charities, snapshots))

        return combine(period, participants, members, snapshots)
