"""Tests for the pure month obligation calculator."""

from maaser.ledger.calculator import (
    compute_state,
    order_snapshots,
    owner_snapshots,
    pending_fixed_deduction,
)
from maaser.models.ledger import FixedCharityCommitment, IncomeRecord, SettlementStatus

PERIOD = "2024-03"


def income(owner_id, gross, rate=10, period=PERIOD, frozen=False):
    return IncomeRecord(
        owner_id=owner_id,
        period=period,
        gross_amount=gross,
        obligation_rate=rate,
        is_frozen=frozen,
    )


def charity(owner_id, amount, active=True):
    return FixedCharityCommitment(owner_id=owner_id, name="Shul", amount=amount, active=active)


class TestComputeState:
    """Tests for compute_state."""

    def test_single_income_with_charity(self):
        """Test 10000 at 10% minus a 300 commitment leaves 700 due."""
        state = compute_state("x", PERIOD, [income("x", 10000)], [charity("x", 300)], [])
        assert state.total_obligation == 1000
        assert state.fixed_deduction == 300
        assert state.amount_settled == 0
        assert state.amount_due == 700
        assert state.status == SettlementStatus.UNSETTLED

    def test_empty_month(self):
        state = compute_state("x", PERIOD, [], [], [])
        assert state.amount_due == 0
        assert state.snapshot_count == 0

    def test_due_never_negative(self):
        """Test a deduction larger than the obligation caps due at zero."""
        state = compute_state("x", PERIOD, [income("x", 1000)], [charity("x", 500)], [])
        assert state.total_obligation == 100
        assert state.amount_due == 0

    def test_frozen_and_unfrozen_both_count(self):
        records = [income("x", 10000, frozen=True), income("x", 5000)]
        state = compute_state("x", PERIOD, records, [], [])
        assert state.total_obligation == 1500

    def test_each_record_rounded_separately(self):
        """Test rounding happens per record, before summing."""
        state = compute_state("x", PERIOD, [income("x", 25), income("x", 25)], [], [])
        assert state.total_obligation == 6

    def test_filters_other_owners_and_periods(self):
        records = [
            income("x", 10000),
            income("y", 50000),
            income("x", 20000, period="2024-02"),
        ]
        charities = [charity("x", 100), charity("y", 999), charity("x", 50, active=False)]
        state = compute_state("x", PERIOD, records, charities, [])
        assert state.total_obligation == 1000
        assert state.fixed_deduction == 100

    def test_is_idempotent(self, make_snapshot):
        """Test identical inputs give identical results."""
        records = [income("x", 10000)]
        charities = [charity("x", 300)]
        snapshots = [make_snapshot([("x", 300, 400)])]
        first = compute_state("x", PERIOD, records, charities, snapshots)
        second = compute_state("x", PERIOD, records, charities, snapshots)
        assert first == second

    def test_payment_reduces_due(self, make_snapshot):
        snapshots = [make_snapshot([("x", 300, 400)])]
        state = compute_state("x", PERIOD, [income("x", 10000)], [charity("x", 300)], snapshots)
        assert state.amount_settled == 400
        assert state.amount_due == 300
        assert state.status == SettlementStatus.PARTIALLY_SETTLED

    def test_deduction_fixed_by_first_payment(self, make_snapshot):
        """Test registry changes after the first payment do not move the deduction."""
        snapshots = [
            make_snapshot([("x", 300, 200)], minutes=0),
            make_snapshot([("x", 0, 100)], minutes=5),
        ]
        charities = [charity("x", 300), charity("x", 1000)]
        state = compute_state("x", PERIOD, [income("x", 10000)], charities, snapshots)
        assert state.fixed_deduction == 300
        assert state.amount_settled == 300
        assert state.amount_due == 400

    def test_earliest_snapshot_wins_regardless_of_list_order(self, make_snapshot):
        later = make_snapshot([("x", 0, 100)], minutes=10)
        earlier = make_snapshot([("x", 250, 100)], minutes=1)
        state = compute_state("x", PERIOD, [income("x", 10000)], [], [later, earlier])
        assert state.fixed_deduction == 250

    def test_group_snapshot_uses_own_share(self, make_snapshot):
        """Test only the owner's attributed share counts toward their month."""
        snapshots = [make_snapshot([("x", 0, 600), ("y", 0, 400)])]
        state = compute_state("y", PERIOD, [income("y", 10000)], [], snapshots)
        assert state.amount_settled == 400
        assert state.amount_due == 600

    def test_deactivated_charity_ignored_before_payment(self):
        state = compute_state(
            "x", PERIOD, [income("x", 10000)], [charity("x", 300, active=False)], []
        )
        assert state.fixed_deduction == 0


class TestSnapshotHelpers:
    """Tests for snapshot ordering and pending deductions."""

    def test_order_is_stable(self, make_snapshot):
        """Test equal timestamps keep their given order."""
        a = make_snapshot([("x", 0, 100)], minutes=3)
        b = make_snapshot([("x", 0, 100)], minutes=3)
        c = make_snapshot([("x", 0, 100)], minutes=1)
        assert order_snapshots([a, b, c]) == [c, a, b]

    def test_owner_snapshots_filter(self, make_snapshot):
        mine = make_snapshot([("x", 0, 100)])
        other_period = make_snapshot([("x", 0, 100)], period="2024-02")
        others = make_snapshot([("y", 0, 100)])
        assert owner_snapshots("x", PERIOD, [mine, other_period, others]) == [mine]

    def test_pending_deduction_before_first_payment(self):
        commitments = [charity("x", 300), charity("x", 200, active=False)]
        amount, deducted = pending_fixed_deduction("x", PERIOD, commitments, [])
        assert amount == 300
        assert [c.amount for c in deducted] == [300]

    def test_pending_deduction_after_payment(self, make_snapshot):
        """Test the deduction is taken only once per owner and month."""
        snapshots = [make_snapshot([("x", 300, 100)])]
        assert pending_fixed_deduction("x", PERIOD, [charity("x", 300)], snapshots) == (0, [])

    def test_group_payment_counts_for_each_member(self, make_snapshot):
        snapshots = [make_snapshot([("x", 300, 100), ("y", 0, 100)])]
        assert pending_fixed_deduction("y", PERIOD, [charity("y", 50)], snapshots) == (0, [])
