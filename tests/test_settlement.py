"""Tests for the payment snapshot engine."""

import asyncio
from datetime import datetime, timezone

import pytest

from maaser.ledger.errors import (
    FrozenRecordError,
    OverpaymentExceedsDebtError,
    ValidationError,
)
from maaser.ledger.settlement import allocate
from maaser.models.audit import AuditEventType
from maaser.models.ledger import SettlementStatus
from maaser.orchestrator import MaaserLedger
from maaser.services.membership import SelectedPartnersProvider, SharedAccessGrant
from maaser.services.storage import InMemoryLedgerStorage, PersistenceError

PERIOD = "2024-03"


class FailingCommitStorage(InMemoryLedgerStorage):
    """Storage whose settlement commit always fails."""

    async def commit_settlement(self, snapshot):
        raise PersistenceError("backend unavailable")


class YieldingStorage(InMemoryLedgerStorage):
    """Storage that hands control back to the event loop on every read."""

    async def list_income(self, owner_id, period=None, frozen=None):
        await asyncio.sleep(0)
        return await super().list_income(owner_id, period=period, frozen=frozen)

    async def list_snapshots(self, period=None, owner_id=None):
        await asyncio.sleep(0)
        return await super().list_snapshots(period=period, owner_id=owner_id)


async def owner_x(ledger, gross=10000, charity=300, period=PERIOD):
    """X: 10000 at 10% with a 300 commitment, 700 due."""
    record = await ledger.record_income("x", gross, period=period)
    if charity:
        await ledger.add_charity("x", "Shul", charity)
    return record


async def owner_y(ledger, gross=50000, charity=100, period=PERIOD):
    """Y: 50000 at 10% with a 100 commitment, 4900 due."""
    record = await ledger.record_income("y", gross, period=period)
    if charity:
        await ledger.add_charity("y", "Pledge", charity)
    return record


class TestAllocate:
    """Tests for splitting a payment between participants."""

    def test_current_month_first_in_order(self):
        shares = allocate(500, ["x", "y"], {"x": 300, "y": 400}, {"x": 300, "y": 400})
        assert shares == {"x": 300, "y": 200}

    def test_remainder_goes_to_older_debt(self):
        """Test the second pass fills capacity beyond the current month."""
        shares = allocate(1500, ["x", "y"], {"x": 300, "y": 400}, {"x": 1000, "y": 400})
        assert shares == {"x": 1000, "y": 400}
        assert sum(shares.values()) == 1500

    def test_capacity_caps_current_due(self):
        shares = allocate(100, ["x"], {"x": 500}, {"x": 100})
        assert shares == {"x": 100}

    def test_zero_due_participant_gets_nothing(self):
        shares = allocate(300, ["x", "y"], {"x": 0, "y": 300}, {"x": 0, "y": 300})
        assert shares == {"x": 0, "y": 300}

    def test_exceeding_capacity_raises(self):
        with pytest.raises(ValueError):
            allocate(1001, ["x"], {"x": 1000}, {"x": 1000})


class TestSoloSettlement:
    """Tests for one-person payments."""

    @pytest.mark.asyncio
    async def test_full_payment_settles_and_freezes(self, ledger, storage):
        """Test paying the whole due settles the month and locks its income."""
        record = await owner_x(ledger)
        assert (await ledger.period_state("x", PERIOD)).amount_due == 700

        snapshot = await ledger.settle(PERIOD, ["x"], 700, initiated_by="x")

        assert snapshot.amount_settled == 700
        assert snapshot.participant_ids == frozenset({"x"})
        state = snapshot.state_for("x")
        assert (state.total_obligation, state.fixed_deduction_attributed) == (1000, 300)
        assert (state.due_before_payment, state.amount_attributed) == (700, 700)

        after = await ledger.period_state("x", PERIOD)
        assert after.amount_due == 0
        assert after.status == SettlementStatus.SETTLED
        assert (await storage.get_income(record.id)).is_frozen

        with pytest.raises(FrozenRecordError):
            await ledger.update_income("x", record.id, gross_amount=1)

    @pytest.mark.asyncio
    async def test_snapshot_copies_inputs(self, ledger):
        record = await owner_x(ledger)
        snapshot = await ledger.settle(PERIOD, ["x"], 700)
        assert [e.income_id for e in snapshot.income_snapshot] == [record.id]
        assert snapshot.income_snapshot[0].obligation_amount == 1000
        assert [(c.name, c.amount) for c in snapshot.fixed_charge_snapshot] == [("Shul", 300)]

    @pytest.mark.asyncio
    async def test_partial_payments(self, ledger):
        await owner_x(ledger)
        await ledger.settle(PERIOD, ["x"], 200)
        state = await ledger.period_state("x", PERIOD)
        assert state.amount_due == 500
        assert state.status == SettlementStatus.PARTIALLY_SETTLED

        await ledger.settle(PERIOD, ["x"], 500)
        assert (await ledger.period_state("x", PERIOD)).amount_due == 0

    @pytest.mark.asyncio
    async def test_deduction_taken_once_per_month(self, ledger):
        """Test only the first payment of the month carries the deduction."""
        await owner_x(ledger)
        first = await ledger.settle(PERIOD, ["x"], 200)
        second = await ledger.settle(PERIOD, ["x"], 100)
        assert first.state_for("x").fixed_deduction_attributed == 300
        assert second.state_for("x").fixed_deduction_attributed == 0
        assert second.fixed_charge_snapshot == ()
        assert (await ledger.period_state("x", PERIOD)).fixed_deduction == 300

    @pytest.mark.asyncio
    async def test_income_added_after_payment_raises_due(self, ledger):
        await owner_x(ledger)
        await ledger.settle(PERIOD, ["x"], 700)
        await ledger.record_income("x", 5000, period=PERIOD)
        state = await ledger.period_state("x", PERIOD)
        assert state.amount_due == 500
        assert state.status == SettlementStatus.PARTIALLY_SETTLED

    @pytest.mark.asyncio
    async def test_duplicate_participants_collapse(self, ledger):
        await owner_x(ledger)
        snapshot = await ledger.settle(PERIOD, ["x", "x"], 700)
        assert len(snapshot.participant_states) == 1


class TestOverpayment:
    """Tests for the accumulated-unpaid ceiling."""

    @pytest.mark.asyncio
    async def test_overpayment_rejected_without_side_effects(self, ledger, storage, audit_storage):
        """Test nothing is written when the amount exceeds the debt."""
        record = await owner_x(ledger)

        with pytest.raises(OverpaymentExceedsDebtError) as exc_info:
            await ledger.settle(PERIOD, ["x"], 701, initiated_by="x")

        assert (exc_info.value.requested, exc_info.value.ceiling) == (701, 700)
        assert await storage.list_snapshots() == []
        assert not (await storage.get_income(record.id)).is_frozen

        rejected = [
            e for e in await audit_storage.get_recent_events()
            if e.event_type == AuditEventType.SETTLEMENT_REJECTED
        ]
        assert rejected[0].details["ceiling"] == 700

    @pytest.mark.asyncio
    async def test_nothing_owed(self, ledger):
        with pytest.raises(OverpaymentExceedsDebtError) as exc_info:
            await ledger.settle(PERIOD, ["x"], 1)
        assert exc_info.value.ceiling == 0

    @pytest.mark.asyncio
    async def test_overpayment_clears_older_months(self, ledger):
        """Test money beyond this month's due goes to earlier debt."""
        await ledger.record_income("x", 10000, period="2024-02")
        await ledger.record_income("x", 5000, period=PERIOD)
        assert await ledger.accumulated_unpaid(["x"], PERIOD) == 1500

        snapshot = await ledger.settle(PERIOD, ["x"], 1200)

        assert snapshot.state_for("x").amount_attributed == 1200
        march = await ledger.period_state("x", PERIOD)
        assert march.amount_due == 0
        assert march.credit == 700
        assert await ledger.accumulated_unpaid(["x"], PERIOD) == 300

        with pytest.raises(OverpaymentExceedsDebtError):
            await ledger.settle(PERIOD, ["x"], 301)
        await ledger.settle(PERIOD, ["x"], 300)
        assert await ledger.accumulated_unpaid(["x"], PERIOD) == 0

    @pytest.mark.asyncio
    async def test_month_cleared_by_later_overpayment_cannot_be_paid_again(self, ledger):
        """Test credit from a later month also caps payments to the month it cleared."""
        await ledger.record_income("x", 10000, period="2024-02")
        await ledger.record_income("x", 5000, period=PERIOD)
        await ledger.settle(PERIOD, ["x"], 1500)

        assert await ledger.accumulated_unpaid(["x"], "2024-02") == 0
        with pytest.raises(OverpaymentExceedsDebtError) as exc_info:
            await ledger.settle("2024-02", ["x"], 1000)
        assert exc_info.value.ceiling == 0
        assert len(await ledger.history.period_snapshots("x", "2024-02")) == 0

    @pytest.mark.asyncio
    async def test_partly_cleared_month_accepts_only_the_remainder(self, ledger):
        await ledger.record_income("x", 10000, period="2024-02")
        await ledger.record_income("x", 5000, period=PERIOD)
        await ledger.settle(PERIOD, ["x"], 900)

        with pytest.raises(OverpaymentExceedsDebtError):
            await ledger.settle("2024-02", ["x"], 601)
        await ledger.settle("2024-02", ["x"], 600)
        assert await ledger.accumulated_unpaid(["x"], PERIOD) == 0

    @pytest.mark.asyncio
    async def test_later_months_do_not_raise_ceiling(self, ledger):
        await ledger.record_income("x", 10000, period=PERIOD)
        await ledger.record_income("x", 10000, period="2024-04")
        with pytest.raises(OverpaymentExceedsDebtError):
            await ledger.settle(PERIOD, ["x"], 1001)

    @pytest.mark.asyncio
    async def test_ceiling_helper(self, ledger):
        await owner_x(ledger)
        await owner_y(ledger)
        assert await ledger.settlements.ceiling(PERIOD, ["x", "y"]) == 5600


class TestGroupSettlement:
    """Tests for payments covering several owners."""

    @pytest.mark.asyncio
    async def test_joint_payment(self, ledger, storage):
        """Test one snapshot settles both owners with stored shares."""
        await owner_x(ledger)
        await owner_y(ledger)

        snapshot = await ledger.settle(PERIOD, ["x", "y"], 5600)

        assert snapshot.participant_ids == frozenset({"x", "y"})
        assert snapshot.state_for("x").amount_attributed == 700
        assert snapshot.state_for("y").amount_attributed == 4900
        assert snapshot.state_for("x").fixed_deduction_attributed == 300
        assert snapshot.state_for("y").fixed_deduction_attributed == 100

        group = await ledger.group_state(PERIOD, ["x", "y"])
        assert group.amount_due == 0

        x_state = await ledger.period_state("x", PERIOD)
        assert (x_state.fixed_deduction, x_state.amount_settled, x_state.amount_due) == (300, 700, 0)
        assert len(await storage.list_income("y", period=PERIOD, frozen=True)) == 1

    @pytest.mark.asyncio
    async def test_solo_then_group(self, ledger):
        """Test a group payment after a solo one does not deduct again."""
        await owner_x(ledger, gross=18000)
        await owner_y(ledger)

        solo = await ledger.settle(PERIOD, ["x"], 1000)
        assert solo.state_for("x").fixed_deduction_attributed == 300
        assert (await ledger.period_state("x", PERIOD)).amount_due == 500

        joint = await ledger.settle(PERIOD, ["x", "y"], 5400)
        assert joint.state_for("x").fixed_deduction_attributed == 0
        assert joint.state_for("y").fixed_deduction_attributed == 100
        assert joint.state_for("x").amount_attributed == 500
        assert joint.state_for("y").amount_attributed == 4900

        assert len(await ledger.history.period_snapshots("x", PERIOD)) == 2
        assert (await ledger.period_state("x", PERIOD)).amount_due == 0
        assert (await ledger.group_state(PERIOD, ["x", "y"])).amount_due == 0

    @pytest.mark.asyncio
    async def test_zero_due_participant_still_frozen(self, ledger, storage):
        """Test a member owing nothing still has their month locked."""
        await owner_x(ledger)
        y_record = await owner_y(ledger, gross=1000, charity=100)

        snapshot = await ledger.settle(PERIOD, ["x", "y"], 700)

        assert snapshot.state_for("y").amount_attributed == 0
        assert snapshot.state_for("y").fixed_deduction_attributed == 100
        assert (await storage.get_income(y_record.id)).is_frozen

    @pytest.mark.asyncio
    async def test_group_payment_clears_member_older_debt(self, ledger):
        await owner_x(ledger)
        await ledger.record_income("y", 10000, period="2024-02")

        snapshot = await ledger.settle(PERIOD, ["x", "y"], 1700)

        assert snapshot.state_for("x").amount_attributed == 700
        assert snapshot.state_for("y").amount_attributed == 1000
        assert await ledger.accumulated_unpaid(["y"], PERIOD) == 0

    @pytest.mark.asyncio
    async def test_settle_group_uses_membership(self, ledger):
        await owner_x(ledger)
        await owner_y(ledger)
        membership = SelectedPartnersProvider([
            SharedAccessGrant(owner_id="y", viewer_id="x", is_selected=True),
        ])

        snapshot = await ledger.settle_group("x", PERIOD, 5600, membership)

        assert snapshot.participant_ids == frozenset({"x", "y"})
        assert snapshot.initiated_by == "x"


class TestSettlementFailures:
    """Tests for invalid requests, storage failures and ordering."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("participants,amount", [
        ([], 100),
        (["x"], 0),
        (["x"], -5),
        (["x"], 10.0),
        ("x", 100),
    ])
    async def test_invalid_requests(self, ledger, storage, participants, amount):
        await owner_x(ledger)
        with pytest.raises(ValidationError):
            await ledger.settle(PERIOD, participants, amount)
        assert await storage.list_snapshots() == []

    @pytest.mark.asyncio
    async def test_failed_commit_applies_nothing(self, audit_logger, audit_storage, ledger_settings, validator):
        """Test a storage failure leaves no snapshot and no frozen income."""
        storage = FailingCommitStorage()
        ledger = MaaserLedger(storage, audit_logger, ledger_settings, validator)
        record = await owner_x(ledger)

        with pytest.raises(PersistenceError):
            await ledger.settle(PERIOD, ["x"], 700)

        assert await storage.list_snapshots() == []
        assert not (await storage.get_income(record.id)).is_frozen
        assert (await ledger.period_state("x", PERIOD)).amount_due == 700

        events = await audit_storage.get_recent_events()
        assert AuditEventType.STORAGE_ERROR in [e.event_type for e in events]

    @pytest.mark.asyncio
    async def test_explicit_time_must_not_precede_existing(self, ledger):
        await owner_x(ledger)
        first_at = datetime(2024, 3, 20, tzinfo=timezone.utc)
        await ledger.settlements.settle(PERIOD, ["x"], 100, settled_at=first_at)

        with pytest.raises(ValidationError) as exc_info:
            await ledger.settlements.settle(
                PERIOD, ["x"], 100, settled_at=datetime(2024, 3, 19, tzinfo=timezone.utc)
            )
        assert exc_info.value.issues[0].issue_type == "out_of_order"

        later = await ledger.settlements.settle(
            PERIOD, ["x"], 100, settled_at=datetime(2024, 3, 21, tzinfo=timezone.utc)
        )
        snapshots = await ledger.history.period_snapshots("x", PERIOD)
        assert snapshots[-1].id == later.id

    @pytest.mark.asyncio
    async def test_success_is_audited(self, ledger, audit_storage):
        await owner_x(ledger)
        snapshot = await ledger.settle(PERIOD, ["x"], 700, initiated_by="x")
        events = await audit_storage.get_events_by_entity("snapshot", snapshot.id)
        assert events[0].event_type == AuditEventType.SETTLEMENT_RECORDED
        assert events[0].details["frozen_income_count"] == 1
        assert events[0].details["fixed_deduction"] == snapshot.total_fixed_deduction == 300


class TestConcurrency:
    """Tests that concurrent writers cannot break the ceiling or the freeze."""

    @pytest.fixture
    def yielding_ledger(self, audit_logger, ledger_settings, validator):
        return MaaserLedger(YieldingStorage(), audit_logger, ledger_settings, validator)

    @pytest.mark.asyncio
    async def test_concurrent_settlements_respect_ceiling(self, yielding_ledger):
        """Test two racing full payments: one lands, one is rejected."""
        await owner_x(yielding_ledger)

        results = await asyncio.gather(
            yielding_ledger.settle(PERIOD, ["x"], 700),
            yielding_ledger.settle(PERIOD, ["x"], 700),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], OverpaymentExceedsDebtError)
        assert (await yielding_ledger.period_state("x", PERIOD)).amount_settled == 700

    @pytest.mark.asyncio
    async def test_overlapping_group_settlements(self, yielding_ledger):
        """Test groups sharing a member serialise without deadlock."""
        await owner_x(yielding_ledger, charity=0)
        await owner_y(yielding_ledger, gross=10000, charity=0)

        results = await asyncio.gather(
            yielding_ledger.settle(PERIOD, ["x", "y"], 2000),
            yielding_ledger.settle(PERIOD, ["y", "x"], 2000),
            return_exceptions=True,
        )

        assert sum(isinstance(r, OverpaymentExceedsDebtError) for r in results) == 1
        assert await yielding_ledger.accumulated_unpaid(["x", "y"], PERIOD) == 0

    @pytest.mark.asyncio
    async def test_edit_racing_settlement(self, yielding_ledger):
        """Test an edit either lands before the snapshot or is rejected."""
        record = await owner_x(yielding_ledger, charity=0)

        settled, edited = await asyncio.gather(
            yielding_ledger.settle(PERIOD, ["x"], 500),
            yielding_ledger.update_income("x", record.id, gross_amount=20000),
            return_exceptions=True,
        )

        assert not isinstance(settled, Exception)
        if isinstance(edited, Exception):
            assert isinstance(edited, FrozenRecordError)
            assert settled.income_snapshot[0].gross_amount == 10000
        else:
            assert settled.income_snapshot[0].gross_amount == 20000
