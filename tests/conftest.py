"""
Shared fixtures.

Everything runs against in-memory storage with a fixed "today", so no test
depends on the wall clock or on a configured backend.
"""

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest

from maaser.audit import AuditLogger
from maaser.config import LedgerSettings
from maaser.models.ledger import ParticipantState, PaymentSnapshot
from maaser.orchestrator import MaaserLedger
from maaser.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage
from maaser.validation import LedgerInputValidator

PERIOD = "2024-03"
TODAY = date(2024, 3, 15)


@pytest.fixture
def ledger_settings():
    return LedgerSettings(
        default_obligation_rate=10,
        unusual_rate_threshold=20,
        max_income_amount=100_000_000,
        future_period_tolerance_months=1,
        max_label_length=200,
    )


@pytest.fixture
def validator(ledger_settings):
    return LedgerInputValidator(ledger_settings, today=TODAY)


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def ledger(storage, audit_logger, ledger_settings, validator):
    return MaaserLedger(
        storage=storage,
        audit_logger=audit_logger,
        settings=ledger_settings,
        validator=validator,
    )


@pytest.fixture
def make_snapshot():
    """
    Build a snapshot from (owner_id, fixed_deduction, amount_attributed)
    triples. minutes offsets settled_at so ordering is explicit.
    """
    base = datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)

    def _make(states, period=PERIOD, minutes=0, total_obligation=0):
        participant_states = tuple(
            ParticipantState(
                owner_id=owner_id,
                total_obligation=total_obligation,
                fixed_deduction_attributed=fixed,
                due_before_payment=0,
                amount_attributed=attributed,
            )
            for owner_id, fixed, attributed in states
        )
        return PaymentSnapshot(
            id=uuid4(),
            period=period,
            participant_ids=frozenset(owner_id for owner_id, _, _ in states),
            participant_states=participant_states,
            amount_settled=sum(attributed for _, _, attributed in states),
            settled_at=base + timedelta(minutes=minutes),
        )

    return _make
