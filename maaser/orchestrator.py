"""
Main Orchestrator for the Maaser Ledger

This module ties the components together behind one facade that the
surrounding application (web handlers, CLI, settings page) calls:
1. Income: record, edit, delete, list, default-rate changes
2. Fixed charities: create, edit, toggle, delete
3. Reads: month state, group state, carry-forward, history
4. Settlement: solo and group payments

DESIGN DECISION: The orchestrator enforces the boundaries:
- The caller has already authenticated the owner; no authorization here
- Group membership comes from an external provider; only non-emptiness
  is checked
- Every write is validated before storage is touched, and audited

All components share one storage, one audit logger and one set of owner
locks, so income edits and settlements serialise against each other.
"""

from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from maaser.audit import AuditLogger, configure_logging
from maaser.config import LedgerSettings, get_settings
from maaser.ledger import (
    CarryForwardCalculator,
    FixedCharityRegistry,
    GroupAggregator,
    IncomeLedger,
    OwnerLocks,
    PaymentSnapshotEngine,
)
from maaser.models.ledger import (
    CarryForwardSummary,
    FixedCharityCommitment,
    GroupAggregate,
    IncomeRecord,
    MonthHistory,
    PaymentSnapshot,
    PeriodAggregate,
)
from maaser.models.money import format_amount
from maaser.queries import HistoryReader
from maaser.services.membership import MembershipProvider
from maaser.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
)
from maaser.validation import LedgerInputValidator


class MaaserLedger:
    """
    Facade over the ledger engine.

    Construct directly for tests, or through create_app_components().
    """

    def __init__(
        self,
        storage: Optional[LedgerStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        validator: Optional[LedgerInputValidator] = None,
    ):
        self._storage = storage or InMemoryLedgerStorage()
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger
        self._validator = validator or LedgerInputValidator(self._settings)
        locks = OwnerLocks()

        self.income = IncomeLedger(
            self._storage,
            audit_logger=audit_logger,
            validator=self._validator,
            settings=self._settings,
            locks=locks,
        )
        self.charities = FixedCharityRegistry(
            self._storage,
            audit_logger=audit_logger,
            validator=self._validator,
        )
        self.settlements = PaymentSnapshotEngine(
            self._storage,
            audit_logger=audit_logger,
            validator=self._validator,
            locks=locks,
        )
        self.groups = GroupAggregator(self._storage)
        self.carry_forward = CarryForwardCalculator(self._storage)
        self.history = HistoryReader(self._storage, self.carry_forward)

    # -------------------------------------------------------------------------
    # Income
    # -------------------------------------------------------------------------

    async def record_income(
        self,
        owner_id: str,
        gross_amount: int,
        period: Optional[str] = None,
        obligation_rate: Optional[int] = None,
        label: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> IncomeRecord:
        return await self.income.record_income(
            owner_id,
            period,
            gross_amount,
            obligation_rate=obligation_rate,
            label=label,
            correlation_id=correlation_id,
        )

    async def update_income(
        self,
        owner_id: str,
        income_id: UUID,
        gross_amount: Optional[int] = None,
        obligation_rate: Optional[int] = None,
        label: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> IncomeRecord:
        return await self.income.update_income(
            owner_id,
            income_id,
            gross_amount=gross_amount,
            obligation_rate=obligation_rate,
            label=label,
            correlation_id=correlation_id,
        )

    async def delete_income(
        self,
        owner_id: str,
        income_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.income.delete_income(owner_id, income_id, correlation_id=correlation_id)

    async def list_income(
        self,
        owner_id: str,
        period: Optional[str] = None,
    ) -> list[IncomeRecord]:
        return await self.income.list_income(owner_id, period)

    async def on_default_rate_changed(
        self,
        owner_id: str,
        rate: int,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[IncomeRecord]:
        """
        Hook for the settings collaborator.

        Call after the owner's default rate has been saved. Applies the new
        rate to the owner's unfrozen records of the current month.
        """
        return await self.income.apply_default_rate(
            owner_id,
            rate,
            today=today,
            correlation_id=correlation_id,
        )

    # -------------------------------------------------------------------------
    # Fixed charities
    # -------------------------------------------------------------------------

    async def add_charity(
        self,
        owner_id: str,
        name: str,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> FixedCharityCommitment:
        return await self.charities.create(owner_id, name, amount, correlation_id=correlation_id)

    async def list_charities(
        self,
        owner_id: str,
        active_only: bool = False,
    ) -> list[FixedCharityCommitment]:
        return await self.charities.list_commitments(owner_id, active_only)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def period_state(self, owner_id: str, period: str) -> PeriodAggregate:
        return await self.history.period_state(owner_id, period)

    async def group_state(
        self,
        period: str,
        participant_ids: list[str],
    ) -> GroupAggregate:
        return await self.groups.aggregate(period, participant_ids)

    async def group_state_for(
        self,
        owner_id: str,
        period: str,
        membership: MembershipProvider,
    ) -> GroupAggregate:
        """Group state with participants decided by a membership provider."""
        participants = await membership.participants_for(owner_id)
        return await self.groups.aggregate(period, participants)

    async def accumulated_unpaid(
        self,
        participant_ids: list[str],
        upto_period: str,
    ) -> int:
        return await self.carry_forward.total_accumulated_unpaid(participant_ids, upto_period)

    async def carry_forward_summary(
        self,
        owner_id: str,
        upto_period: str,
    ) -> CarryForwardSummary:
        return await self.carry_forward.summary(owner_id, upto_period)

    async def month_history(
        self,
        owner_id: str,
        limit: Optional[int] = None,
    ) -> list[MonthHistory]:
        return await self.history.month_history(owner_id, limit)

    def format_amount(self, amount: int) -> str:
        """Display helper using the configured currency."""
        return format_amount(
            amount,
            self._settings.currency_symbol,
            self._settings.minor_units_per_major,
        )

    # -------------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------------

    async def settle(
        self,
        period: str,
        participant_ids: list[str],
        amount: int,
        initiated_by: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> PaymentSnapshot:
        return await self.settlements.settle(
            period,
            participant_ids,
            amount,
            initiated_by=initiated_by,
            correlation_id=correlation_id,
        )

    async def settle_group(
        self,
        owner_id: str,
        period: str,
        amount: int,
        membership: MembershipProvider,
        correlation_id: Optional[UUID] = None,
    ) -> PaymentSnapshot:
        """Settle for the owner and whoever the membership provider adds."""
        participants = await membership.participants_for(owner_id)
        return await self.settlements.settle(
            period,
            participants,
            amount,
            initiated_by=owner_id,
            correlation_id=correlation_id,
        )


def create_app_components(
    use_storage: bool = True,
) -> tuple[MaaserLedger, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False for in-memory storage.

    Returns:
        (ledger, sheets_client)
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    sheets_client = None
    storage: LedgerStorageInterface

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            structlog.get_logger(__name__).warning(
                "storage_not_configured",
                error=str(e),
                fallback="in_memory",
            )
            sheets_client = None
            storage = InMemoryLedgerStorage()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger()  # Local-only logging

    ledger = MaaserLedger(
        storage=storage,
        audit_logger=audit_logger,
        settings=settings.ledger,
    )
    return ledger, sheets_client
