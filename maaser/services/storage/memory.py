"""
In-Memory Storage Implementation

Used by the test suite and for single-process use without a backend.

Records are immutable pydantic models, so handing them out directly is
safe. Every mutating method finishes without awaiting, which makes each
call atomic with respect to other coroutines on the same event loop.
"""

from typing import Optional
from uuid import UUID

from maaser.models.audit import AuditEvent
from maaser.models.ledger import (
    FixedCharityCommitment,
    IncomeRecord,
    PaymentSnapshot,
    utc_now,
)
from maaser.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    MissingRecordError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dictionary-backed ledger storage."""

    def __init__(self):
        self._income: dict[UUID, IncomeRecord] = {}
        self._charities: dict[UUID, FixedCharityCommitment] = {}
        self._snapshots: list[PaymentSnapshot] = []

    # Income ------------------------------------------------------------------

    async def save_income(self, record: IncomeRecord) -> bool:
        if record.id in self._income:
            raise DuplicateError(f"Income already exists: {record.id}")
        self._income[record.id] = record
        return True

    async def get_income(self, income_id: UUID) -> Optional[IncomeRecord]:
        return self._income.get(income_id)

    async def update_income(self, record: IncomeRecord) -> bool:
        if record.id not in self._income:
            raise MissingRecordError(f"Income not found: {record.id}")
        self._income[record.id] = record
        return True

    async def delete_income(self, income_id: UUID) -> bool:
        return self._income.pop(income_id, None) is not None

    async def list_income(
        self,
        owner_id: str,
        period: Optional[str] = None,
        frozen: Optional[bool] = None,
    ) -> list[IncomeRecord]:
        return [
            record
            for record in self._income.values()
            if record.owner_id == owner_id
            and (period is None or record.period == period)
            and (frozen is None or record.is_frozen == frozen)
        ]

    def _freeze(self, owner_ids: frozenset[str], period: str) -> int:
        now = utc_now()
        to_freeze = [
            record
            for record in self._income.values()
            if record.owner_id in owner_ids
            and record.period == period
            and not record.is_frozen
        ]
        for record in to_freeze:
            self._income[record.id] = record.model_copy(
                update={"is_frozen": True, "updated_at": now}
            )
        return len(to_freeze)

    async def freeze_income(self, owner_id: str, period: str) -> int:
        return self._freeze(frozenset([owner_id]), period)

    async def list_income_periods(self, owner_id: str) -> list[str]:
        return sorted({
            record.period
            for record in self._income.values()
            if record.owner_id == owner_id
        })

    # Fixed charities ---------------------------------------------------------

    async def save_charity(self, commitment: FixedCharityCommitment) -> bool:
        if commitment.id in self._charities:
            raise DuplicateError(f"Charity already exists: {commitment.id}")
        self._charities[commitment.id] = commitment
        return True

    async def get_charity(self, commitment_id: UUID) -> Optional[FixedCharityCommitment]:
        return self._charities.get(commitment_id)

    async def update_charity(self, commitment: FixedCharityCommitment) -> bool:
        if commitment.id not in self._charities:
            raise MissingRecordError(f"Charity not found: {commitment.id}")
        self._charities[commitment.id] = commitment
        return True

    async def delete_charity(self, commitment_id: UUID) -> bool:
        return self._charities.pop(commitment_id, None) is not None

    async def list_charities(
        self,
        owner_id: str,
        active_only: bool = False,
    ) -> list[FixedCharityCommitment]:
        return [
            commitment
            for commitment in self._charities.values()
            if commitment.owner_id == owner_id
            and (commitment.active or not active_only)
        ]

    # Snapshots ---------------------------------------------------------------

    async def get_snapshot(self, snapshot_id: UUID) -> Optional[PaymentSnapshot]:
        for snapshot in self._snapshots:
            if snapshot.id == snapshot_id:
                return snapshot
        return None

    async def list_snapshots(
        self,
        period: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> list[PaymentSnapshot]:
        matching = [
            snapshot
            for snapshot in self._snapshots
            if (period is None or snapshot.period == period)
            and (owner_id is None or snapshot.includes(owner_id))
        ]
        # sort() is stable: equal timestamps keep commit order
        matching.sort(key=lambda s: s.settled_at)
        return matching

    async def list_snapshot_periods(self, owner_id: str) -> list[str]:
        return sorted({
            snapshot.period
            for snapshot in self._snapshots
            if snapshot.includes(owner_id)
        })

    async def commit_settlement(self, snapshot: PaymentSnapshot) -> int:
        if any(existing.id == snapshot.id for existing in self._snapshots):
            raise DuplicateError(f"Snapshot already exists: {snapshot.id}")
        self._snapshots.append(snapshot)
        return self._freeze(snapshot.participant_ids, snapshot.period)


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit storage."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
