"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep ledger rules decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger engine needs.

ATOMICITY: commit_settlement() is the one write that touches two kinds of
record (a new snapshot and the frozen flag of income records). Every
implementation must apply it completely or not at all.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from maaser.models.audit import AuditEvent
from maaser.models.ledger import (
    FixedCharityCommitment,
    IncomeRecord,
    PaymentSnapshot,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Income records
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_income(self, record: IncomeRecord) -> bool:
        """
        Save a new income record.

        Raises:
            DuplicateError: If a record with this ID already exists
            PersistenceError: If save fails
        """
        pass

    @abstractmethod
    async def get_income(self, income_id: UUID) -> Optional[IncomeRecord]:
        """Retrieve an income record by ID, or None."""
        pass

    @abstractmethod
    async def update_income(self, record: IncomeRecord) -> bool:
        """
        Replace an existing income record.

        Raises:
            MissingRecordError: If the record doesn't exist
            PersistenceError: If update fails
        """
        pass

    @abstractmethod
    async def delete_income(self, income_id: UUID) -> bool:
        """Delete an income record. Returns False if it didn't exist."""
        pass

    @abstractmethod
    async def list_income(
        self,
        owner_id: str,
        period: Optional[str] = None,
        frozen: Optional[bool] = None,
    ) -> list[IncomeRecord]:
        """
        List an owner's income records.

        Args:
            owner_id: Whose records
            period: Restrict to one period
            frozen: Restrict to frozen (True) or unfrozen (False) records

        Returns:
            Matching records, oldest first
        """
        pass

    @abstractmethod
    async def freeze_income(self, owner_id: str, period: str) -> int:
        """
        Mark every unfrozen record of owner/period as frozen.

        Idempotent. Returns the number of records newly frozen.
        """
        pass

    @abstractmethod
    async def list_income_periods(self, owner_id: str) -> list[str]:
        """Distinct periods the owner has income in, ascending."""
        pass

    # -------------------------------------------------------------------------
    # Fixed charity commitments
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_charity(self, commitment: FixedCharityCommitment) -> bool:
        """
        Save a new commitment.

        Raises:
            DuplicateError: If a commitment with this ID already exists
        """
        pass

    @abstractmethod
    async def get_charity(self, commitment_id: UUID) -> Optional[FixedCharityCommitment]:
        """Retrieve a commitment by ID, or None."""
        pass

    @abstractmethod
    async def update_charity(self, commitment: FixedCharityCommitment) -> bool:
        """
        Replace an existing commitment.

        Raises:
            MissingRecordError: If the commitment doesn't exist
        """
        pass

    @abstractmethod
    async def delete_charity(self, commitment_id: UUID) -> bool:
        """Delete a commitment. Returns False if it didn't exist."""
        pass

    @abstractmethod
    async def list_charities(
        self,
        owner_id: str,
        active_only: bool = False,
    ) -> list[FixedCharityCommitment]:
        """List an owner's commitments, oldest first."""
        pass

    # -------------------------------------------------------------------------
    # Payment snapshots (append-only)
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_snapshot(self, snapshot_id: UUID) -> Optional[PaymentSnapshot]:
        """Retrieve a snapshot by ID, or None."""
        pass

    @abstractmethod
    async def list_snapshots(
        self,
        period: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> list[PaymentSnapshot]:
        """
        List snapshots.

        Args:
            period: Restrict to one period
            owner_id: Restrict to snapshots this owner participated in

        Returns:
            Snapshots ordered by settled_at ascending; ties keep the order
            in which they were committed
        """
        pass

    @abstractmethod
    async def list_snapshot_periods(self, owner_id: str) -> list[str]:
        """Distinct periods the owner has snapshots in, ascending."""
        pass

    @abstractmethod
    async def commit_settlement(self, snapshot: PaymentSnapshot) -> int:
        """
        Persist a snapshot and freeze its participants' income, atomically.

        Every unfrozen income record of every participant for the
        snapshot's period is frozen in the same unit of work.

        Returns:
            Number of income records newly frozen

        Raises:
            DuplicateError: If the snapshot ID already exists
            PersistenceError: If the unit could not be applied (nothing was)
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """All events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent audit events (newest first)."""
        pass


class PersistenceError(Exception):
    """Base exception for storage operations."""
    pass


class MissingRecordError(PersistenceError):
    """Entity to update not found in storage."""
    pass


class DuplicateError(PersistenceError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(PersistenceError):
    """Could not connect to storage backend."""
    pass
