"""
Audit Models for the Maaser Ledger

Every change to the ledger is logged for audit purposes.
This provides:
1. Complete traceability of income edits and payments
2. Debugging information when numbers look wrong
3. A record of rejected attempts (locked entries, overpayments)
4. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from maaser.models.ledger import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every ledger mutation has its own event type.
    """
    # Income ledger
    INCOME_RECORDED = "income_recorded"
    INCOME_UPDATED = "income_updated"
    INCOME_DELETED = "income_deleted"
    INCOME_CHANGE_REJECTED = "income_change_rejected"
    DEFAULT_RATE_APPLIED = "default_rate_applied"

    # Fixed charity registry
    CHARITY_CREATED = "charity_created"
    CHARITY_UPDATED = "charity_updated"
    CHARITY_ACTIVATED = "charity_activated"
    CHARITY_DEACTIVATED = "charity_deactivated"
    CHARITY_DELETED = "charity_deleted"

    # Settlement
    SETTLEMENT_RECORDED = "settlement_recorded"
    SETTLEMENT_REJECTED = "settlement_rejected"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'income', 'charity', 'snapshot')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    owner_id: Optional[str] = Field(
        default=None,
        description="Owner whose ledger this event touched"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., everything in one settlement)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "owner_id": self.owner_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         owner_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            self.owner_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.income_recorded(income_id, owner_id, ...)
        event = AuditEventBuilder.settlement_recorded(snapshot_id, ...)
    """

    @staticmethod
    def income_recorded(
        income_id: UUID,
        owner_id: str,
        period: str,
        gross_amount: int,
        obligation_amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_RECORDED,
            entity_type="income",
            entity_id=income_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Income recorded for {period}",
            details={
                "period": period,
                "gross_amount": gross_amount,
                "obligation_amount": obligation_amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def income_updated(
        income_id: UUID,
        owner_id: str,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_UPDATED,
            entity_type="income",
            entity_id=income_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description="Income updated",
            details={"changes": changes},
            is_user_action=True,
        )

    @staticmethod
    def income_deleted(
        income_id: UUID,
        owner_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_DELETED,
            entity_type="income",
            entity_id=income_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description="Income deleted",
            is_user_action=True,
        )

    @staticmethod
    def income_change_rejected(
        income_id: UUID,
        owner_id: str,
        action: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_CHANGE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="income",
            entity_id=income_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Income {action} rejected: entry is locked by a payment",
            error_code="frozen_record",
            details={"action": action},
            is_user_action=True,
        )

    @staticmethod
    def default_rate_applied(
        owner_id: str,
        period: str,
        rate: int,
        updated_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFAULT_RATE_APPLIED,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Default rate {rate}% applied to {updated_count} open entries in {period}",
            details={
                "period": period,
                "rate": rate,
                "updated_count": updated_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def charity_changed(
        event_type: AuditEventType,
        commitment_id: UUID,
        owner_id: str,
        name: str,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="charity",
            entity_id=commitment_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Fixed charity {event_type.value.removeprefix('charity_')}: {name}",
            details={
                "name": name,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def settlement_recorded(
        snapshot_id: UUID,
        period: str,
        participant_ids: list[str],
        amount_settled: int,
        frozen_count: int,
        fixed_deduction: int = 0,
        initiated_by: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_RECORDED,
            entity_type="snapshot",
            entity_id=snapshot_id,
            owner_id=initiated_by,
            correlation_id=correlation_id,
            description=(
                f"Payment of {amount_settled} recorded for {period} "
                f"({len(participant_ids)} participant(s))"
            ),
            details={
                "period": period,
                "participant_ids": participant_ids,
                "amount_settled": amount_settled,
                "frozen_income_count": frozen_count,
                "fixed_deduction": fixed_deduction,
            },
            is_user_action=True,
        )

    @staticmethod
    def settlement_rejected(
        period: str,
        participant_ids: list[str],
        requested: int,
        ceiling: int,
        initiated_by: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="snapshot",
            owner_id=initiated_by,
            correlation_id=correlation_id,
            description=f"Payment of {requested} rejected: exceeds total unpaid {ceiling}",
            error_code="overpayment",
            details={
                "period": period,
                "participant_ids": participant_ids,
                "requested": requested,
                "ceiling": ceiling,
            },
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        subject: str,
        issues: list[dict],
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"{subject.capitalize()} validation failed with {len(issues)} issues",
            details={
                "subject": subject,
                "issues": issues,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
