"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged, and so is every rejected
attempt (locked entries, overpayments, invalid input).
This provides:
1. Complete traceability of how a month's numbers came about
2. Debugging capability
3. Users can see the history of their payments

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (a failed audit write never fails a payment)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from maaser.models.audit import AuditEvent, AuditEventBuilder, AuditEventType, AuditSeverity
from maaser.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at log_level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level.upper()))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when configured (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("maaser.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_income_recorded(
        self,
        income_id: UUID,
        owner_id: str,
        period: str,
        gross_amount: int,
        obligation_amount: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.income_recorded(
            income_id=income_id,
            owner_id=owner_id,
            period=period,
            gross_amount=gross_amount,
            obligation_amount=obligation_amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_income_updated(
        self,
        income_id: UUID,
        owner_id: str,
        changes: dict[str, Any],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.income_updated(
            income_id=income_id,
            owner_id=owner_id,
            changes=changes,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_income_deleted(
        self,
        income_id: UUID,
        owner_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.income_deleted(
            income_id=income_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_income_change_rejected(
        self,
        income_id: UUID,
        owner_id: str,
        action: str,
        correlation_id: UUID,
    ) -> None:
        """Log an edit or delete refused because the entry is frozen."""
        event = AuditEventBuilder.income_change_rejected(
            income_id=income_id,
            owner_id=owner_id,
            action=action,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_default_rate_applied(
        self,
        owner_id: str,
        period: str,
        rate: int,
        updated_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.default_rate_applied(
            owner_id=owner_id,
            period=period,
            rate=rate,
            updated_count=updated_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_charity_changed(
        self,
        event_type: AuditEventType,
        commitment_id: UUID,
        owner_id: str,
        name: str,
        amount: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.charity_changed(
            event_type=event_type,
            commitment_id=commitment_id,
            owner_id=owner_id,
            name=name,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_settlement_recorded(
        self,
        snapshot_id: UUID,
        period: str,
        participant_ids: list[str],
        amount_settled: int,
        frozen_count: int,
        fixed_deduction: int,
        initiated_by: Optional[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.settlement_recorded(
            snapshot_id=snapshot_id,
            period=period,
            participant_ids=participant_ids,
            amount_settled=amount_settled,
            frozen_count=frozen_count,
            fixed_deduction=fixed_deduction,
            initiated_by=initiated_by,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_settlement_rejected(
        self,
        period: str,
        participant_ids: list[str],
        requested: int,
        ceiling: int,
        initiated_by: Optional[str],
        correlation_id: UUID,
    ) -> None:
        """Log a payment refused for exceeding accumulated debt."""
        event = AuditEventBuilder.settlement_rejected(
            period=period,
            participant_ids=participant_ids,
            requested=requested,
            ceiling=ceiling,
            initiated_by=initiated_by,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        subject: str,
        issues: list[dict],
        owner_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.validation_failed(
            subject=subject,
            issues=issues,
            owner_id=owner_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., pressing "pay").
    Pass it through all subsequent operations.
    """
    return uuid4()
