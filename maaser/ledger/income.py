"""
Income Ledger

Records income events per owner per month. Each record carries its own
obligation rate; the obligation amount is always derived from it.

LIFECYCLE:
- created unfrozen by the owner
- amount, rate and label may change while unfrozen
- frozen by the settlement engine when a payment touches its month
- once frozen, updates and deletes are rejected with FrozenRecordError

DEFAULT RATE HOOK: when an owner changes their default rate, the new rate is
pushed to their unfrozen records of the CURRENT month only. Frozen records
and earlier months keep the rate they were recorded with.
"""

from datetime import date
from typing import Any, Optional
from uuid import UUID

import pydantic

from maaser.audit import AuditLogger, create_correlation_id
from maaser.config import LedgerSettings, get_settings
from maaser.ledger.errors import FrozenRecordError, NotFoundError, ValidationError
from maaser.ledger.locks import OwnerLocks
from maaser.models.ledger import IncomeRecord, utc_now
from maaser.models.period import current_period
from maaser.models.validation import ValidationResult
from maaser.services.storage import LedgerStorageInterface
from maaser.validation import LedgerInputValidator


class IncomeLedger:
    """Income records of every owner, backed by ledger storage."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerInputValidator] = None,
        settings: Optional[LedgerSettings] = None,
        locks: Optional[OwnerLocks] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger
        self._validator = validator or LedgerInputValidator(self._settings)
        self._locks = locks or OwnerLocks()

    async def _reject_invalid(
        self,
        result: ValidationResult,
        owner_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        if not result.has_errors:
            return
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(
                subject=result.subject,
                issues=[issue.model_dump() for issue in result.errors],
                owner_id=owner_id if isinstance(owner_id, str) else None,
                correlation_id=correlation_id,
            )
        ValidationError.raise_for(result)

    async def _get_owned(self, owner_id: str, income_id: UUID) -> IncomeRecord:
        record = await self._storage.get_income(income_id)
        if record is None or record.owner_id != owner_id:
            raise NotFoundError("income", income_id, owner_id)
        return record

    async def record_income(
        self,
        owner_id: str,
        period: Optional[str],
        gross_amount: int,
        obligation_rate: Optional[int] = None,
        label: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> IncomeRecord:
        """
        Record a new, unfrozen income event.

        Args:
            owner_id: Verified owner id
            period: YYYY-MM; None means the current month
            gross_amount: Gross income in minor units, > 0
            obligation_rate: Percent 1-100; None means the configured default
            label: Optional free-text description

        Raises:
            ValidationError: On any invalid input
        """
        correlation_id = correlation_id or create_correlation_id()
        if period is None:
            period = current_period()
        if obligation_rate is None:
            obligation_rate = self._settings.default_obligation_rate

        result = self._validator.validate_income(
            owner_id, period, gross_amount, obligation_rate, label
        )
        await self._reject_invalid(result, owner_id, correlation_id)

        try:
            record = IncomeRecord(
                owner_id=owner_id,
                period=period,
                gross_amount=gross_amount,
                obligation_rate=obligation_rate,
                label=label or None,
            )
        except pydantic.ValidationError as e:
            raise ValidationError.from_pydantic(e, subject="income")

        await self._storage.save_income(record)

        if self._audit_logger:
            await self._audit_logger.log_income_recorded(
                income_id=record.id,
                owner_id=owner_id,
                period=period,
                gross_amount=gross_amount,
                obligation_amount=record.obligation_amount,
                correlation_id=correlation_id,
            )
        return record

    async def update_income(
        self,
        owner_id: str,
        income_id: UUID,
        gross_amount: Optional[int] = None,
        obligation_rate: Optional[int] = None,
        label: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> IncomeRecord:
        """
        Change an unfrozen record. Fields left as None are unchanged;
        an empty label clears it.

        Raises:
            NotFoundError: No such record for this owner
            FrozenRecordError: The record is part of a payment
            ValidationError: On any invalid field
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._locks.hold([owner_id]):
            record = await self._get_owned(owner_id, income_id)
            if record.is_frozen:
                if self._audit_logger:
                    await self._audit_logger.log_income_change_rejected(
                        income_id=income_id,
                        owner_id=owner_id,
                        action="update",
                        correlation_id=correlation_id,
                    )
                raise FrozenRecordError(income_id, "update")

            result = self._validator.validate_income_patch(
                gross_amount=gross_amount,
                obligation_rate=obligation_rate,
                label=label,
            )
            await self._reject_invalid(result, owner_id, correlation_id)

            changes: dict[str, Any] = {}
            if gross_amount is not None:
                changes["gross_amount"] = gross_amount
            if obligation_rate is not None:
                changes["obligation_rate"] = obligation_rate
            if label is not None:
                changes["label"] = label or None

            try:
                updated = IncomeRecord.model_validate({
                    **record.model_dump(exclude={"obligation_amount"}),
                    **changes,
                    "updated_at": utc_now(),
                })
            except pydantic.ValidationError as e:
                raise ValidationError.from_pydantic(e, subject="income update")

            await self._storage.update_income(updated)

        if self._audit_logger:
            await self._audit_logger.log_income_updated(
                income_id=income_id,
                owner_id=owner_id,
                changes={
                    **changes,
                    "obligation_amount": updated.obligation_amount,
                },
                correlation_id=correlation_id,
            )
        return updated

    async def delete_income(
        self,
        owner_id: str,
        income_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete an unfrozen record.

        Raises:
            NotFoundError: No such record for this owner
            FrozenRecordError: The record is part of a payment
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._locks.hold([owner_id]):
            record = await self._get_owned(owner_id, income_id)
            if record.is_frozen:
                if self._audit_logger:
                    await self._audit_logger.log_income_change_rejected(
                        income_id=income_id,
                        owner_id=owner_id,
                        action="delete",
                        correlation_id=correlation_id,
                    )
                raise FrozenRecordError(income_id, "delete")

            await self._storage.delete_income(income_id)

        if self._audit_logger:
            await self._audit_logger.log_income_deleted(
                income_id=income_id,
                owner_id=owner_id,
                correlation_id=correlation_id,
            )

    async def get_income(self, owner_id: str, income_id: UUID) -> IncomeRecord:
        return await self._get_owned(owner_id, income_id)

    async def list_income(
        self,
        owner_id: str,
        period: Optional[str] = None,
    ) -> list[IncomeRecord]:
        """The owner's records, optionally for one period, oldest first."""
        records = await self._storage.list_income(owner_id, period=period)
        return sorted(records, key=lambda r: (r.period, r.created_at))

    async def freeze_all(self, owner_id: str, period: str) -> int:
        """
        Freeze every unfrozen record of owner/period. Idempotent.

        Settlements freeze through the storage's atomic commit; this is
        for callers that need to lock a month outside a payment.
        """
        async with self._locks.hold([owner_id]):
            return await self._storage.freeze_income(owner_id, period)

    async def apply_default_rate(
        self,
        owner_id: str,
        rate: int,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[IncomeRecord]:
        """
        Push a new default rate to the owner's unfrozen current-month records.

        Returns:
            The records that changed
        """
        correlation_id = correlation_id or create_correlation_id()

        result = self._validator.validate_rate(rate)
        await self._reject_invalid(result, owner_id, correlation_id)

        period = current_period(today)
        updated = []
        async with self._locks.hold([owner_id]):
            open_records = await self._storage.list_income(
                owner_id, period=period, frozen=False
            )
            for record in open_records:
                if record.obligation_rate == rate:
                    continue
                changed = record.model_copy(
                    update={"obligation_rate": rate, "updated_at": utc_now()}
                )
                await self._storage.update_income(changed)
                updated.append(changed)

        if self._audit_logger:
            await self._audit_logger.log_default_rate_applied(
                owner_id=owner_id,
                period=period,
                rate=rate,
                updated_count=len(updated),
                correlation_id=correlation_id,
            )
        return updated
