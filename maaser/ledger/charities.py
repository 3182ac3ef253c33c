"""
Fixed Charity Registry

Recurring commitments an owner gives every month (a synagogue membership,
a monthly pledge). The active total is deducted once per month, at the
owner's first payment of that month.

The registry keeps no history. Renaming, re-amounting or toggling a
commitment affects only months that have not been paid yet; paid months
carry their own copy inside the payment snapshot.
"""

from typing import Optional
from uuid import UUID

import pydantic

from maaser.audit import AuditLogger, create_correlation_id
from maaser.ledger.errors import NotFoundError, ValidationError
from maaser.models.audit import AuditEventType
from maaser.models.ledger import FixedCharityCommitment, utc_now
from maaser.models.validation import ValidationResult
from maaser.services.storage import LedgerStorageInterface
from maaser.validation import LedgerInputValidator


class FixedCharityRegistry:
    """Per-owner fixed charity commitments."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerInputValidator] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._validator = validator or LedgerInputValidator()

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

    async def _audit(
        self,
        event_type: AuditEventType,
        commitment: FixedCharityCommitment,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_charity_changed(
                event_type=event_type,
                commitment_id=commitment.id,
                owner_id=commitment.owner_id,
                name=commitment.name,
                amount=commitment.amount,
                correlation_id=correlation_id,
            )

    async def get(self, owner_id: str, commitment_id: UUID) -> FixedCharityCommitment:
        """
        Raises:
            NotFoundError: No such commitment for this owner
        """
        commitment = await self._storage.get_charity(commitment_id)
        if commitment is None or commitment.owner_id != owner_id:
            raise NotFoundError("charity", commitment_id, owner_id)
        return commitment

    async def create(
        self,
        owner_id: str,
        name: str,
        amount: int,
        active: bool = True,
        correlation_id: Optional[UUID] = None,
    ) -> FixedCharityCommitment:
        correlation_id = correlation_id or create_correlation_id()

        result = self._validator.validate_charity(owner_id, name, amount)
        await self._reject_invalid(result, owner_id, correlation_id)

        try:
            commitment = FixedCharityCommitment(
                owner_id=owner_id,
                name=name,
                amount=amount,
                active=active,
            )
        except pydantic.ValidationError as e:
            raise ValidationError.from_pydantic(e, subject="charity")

        await self._storage.save_charity(commitment)
        await self._audit(AuditEventType.CHARITY_CREATED, commitment, correlation_id)
        return commitment

    async def update(
        self,
        owner_id: str,
        commitment_id: UUID,
        name: Optional[str] = None,
        amount: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> FixedCharityCommitment:
        """Rename and/or re-amount. Only unpaid months see the change."""
        correlation_id = correlation_id or create_correlation_id()

        commitment = await self.get(owner_id, commitment_id)
        result = self._validator.validate_charity_patch(name=name, amount=amount)
        await self._reject_invalid(result, owner_id, correlation_id)

        changes = {"updated_at": utc_now()}
        if name is not None:
            changes["name"] = name
        if amount is not None:
            changes["amount"] = amount

        try:
            updated = FixedCharityCommitment.model_validate({
                **commitment.model_dump(),
                **changes,
            })
        except pydantic.ValidationError as e:
            raise ValidationError.from_pydantic(e, subject="charity update")

        await self._storage.update_charity(updated)
        await self._audit(AuditEventType.CHARITY_UPDATED, updated, correlation_id)
        return updated

    async def set_active(
        self,
        owner_id: str,
        commitment_id: UUID,
        active: bool,
        correlation_id: Optional[UUID] = None,
    ) -> FixedCharityCommitment:
        correlation_id = correlation_id or create_correlation_id()

        commitment = await self.get(owner_id, commitment_id)
        if commitment.active == active:
            return commitment

        updated = commitment.model_copy(update={"active": active, "updated_at": utc_now()})
        await self._storage.update_charity(updated)
        await self._audit(
            AuditEventType.CHARITY_ACTIVATED if active else AuditEventType.CHARITY_DEACTIVATED,
            updated,
            correlation_id,
        )
        return updated

    async def activate(
        self,
        owner_id: str,
        commitment_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> FixedCharityCommitment:
        return await self.set_active(owner_id, commitment_id, True, correlation_id)

    async def deactivate(
        self,
        owner_id: str,
        commitment_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> FixedCharityCommitment:
        return await self.set_active(owner_id, commitment_id, False, correlation_id)

    async def delete(
        self,
        owner_id: str,
        commitment_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Remove a commitment. Paid months keep their snapshot copy."""
        correlation_id = correlation_id or create_correlation_id()

        commitment = await self.get(owner_id, commitment_id)
        await self._storage.delete_charity(commitment_id)
        await self._audit(AuditEventType.CHARITY_DELETED, commitment, correlation_id)

    async def list_commitments(
        self,
        owner_id: str,
        active_only: bool = False,
    ) -> list[FixedCharityCommitment]:
        commitments = await self._storage.list_charities(owner_id, active_only=active_only)
        return sorted(commitments, key=lambda c: c.created_at)

    async def active_total(self, owner_id: str) -> int:
        """What the owner's next first-payment of a month would deduct."""
        return sum(c.amount for c in await self.list_commitments(owner_id, active_only=True))
