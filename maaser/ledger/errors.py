"""
Ledger error taxonomy.

Every business-rule violation is raised as one of these before anything is
written. Storage failures are NOT wrapped: PersistenceError and friends
propagate from maaser.services.storage unchanged.
"""

from typing import Optional
from uuid import UUID

import pydantic

from maaser.models.validation import ValidationIssue, ValidationResult


class LedgerError(Exception):
    """Base exception for ledger rule violations."""
    pass


class ValidationError(LedgerError):
    """
    Malformed input: non-positive amount, out-of-range rate, bad period...

    Carries every error-level issue so the caller can fix them in one go.
    """

    def __init__(self, issues: list[ValidationIssue], subject: str = "input"):
        self.issues = issues
        self.subject = subject
        messages = "; ".join(f"{issue.field}: {issue.message}" for issue in issues)
        super().__init__(f"Invalid {subject}: {messages}")

    @property
    def fields(self) -> list[str]:
        return [issue.field for issue in self.issues]

    @classmethod
    def raise_for(cls, result: ValidationResult) -> None:
        """Raise if the result has any error-level issue."""
        if result.has_errors:
            raise cls(result.errors, subject=result.subject)

    @classmethod
    def from_pydantic(
        cls,
        exc: pydantic.ValidationError,
        subject: str = "input",
    ) -> "ValidationError":
        """Translate a model construction failure into the ledger's error."""
        issues = [
            ValidationIssue(
                field=".".join(str(part) for part in error["loc"]) or subject,
                issue_type=error["type"],
                message=error["msg"],
                severity="error",
            )
            for error in exc.errors()
        ]
        return cls(issues, subject=subject)


class FrozenRecordError(LedgerError):
    """Mutation or deletion of an income record that is part of a payment."""

    user_message = "this entry is locked because it was already part of a payment"

    def __init__(self, record_id: UUID, action: str = "update"):
        self.record_id = record_id
        self.action = action
        super().__init__(f"Cannot {action} income {record_id}: {self.user_message}")


class OverpaymentExceedsDebtError(LedgerError):
    """Settlement amount larger than everything the participants still owe."""

    def __init__(self, requested: int, ceiling: int):
        self.requested = requested
        self.ceiling = ceiling
        super().__init__(
            f"Payment of {requested} exceeds total accumulated unpaid {ceiling}"
        )


class NotFoundError(LedgerError):
    """Referenced record does not exist for the given owner."""

    def __init__(self, entity_type: str, entity_id: UUID, owner_id: Optional[str] = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.owner_id = owner_id
        super().__init__(f"{entity_type.capitalize()} not found: {entity_id}")
