"""
Two-Stage Input Validation

DESIGN DECISION: Every ledger write is validated in two distinct stages
before anything touches storage:

STAGE 1 - SCHEMA VALIDATION:
- Type checking (integers are integers, not floats, bools or strings)
- Required field presence
- Ranges (amount > 0, rate 1-100) and period format
- Errors here block the write

STAGE 2 - SEMANTIC VALIDATION:
- Unusually high obligation rate
- Unusually large income
- Income recorded far in the future
- Warnings only: they are reported, never block

IMPORTANT: Validation NEVER silently fixes issues. A negative amount is
rejected, not clamped; a float is rejected, not rounded.
"""

from collections.abc import Iterable
from datetime import date
from typing import Any, Optional

from maaser.config import LedgerSettings, get_settings
from maaser.models.money import format_amount
from maaser.models.period import current_period, months_between, validate_period
from maaser.models.validation import ValidationIssue, ValidationResult


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class LedgerInputValidator:
    """
    Validates caller input for income, charities, rates and settlements.

    Each validate_* method returns a ValidationResult. The ledger services
    turn one with errors into a ValidationError.
    """

    def __init__(
        self,
        settings: Optional[LedgerSettings] = None,
        today: Optional[date] = None,
    ):
        """
        Args:
            settings: Ledger settings; loaded from the environment if None
            today: Fixed "today" for the future-period check (tests)
        """
        self._settings = settings or get_settings().ledger
        self._today = today

    # -------------------------------------------------------------------------
    # Field checks (stage 1 building blocks)
    # -------------------------------------------------------------------------

    def _check_owner(self, field: str, value: Any, issues: list[ValidationIssue]) -> None:
        if not isinstance(value, str) or not value.strip():
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message="Owner id is required",
                severity="error",
            ))

    def _check_period(self, value: Any, issues: list[ValidationIssue]) -> None:
        try:
            validate_period(value)
        except ValueError:
            issues.append(ValidationIssue(
                field="period",
                issue_type="invalid_format",
                message=f"Period must look like YYYY-MM, got {value!r}",
                severity="error",
                suggested_fix="Use a zero-padded year and month, e.g. 2024-03",
            ))

    def _check_positive_amount(
        self,
        field: str,
        value: Any,
        issues: list[ValidationIssue],
    ) -> None:
        if value is None:
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ))
        elif not _is_int(value):
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_type",
                message=f"Amount must be an integer in minor units, got {type(value).__name__}",
                severity="error",
                suggested_fix="Convert the amount with parse_amount() first",
            ))
        elif value <= 0:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))

    def _check_rate(self, field: str, value: Any, issues: list[ValidationIssue]) -> None:
        if not _is_int(value):
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_type",
                message=f"Rate must be a whole percentage, got {type(value).__name__}",
                severity="error",
            ))
        elif not 1 <= value <= 100:
            issues.append(ValidationIssue(
                field=field,
                issue_type="out_of_range",
                message=f"Rate must be between 1 and 100, got {value}",
                severity="error",
            ))

    def _check_text(
        self,
        field: str,
        value: Any,
        issues: list[ValidationIssue],
        required: bool,
    ) -> None:
        if value is None:
            if required:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"{field.capitalize()} is required",
                    severity="error",
                ))
            return
        if not isinstance(value, str):
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_type",
                message=f"{field.capitalize()} must be text",
                severity="error",
            ))
            return
        if required and not value.strip():
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{field.capitalize()} is required",
                severity="error",
            ))
        elif len(value.strip()) > self._settings.max_label_length:
            issues.append(ValidationIssue(
                field=field,
                issue_type="too_long",
                message=f"{field.capitalize()} is longer than {self._settings.max_label_length} characters",
                severity="error",
            ))

    # -------------------------------------------------------------------------
    # Semantic checks (stage 2)
    # -------------------------------------------------------------------------

    def _check_plausibility(
        self,
        issues: list[ValidationIssue],
        gross_amount: Optional[int] = None,
        obligation_rate: Optional[int] = None,
        period: Optional[str] = None,
    ) -> None:
        if obligation_rate is not None and obligation_rate > self._settings.unusual_rate_threshold:
            issues.append(ValidationIssue(
                field="obligation_rate",
                issue_type="suspicious_value",
                message=f"Rate of {obligation_rate}% is unusually high",
                severity="warning",
                suggested_fix="Please verify the percentage is correct",
            ))

        if gross_amount is not None and gross_amount > self._settings.max_income_amount:
            shown = format_amount(
                gross_amount,
                self._settings.currency_symbol,
                self._settings.minor_units_per_major,
            )
            issues.append(ValidationIssue(
                field="gross_amount",
                issue_type="suspicious_value",
                message=f"Income of {shown} seems unusually high",
                severity="warning",
                suggested_fix="Amounts are in minor units (e.g. agorot); please verify",
            ))

        if period is not None:
            ahead = months_between(current_period(self._today), period)
            if ahead > self._settings.future_period_tolerance_months:
                issues.append(ValidationIssue(
                    field="period",
                    issue_type="future_period",
                    message=f"Period {period} is {ahead} months in the future",
                    severity="warning",
                    suggested_fix="Please verify the month is correct",
                ))

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _result(
        self,
        subject: str,
        schema_issues: list[ValidationIssue],
        semantic_issues: Optional[list[ValidationIssue]] = None,
    ) -> ValidationResult:
        semantic_issues = semantic_issues or []
        all_issues = schema_issues + semantic_issues

        schema_valid = not any(i.severity == "error" for i in schema_issues)
        semantic_valid = schema_valid and not any(
            i.severity == "error" for i in semantic_issues
        )

        return ValidationResult(
            subject=subject,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=[i.message for i in all_issues if i.severity == "warning"],
        )

    def validate_income(
        self,
        owner_id: Any,
        period: Any,
        gross_amount: Any,
        obligation_rate: Any,
        label: Any = None,
    ) -> ValidationResult:
        """Validate a new income record."""
        issues: list[ValidationIssue] = []
        self._check_owner("owner_id", owner_id, issues)
        self._check_period(period, issues)
        self._check_positive_amount("gross_amount", gross_amount, issues)
        self._check_rate("obligation_rate", obligation_rate, issues)
        self._check_text("label", label, issues, required=False)

        if any(i.severity == "error" for i in issues):
            return self._result("income", issues)

        semantic: list[ValidationIssue] = []
        self._check_plausibility(
            semantic,
            gross_amount=gross_amount,
            obligation_rate=obligation_rate,
            period=period,
        )
        return self._result("income", issues, semantic)

    def validate_income_patch(
        self,
        gross_amount: Any = None,
        obligation_rate: Any = None,
        label: Any = None,
    ) -> ValidationResult:
        """Validate the changed fields of an income update. None means unchanged."""
        issues: list[ValidationIssue] = []
        if gross_amount is None and obligation_rate is None and label is None:
            issues.append(ValidationIssue(
                field="patch",
                issue_type="missing",
                message="Nothing to update",
                severity="error",
            ))
            return self._result("income update", issues)

        if gross_amount is not None:
            self._check_positive_amount("gross_amount", gross_amount, issues)
        if obligation_rate is not None:
            self._check_rate("obligation_rate", obligation_rate, issues)
        self._check_text("label", label, issues, required=False)

        if any(i.severity == "error" for i in issues):
            return self._result("income update", issues)

        semantic: list[ValidationIssue] = []
        self._check_plausibility(
            semantic,
            gross_amount=gross_amount,
            obligation_rate=obligation_rate,
        )
        return self._result("income update", issues, semantic)

    def validate_charity(
        self,
        owner_id: Any,
        name: Any,
        amount: Any,
    ) -> ValidationResult:
        """Validate a new fixed charity commitment."""
        issues: list[ValidationIssue] = []
        self._check_owner("owner_id", owner_id, issues)
        self._check_text("name", name, issues, required=True)
        self._check_positive_amount("amount", amount, issues)
        return self._result("charity", issues)

    def validate_charity_patch(
        self,
        name: Any = None,
        amount: Any = None,
    ) -> ValidationResult:
        """Validate a rename and/or re-amount. None means unchanged."""
        issues: list[ValidationIssue] = []
        if name is None and amount is None:
            issues.append(ValidationIssue(
                field="patch",
                issue_type="missing",
                message="Nothing to update",
                severity="error",
            ))
            return self._result("charity update", issues)

        if name is not None:
            self._check_text("name", name, issues, required=True)
        if amount is not None:
            self._check_positive_amount("amount", amount, issues)
        return self._result("charity update", issues)

    def validate_rate(self, rate: Any) -> ValidationResult:
        """Validate a default obligation rate change."""
        issues: list[ValidationIssue] = []
        self._check_rate("rate", rate, issues)
        if any(i.severity == "error" for i in issues):
            return self._result("rate", issues)

        semantic: list[ValidationIssue] = []
        self._check_plausibility(semantic, obligation_rate=rate)
        return self._result("rate", issues, semantic)

    def validate_settlement(
        self,
        period: Any,
        participant_ids: Any,
        amount: Any,
    ) -> ValidationResult:
        """Validate a settlement request (before any balance checks)."""
        issues: list[ValidationIssue] = []
        self._check_period(period, issues)
        self._check_positive_amount("amount", amount, issues)

        if isinstance(participant_ids, (str, bytes)) or not isinstance(participant_ids, Iterable):
            issues.append(ValidationIssue(
                field="participant_ids",
                issue_type="invalid_type",
                message="Participants must be a list of owner ids",
                severity="error",
            ))
            return self._result("settlement", issues)

        participants = list(participant_ids)
        if not participants:
            issues.append(ValidationIssue(
                field="participant_ids",
                issue_type="missing",
                message="At least one participant is required",
                severity="error",
            ))
        for participant in participants:
            self._check_owner("participant_ids", participant, issues)

        if any(i.severity == "error" for i in issues):
            return self._result("settlement", issues)

        semantic: list[ValidationIssue] = []
        if len(set(participants)) != len(participants):
            semantic.append(ValidationIssue(
                field="participant_ids",
                issue_type="duplicate",
                message="A participant is listed more than once; duplicates are ignored",
                severity="warning",
            ))
        return self._result("settlement", issues, semantic)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to non-technical users.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ Please correct the following:")
            for issue in result.errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
