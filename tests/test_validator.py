"""Tests for the two-stage input validator."""

import pytest

from maaser.ledger.errors import ValidationError

PERIOD = "2024-03"


class TestIncomeValidation:
    """Tests for income validation."""

    def test_valid_income(self, validator):
        result = validator.validate_income("x", PERIOD, 10000, 10, "Salary")
        assert result.is_valid
        assert result.issues == []

    def test_collects_every_error(self, validator):
        """Test all problems are reported at once."""
        result = validator.validate_income("", "2024-3", -5, 0, 42)
        assert not result.schema_valid
        assert {issue.field for issue in result.errors} == {
            "owner_id", "period", "gross_amount", "obligation_rate", "label",
        }

    @pytest.mark.parametrize("amount,issue_type", [
        (None, "missing"),
        (100.0, "invalid_type"),
        ("100", "invalid_type"),
        (True, "invalid_type"),
        (0, "invalid_value"),
        (-1, "invalid_value"),
    ])
    def test_amount_issue_types(self, validator, amount, issue_type):
        result = validator.validate_income("x", PERIOD, amount, 10)
        assert [issue.issue_type for issue in result.errors] == [issue_type]

    @pytest.mark.parametrize("rate,issue_type", [
        (0, "out_of_range"),
        (101, "out_of_range"),
        (10.5, "invalid_type"),
        (None, "invalid_type"),
    ])
    def test_rate_issue_types(self, validator, rate, issue_type):
        result = validator.validate_income("x", PERIOD, 100, rate)
        assert [issue.issue_type for issue in result.errors] == [issue_type]

    def test_label_too_long(self, validator):
        result = validator.validate_income("x", PERIOD, 100, 10, "a" * 201)
        assert result.errors[0].issue_type == "too_long"

    def test_high_rate_is_warning_only(self, validator):
        """Test unusual rates warn but do not block."""
        result = validator.validate_income("x", PERIOD, 10000, 50)
        assert result.is_valid
        assert not result.has_errors
        assert len(result.warnings) == 1

    def test_large_income_warns(self, validator):
        result = validator.validate_income("x", PERIOD, 100_000_001, 10)
        assert result.is_valid
        assert result.issues[0].field == "gross_amount"
        assert result.issues[0].severity == "warning"

    def test_future_period_warns(self, validator):
        """Test a period beyond the tolerance is flagged."""
        near = validator.validate_income("x", "2024-04", 100, 10)
        far = validator.validate_income("x", "2024-06", 100, 10)
        assert near.warnings == []
        assert far.issues[0].issue_type == "future_period"

    def test_past_period_is_fine(self, validator):
        result = validator.validate_income("x", "2019-01", 100, 10)
        assert result.warnings == []


class TestPatchValidation:
    """Tests for partial updates."""

    def test_empty_patch_rejected(self, validator):
        result = validator.validate_income_patch()
        assert result.errors[0].field == "patch"

    def test_only_given_fields_checked(self, validator):
        result = validator.validate_income_patch(gross_amount=500)
        assert result.is_valid

    def test_bad_rate_in_patch(self, validator):
        result = validator.validate_income_patch(obligation_rate=200)
        assert result.errors[0].field == "obligation_rate"

    def test_charity_patch(self, validator):
        assert validator.validate_charity_patch().has_errors
        assert validator.validate_charity_patch(name="  ").has_errors
        assert validator.validate_charity_patch(amount=300).is_valid


class TestCharityAndRateValidation:
    """Tests for charity and rate validation."""

    def test_charity_needs_name(self, validator):
        result = validator.validate_charity("x", "", 300)
        assert result.errors[0].field == "name"

    def test_charity_needs_positive_amount(self, validator):
        result = validator.validate_charity("x", "Shul", 0)
        assert result.errors[0].field == "amount"

    def test_rate(self, validator):
        assert validator.validate_rate(10).is_valid
        assert validator.validate_rate(0).has_errors
        assert validator.validate_rate(30).warnings


class TestSettlementValidation:
    """Tests for settlement request validation."""

    def test_valid(self, validator):
        assert validator.validate_settlement(PERIOD, ["x", "y"], 100).is_valid

    def test_string_participants_rejected(self, validator):
        """Test a bare string is not taken as a list of characters."""
        result = validator.validate_settlement(PERIOD, "xy", 100)
        assert result.errors[0].issue_type == "invalid_type"

    def test_empty_participants_rejected(self, validator):
        result = validator.validate_settlement(PERIOD, [], 100)
        assert result.errors[0].issue_type == "missing"

    def test_blank_participant_rejected(self, validator):
        result = validator.validate_settlement(PERIOD, ["x", " "], 100)
        assert result.has_errors

    def test_duplicates_warn(self, validator):
        result = validator.validate_settlement(PERIOD, ["x", "x"], 100)
        assert result.is_valid
        assert result.issues[0].issue_type == "duplicate"

    def test_zero_amount_rejected(self, validator):
        result = validator.validate_settlement(PERIOD, ["x"], 0)
        assert result.errors[0].field == "amount"


class TestValidationError:
    """Tests for turning results into exceptions."""

    def test_raise_for_errors(self, validator):
        result = validator.validate_income("x", PERIOD, -1, 10)
        with pytest.raises(ValidationError) as exc_info:
            ValidationError.raise_for(result)
        assert exc_info.value.fields == ["gross_amount"]
        assert exc_info.value.subject == "income"

    def test_raise_for_warnings_only(self, validator):
        """Test warnings never raise."""
        result = validator.validate_income("x", PERIOD, 100, 50)
        ValidationError.raise_for(result)


class TestUserFriendlySummary:
    """Tests for the summary shown to users."""

    def test_all_passed(self, validator):
        result = validator.validate_income("x", PERIOD, 100, 10)
        assert validator.get_user_friendly_summary(result) == "✅ All checks passed."

    def test_errors_and_fixes(self, validator):
        result = validator.validate_income("x", PERIOD, 1.5, 10)
        summary = validator.get_user_friendly_summary(result)
        assert "❌ Please correct the following:" in summary
        assert "parse_amount" in summary

    def test_warnings(self, validator):
        result = validator.validate_income("x", PERIOD, 100, 50)
        summary = validator.get_user_friendly_summary(result)
        assert summary.startswith("⚠️ Please verify the following:")
