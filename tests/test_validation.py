"""Tests for the project wizard and invitation validators."""

import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from src.models import InvitationRole, ProjectDraft
from src.services.storage import ConnectionError
from src.validation import (
    InvitationValidator,
    ProjectDraftValidator,
    get_user_friendly_summary,
)


@pytest.fixture
def project_validator():
    return ProjectDraftValidator()


class TestProjectDraftValidator:
    """Tests for step-by-step wizard validation."""

    def test_name_required_on_first_step(self, project_validator):
        result = project_validator.validate_step(0, ProjectDraft(name="   "))
        assert not result.is_valid
        assert not result.schema_valid
        assert result.issues[0].field == "name"

    def test_valid_draft(self, project_validator):
        draft = ProjectDraft(
            name="Bathroom",
            total_budget=Decimal("5000"),
            spent_amount=Decimal("1000"),
            start_date=date(2026, 5, 1),
            end_date=date(2026, 6, 1),
        )
        result = project_validator.validate(draft)
        assert result.is_valid
        assert project_validator.first_invalid_step(draft) is None

    def test_spent_over_budget(self, project_validator):
        draft = ProjectDraft(name="Bathroom", total_budget=Decimal("100"), spent_amount=Decimal("150"))
        result = project_validator.validate_step(1, draft)
        assert not result.semantic_valid
        assert "exceed" in result.error_messages[0]

    def test_end_before_start(self, project_validator):
        draft = ProjectDraft(name="Bathroom", start_date=date(2026, 6, 1), end_date=date(2026, 5, 1))
        result = project_validator.validate_step(1, draft)
        assert [i.field for i in result.issues] == ["end_date"]

    def test_negative_values(self, project_validator):
        draft = ProjectDraft(
            name="Bathroom",
            total_budget=Decimal("-1"),
            spent_amount=Decimal("-1"),
            client_hourly_rate=Decimal("-5"),
        )
        result = project_validator.validate_step(1, draft)
        assert {i.field for i in result.issues} == {"total_budget", "spent_amount", "client_hourly_rate"}

    def test_spending_without_budget_is_a_warning(self, project_validator):
        draft = ProjectDraft(name="Bathroom", spent_amount=Decimal("10"))
        result = project_validator.validate_step(1, draft)
        assert result.is_valid
        assert result.warnings == ["Money is already spent but no budget is set"]

    def test_notes_step_always_passes(self, project_validator):
        assert project_validator.validate_step(2, ProjectDraft()).is_valid

    def test_unknown_step(self, project_validator):
        with pytest.raises(ValueError):
            project_validator.validate_step(3, ProjectDraft())

    def test_first_invalid_step(self, project_validator):
        assert project_validator.first_invalid_step(ProjectDraft()) == 0
        draft = ProjectDraft(name="Bathroom", total_budget=Decimal("1"), spent_amount=Decimal("2"))
        assert project_validator.first_invalid_step(draft) == 1


class TestInvitationValidator:
    """Tests for invitation request validation."""

    def test_valid_without_storage(self):
        result = asyncio.run(InvitationValidator().validate(uuid4(), "a@example.com", InvitationRole.VIEWER))
        assert result.is_valid

    @pytest.mark.parametrize("email", ["", "   ", "no-at-sign", "two@@example.com", "a@b"])
    def test_invalid_email(self, email):
        result = asyncio.run(InvitationValidator().validate(uuid4(), email, "member"))
        assert not result.schema_valid
        assert result.issues[0].field == "email"

    def test_owner_role_is_rejected(self):
        result = asyncio.run(InvitationValidator().validate(uuid4(), "a@example.com", " Owner "))
        assert not result.is_valid
        assert result.issues[0].issue_type == "invalid_role"

    def test_unknown_role_is_rejected(self):
        result = asyncio.run(InvitationValidator().validate(uuid4(), "a@example.com", "superuser"))
        assert result.error_messages == ["Unknown role: superuser"]

    def test_pending_duplicate_is_rejected(self):
        storage = MagicMock()
        storage.find_pending_invitation = AsyncMock(return_value=object())

        result = asyncio.run(InvitationValidator(storage).validate(uuid4(), "a@example.com", "member"))

        assert result.schema_valid
        assert not result.semantic_valid
        assert result.issues[0].issue_type == "duplicate"

    def test_duplicate_check_skipped_after_schema_errors(self):
        storage = MagicMock()
        storage.find_pending_invitation = AsyncMock(return_value=object())

        asyncio.run(InvitationValidator(storage).validate(uuid4(), "broken", "member"))

        storage.find_pending_invitation.assert_not_called()

    def test_storage_error_does_not_fail_validation(self):
        storage = MagicMock()
        storage.find_pending_invitation = AsyncMock(side_effect=ConnectionError("down"))

        result = asyncio.run(InvitationValidator(storage).validate(uuid4(), "a@example.com", "member"))

        assert result.is_valid


class TestUserFriendlySummary:
    """Tests for the summary shown next to a form."""

    def test_all_passed(self, project_validator):
        result = project_validator.validate(ProjectDraft(name="Bathroom"))
        assert get_user_friendly_summary(result) == "✅ All checks passed."

    def test_errors_and_fixes(self, project_validator):
        summary = get_user_friendly_summary(project_validator.validate(ProjectDraft()))
        assert "❌ Please fix the following:" in summary
        assert "Project name is required" in summary
        assert "💡 Give the project a name" in summary

    def test_warnings(self, project_validator):
        result = project_validator.validate(ProjectDraft(name="Bathroom", spent_amount=Decimal("5")))
        summary = get_user_friendly_summary(result)
        assert summary.startswith("⚠️ Please verify the following:")
