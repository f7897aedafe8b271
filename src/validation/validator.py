"""
Two-Stage Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Format validation (e-mail addresses, role names)
- Sign of amounts

STAGE 2 - SEMANTIC VALIDATION:
- Consistency between fields (spent vs. budget, start vs. end)
- Duplicate detection (pending invitations)

WHY TWO STAGES:
1. Separation of concerns (structural vs logical)
2. Better error messages (know exactly what kind of issue)
3. Can skip stage 2 if stage 1 fails
4. Stage 2 needs access to storage for duplicate checks

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the form can show them next to the field.
"""

import re
from typing import Optional, Union
from uuid import UUID

import structlog

from src.models.organization import InvitationRole, MemberRole
from src.models.projects import ProjectDraft
from src.models.validation import ValidationIssue, ValidationResult
from src.services.storage import OrganizationStorage, StorageError


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Wizard steps: basics, finances, notes
PROJECT_WIZARD_STEPS = 3

logger = structlog.get_logger(__name__)


def _result(subject: str, schema_issues: list[ValidationIssue],
            semantic_issues: list[ValidationIssue]) -> ValidationResult:
    schema_valid = not any(i.severity == "error" for i in schema_issues)
    semantic_valid = not any(i.severity == "error" for i in semantic_issues)
    issues = schema_issues + semantic_issues
    return ValidationResult(
        subject=subject,
        schema_valid=schema_valid,
        semantic_valid=semantic_valid,
        is_valid=schema_valid and semantic_valid,
        issues=issues,
        warnings=[i.message for i in issues if i.severity == "warning"],
    )


class ProjectDraftValidator:
    """
    Checks the project creation wizard one step at a time.

    Step 0 holds the required fields (schema stage), step 1 the money and
    dates that have to agree with each other (semantic stage). Step 2 is
    free text and always passes.
    """

    def _check_basics(self, draft: ProjectDraft) -> list[ValidationIssue]:
        issues = []
        if not draft.name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Project name is required",
                severity="error",
                suggested_fix="Give the project a name",
                step=0,
            ))
        return issues

    def _check_finances(self, draft: ProjectDraft) -> list[ValidationIssue]:
        issues = []

        if draft.total_budget < 0:
            issues.append(ValidationIssue(
                field="total_budget",
                issue_type="negative_value",
                message="Total budget cannot be negative",
                severity="error",
                step=1,
            ))
        if draft.spent_amount < 0:
            issues.append(ValidationIssue(
                field="spent_amount",
                issue_type="negative_value",
                message="Spent amount cannot be negative",
                severity="error",
                step=1,
            ))
        if draft.total_budget > 0 and draft.spent_amount > draft.total_budget:
            issues.append(ValidationIssue(
                field="spent_amount",
                issue_type="exceeds_budget",
                message="Spent amount cannot exceed the total budget",
                severity="error",
                suggested_fix="Raise the budget or correct the spent amount",
                step=1,
            ))
        if draft.client_hourly_rate is not None and draft.client_hourly_rate < 0:
            issues.append(ValidationIssue(
                field="client_hourly_rate",
                issue_type="negative_value",
                message="Hourly rate cannot be negative",
                severity="error",
                step=1,
            ))
        if draft.start_date and draft.end_date and draft.end_date < draft.start_date:
            issues.append(ValidationIssue(
                field="end_date",
                issue_type="invalid_range",
                message="End date cannot be before the start date",
                severity="error",
                step=1,
            ))
        if draft.total_budget == 0 and draft.spent_amount > 0:
            issues.append(ValidationIssue(
                field="total_budget",
                issue_type="missing",
                message="Money is already spent but no budget is set",
                severity="warning",
                step=1,
            ))
        return issues

    def validate_step(self, step: int, draft: ProjectDraft) -> ValidationResult:
        """
        Validate a single wizard step.

        Raises:
            ValueError: If the step does not exist
        """
        if not 0 <= step < PROJECT_WIZARD_STEPS:
            raise ValueError(f"Unknown wizard step: {step}")

        if step == 0:
            return _result("project_draft", self._check_basics(draft), [])
        if step == 1:
            return _result("project_draft", [], self._check_finances(draft))
        return _result("project_draft", [], [])

    def validate(self, draft: ProjectDraft) -> ValidationResult:
        """Validate every step, as done before the project is saved."""
        return _result(
            "project_draft",
            self._check_basics(draft),
            self._check_finances(draft),
        )

    def first_invalid_step(self, draft: ProjectDraft) -> Optional[int]:
        """The step the wizard should jump back to, or None when all pass."""
        for step in range(PROJECT_WIZARD_STEPS):
            if not self.validate_step(step, draft).is_valid:
                return step
        return None


class InvitationValidator:
    """
    Validates an invitation request through a two-stage pipeline.

    Stage 1: Schema validation (can run without storage)
    Stage 2: Semantic validation (needs storage for duplicate checks)
    """

    def __init__(
        self,
        storage: Optional[OrganizationStorage] = None,
    ):
        """
        Initialize validator.

        Args:
            storage: Storage for the pending-duplicate check.
                    If None, duplicate checking is skipped.
        """
        self._storage = storage

    def _validate_schema(
        self,
        email: str,
        role: Union[str, InvitationRole],
    ) -> list[ValidationIssue]:
        issues = []

        if not email or not email.strip():
            issues.append(ValidationIssue(
                field="email",
                issue_type="missing",
                message="E-mail address is required",
                severity="error",
            ))
        elif not EMAIL_PATTERN.match(email.strip()):
            issues.append(ValidationIssue(
                field="email",
                issue_type="invalid_format",
                message=f"'{email.strip()}' is not a valid e-mail address",
                severity="error",
                suggested_fix="Check the address for typos",
            ))

        role_value = role.value if isinstance(role, InvitationRole) else str(role).strip().lower()
        if role_value == MemberRole.OWNER.value:
            issues.append(ValidationIssue(
                field="role",
                issue_type="invalid_role",
                message="Ownership cannot be granted through an invitation",
                severity="error",
                suggested_fix="Invite as admin instead",
            ))
        elif role_value not in {r.value for r in InvitationRole}:
            issues.append(ValidationIssue(
                field="role",
                issue_type="invalid_role",
                message=f"Unknown role: {role_value}",
                severity="error",
            ))

        return issues

    async def _check_duplicates(
        self,
        organization_id: UUID,
        email: str,
    ) -> list[ValidationIssue]:
        """
        Check for a pending invitation to the same address.

        This requires storage access.
        """
        issues = []

        if self._storage is None:
            return issues

        try:
            existing = await self._storage.find_pending_invitation(organization_id, email)
        except StorageError as e:
            # Don't fail validation due to storage errors
            logger.warning("invitation_duplicate_check_failed", error=str(e))
            return issues

        if existing is not None:
            issues.append(ValidationIssue(
                field="email",
                issue_type="duplicate",
                message=f"{email.strip()} already has a pending invitation",
                severity="error",
                suggested_fix="Cancel the existing invitation or wait for an answer",
            ))

        return issues

    async def validate(
        self,
        organization_id: UUID,
        email: str,
        role: Union[str, InvitationRole],
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Returns:
            ValidationResult with all issues found
        """
        schema_issues = self._validate_schema(email, role)

        # Only run stage 2 if stage 1 passes
        semantic_issues = []
        if not any(issue.severity == "error" for issue in schema_issues):
            semantic_issues = await self._check_duplicates(organization_id, email)

        return _result("invitation", schema_issues, semantic_issues)


def get_user_friendly_summary(result: ValidationResult) -> str:
    """
    Generate a user-friendly summary of validation results.

    This is what we show next to the form.
    """
    if result.is_valid and not result.warnings:
        return "✅ All checks passed."

    lines = []

    if result.has_errors:
        lines.append("❌ Please fix the following:")
        for issue in result.issues:
            if issue.severity == "error":
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
