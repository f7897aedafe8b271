"""Validation result models shared by the wizard and invitation checks."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.models.organization import utc_now


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'negative_value', 'duplicate')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )
    step: Optional[int] = Field(
        default=None,
        ge=0,
        description="Wizard step the issue belongs to, if any"
    )


class ValidationResult(BaseModel):
    """
    Result of a two-stage validation.

    Stage 1: Schema validation (formats, required fields)
    Stage 2: Semantic validation (consistency, duplicates)
    """

    subject: str = Field(
        ...,
        description="What was validated (e.g. 'project_draft', 'invitation')"
    )
    validated_at: datetime = Field(default_factory=utc_now)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "error"]
