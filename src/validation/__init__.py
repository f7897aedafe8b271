"""Validation package."""

from src.validation.validator import (
    InvitationValidator,
    ProjectDraftValidator,
    get_user_friendly_summary,
)

__all__ = [
    "InvitationValidator",
    "ProjectDraftValidator",
    "get_user_friendly_summary",
]
