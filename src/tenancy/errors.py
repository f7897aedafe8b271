"""Exceptions raised by the tenancy services."""

from typing import Optional
from uuid import UUID


class TenancyError(Exception):
    """Base exception for organization, invitation and permission failures."""
    pass


class OrganizationBootstrapError(TenancyError):
    """No organization could be resolved or created for the user."""

    def __init__(self, user_id: UUID, message: str = "Failed to resolve or create an organization"):
        self.user_id = user_id
        super().__init__(f"{message} (user {user_id})")


class OrganizationAccessError(TenancyError):
    """The user is not a member of the requested organization."""

    def __init__(self, user_id: UUID, organization_id: UUID):
        self.user_id = user_id
        self.organization_id = organization_id
        super().__init__(f"User {user_id} is not a member of organization {organization_id}")


class AccessDeniedError(TenancyError):
    """The user's role or permission matrix does not allow the action."""

    def __init__(self, message: str, organization_id: Optional[UUID] = None):
        self.organization_id = organization_id
        super().__init__(message)


class InvitationError(TenancyError):
    """Base exception for invitation failures."""
    pass


class InvitationNotFoundError(InvitationError):
    def __init__(self, invitation_id: UUID):
        self.invitation_id = invitation_id
        super().__init__(f"Invitation not found: {invitation_id}")


class InvitationExpiredError(InvitationError):
    def __init__(self, invitation_id: UUID):
        self.invitation_id = invitation_id
        super().__init__(f"Invitation has expired: {invitation_id}")


class InvitationStateError(InvitationError):
    """The invitation was already answered, cancelled or expired."""

    def __init__(self, invitation_id: UUID, status: str):
        self.invitation_id = invitation_id
        self.status = status
        super().__init__(f"Invitation {invitation_id} is {status}, not pending")


class InvitationValidationError(InvitationError):
    """The invitation request failed validation."""

    def __init__(self, messages: list[str]):
        self.messages = messages
        super().__init__("; ".join(messages))


class MembershipError(TenancyError):
    """A team change that would break the organization (e.g. removing its owner)."""
    pass
