"""
Tenancy Models for Budget Desk

An organization is the tenant scope. Every budget, expense, project and
employee belongs to exactly one organization, and users reach that data
only through an organization membership.

DESIGN DECISION: Roles and permission flags mirror the backend's check
constraints one to one. Anything the backend would reject is rejected
here first, with a readable error.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Timezone-aware current time; backend timestamps are timestamptz."""
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Treat a naive datetime as UTC; aware ones are converted."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class MemberRole(str, Enum):
    """
    Role of a user inside an organization.

    Owners and admins manage the team; members act on their permission
    matrix; viewers only read.
    """
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

    @property
    def can_manage_team(self) -> bool:
        return self in (MemberRole.OWNER, MemberRole.ADMIN)


class InvitationRole(str, Enum):
    """Roles an invitation may grant. Ownership is never handed out by invite."""
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class InvitationStatus(str, Enum):
    """Invitation lifecycle. Only PENDING invitations can be answered."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class ResourceType(str, Enum):
    """Areas of the workspace guarded by per-member permissions."""
    BUDGETS = "budgets"
    PROJECTS = "projects"
    EXPENSES = "expenses"
    EMPLOYEES = "employees"
    ANALYTICS = "analytics"


class PermissionAction(str, Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


# =============================================================================
# CORE TENANCY MODELS
# =============================================================================

class UserContext(BaseModel):
    """
    The authenticated user on whose behalf an operation runs.

    Authentication itself happens outside this package; callers hand
    over the user id and e-mail from their session.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    user_id: UUID
    email: str = Field(..., min_length=3, max_length=320)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class Organization(BaseModel):
    """A tenant."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    owner_id: UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrganizationMember(BaseModel):
    """Membership of one user in one organization (unique per pair)."""

    id: UUID = Field(default_factory=uuid4)
    organization_id: UUID
    user_id: UUID
    role: MemberRole = MemberRole.MEMBER
    created_at: Optional[datetime] = None


class OrganizationMembership(BaseModel):
    """An organization together with the caller's role in it."""

    organization: Organization
    role: MemberRole


class Invitation(BaseModel):
    """
    A pending offer for a user to join an organization with a given role.

    The invitation is addressed by e-mail, not by user id: the invitee
    might not have an account yet when it is created.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    organization_id: UUID
    email: str = Field(..., min_length=3, max_length=320)
    role: InvitationRole = InvitationRole.MEMBER
    invited_by: UUID
    status: InvitationStatus = InvitationStatus.PENDING
    token: UUID = Field(default_factory=uuid4)
    expires_at: datetime
    created_at: Optional[datetime] = None

    # Joined in when listing invitations for the invitee
    organization: Optional[Organization] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return as_utc(self.expires_at) <= as_utc(now or utc_now())

    def is_addressed_to(self, email: str) -> bool:
        return self.email.lower() == email.strip().lower()


class SessionState(BaseModel):
    """
    Outcome of bootstrapping a signed-in user's workspace.

    When ``awaiting_invitation_decision`` is set, no organization was
    resolved yet: the user has invitations but no memberships and should
    answer them first.
    """

    organization_id: Optional[UUID] = None
    memberships: list[OrganizationMembership] = Field(default_factory=list)
    pending_invitations: list[Invitation] = Field(default_factory=list)
    awaiting_invitation_decision: bool = False
    seeded_categories: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def pending_count(self) -> int:
        return len(self.pending_invitations)


class PermissionFlags(BaseModel):
    """The four switches of one resource row."""

    can_view: bool = True
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False

    def allows(self, action: PermissionAction) -> bool:
        return getattr(self, f"can_{action.value}")

    def flags_dict(self) -> dict[str, bool]:
        return {
            "can_view": self.can_view,
            "can_create": self.can_create,
            "can_edit": self.can_edit,
            "can_delete": self.can_delete,
        }


class ResourcePermission(PermissionFlags):
    """Stored permission row (unique per organization, user and resource)."""

    id: UUID = Field(default_factory=uuid4)
    organization_id: UUID
    user_id: UUID
    resource_type: ResourceType
    created_at: Optional[datetime] = None

    @property
    def flags(self) -> PermissionFlags:
        return PermissionFlags(
            can_view=self.can_view,
            can_create=self.can_create,
            can_edit=self.can_edit,
            can_delete=self.can_delete,
        )
