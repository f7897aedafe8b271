"""
Tenancy Package

Resolving the active organization, invitations, permissions and team
management.
"""

from src.tenancy.errors import (
    AccessDeniedError,
    InvitationError,
    InvitationExpiredError,
    InvitationNotFoundError,
    InvitationStateError,
    InvitationValidationError,
    MembershipError,
    OrganizationAccessError,
    OrganizationBootstrapError,
    TenancyError,
)
from src.tenancy.organizations import (
    ACTIVE_ORGANIZATION_KEY,
    ActiveOrganizationStore,
    OrganizationService,
)
from src.tenancy.permissions import (
    PermissionMatrix,
    PermissionService,
    default_permission_matrix,
)
from src.tenancy.invitations import InvitationService
from src.tenancy.team import TeamService

__all__ = [
    # Services
    "ActiveOrganizationStore",
    "InvitationService",
    "OrganizationService",
    "PermissionService",
    "TeamService",
    # Helpers
    "ACTIVE_ORGANIZATION_KEY",
    "PermissionMatrix",
    "default_permission_matrix",
    # Exceptions
    "AccessDeniedError",
    "InvitationError",
    "InvitationExpiredError",
    "InvitationNotFoundError",
    "InvitationStateError",
    "InvitationValidationError",
    "MembershipError",
    "OrganizationAccessError",
    "OrganizationBootstrapError",
    "TenancyError",
]
