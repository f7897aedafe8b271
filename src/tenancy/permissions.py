"""
Resource Permissions

Owners and admins can do everything. Viewers can only look. Members get
a per-resource matrix of view/create/edit/delete switches, stored as one
row per resource. A member without rows gets the default matrix, which
is view-only.
"""

from typing import Optional
from uuid import UUID

import structlog

from src.audit import AuditLogger
from src.models.organization import (
    MemberRole,
    PermissionAction,
    PermissionFlags,
    ResourcePermission,
    ResourceType,
    UserContext,
)
from src.services.storage import DuplicateError, OrganizationStorage
from src.tenancy.errors import AccessDeniedError


PermissionMatrix = dict[ResourceType, PermissionFlags]

logger = structlog.get_logger(__name__)


def default_permission_matrix() -> PermissionMatrix:
    """View-only access to every resource."""
    return {resource: PermissionFlags() for resource in ResourceType}


def matrix_to_dict(matrix: PermissionMatrix) -> dict[str, dict[str, bool]]:
    return {resource.value: flags.flags_dict() for resource, flags in matrix.items()}


def _permission_row(
    organization_id: UUID,
    user_id: UUID,
    resource: ResourceType,
    flags: PermissionFlags,
) -> ResourcePermission:
    return ResourcePermission(
        organization_id=organization_id,
        user_id=user_id,
        resource_type=resource,
        can_view=flags.can_view,
        can_create=flags.can_create,
        can_edit=flags.can_edit,
        can_delete=flags.can_delete,
    )


class PermissionService:
    """Role lookups and the member permission matrix."""

    def __init__(
        self,
        storage: OrganizationStorage,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()

    async def get_role(self, organization_id: UUID, user_id: UUID) -> Optional[MemberRole]:
        membership = await self._storage.get_membership(organization_id, user_id)
        return membership.role if membership else None

    async def require_team_manager(self, organization_id: UUID, user_id: UUID) -> MemberRole:
        """
        Raises:
            AccessDeniedError: Unless the user is an owner or admin
        """
        role = await self.get_role(organization_id, user_id)
        if role is None or not role.can_manage_team:
            raise AccessDeniedError(
                "Only owners and admins can manage the team",
                organization_id=organization_id,
            )
        return role

    async def get_member_permissions(
        self, organization_id: UUID, user_id: UUID
    ) -> PermissionMatrix:
        """Default matrix overlaid with the user's stored rows."""
        matrix = default_permission_matrix()
        for row in await self._storage.list_permissions(organization_id, user_id):
            matrix[row.resource_type] = row.flags
        return matrix

    async def save_member_permissions(
        self,
        actor: UserContext,
        organization_id: UUID,
        user_id: UUID,
        matrix: PermissionMatrix,
    ) -> PermissionMatrix:
        """
        Replace a member's permissions.

        Resources missing from ``matrix`` are reset to the default flags,
        so the stored rows always cover every resource.
        """
        await self.require_team_manager(organization_id, actor.user_id)

        full = default_permission_matrix()
        full.update({ResourceType(resource): flags for resource, flags in matrix.items()})

        rows = [
            _permission_row(organization_id, user_id, resource, flags)
            for resource, flags in full.items()
        ]
        await self._storage.replace_permissions(organization_id, user_id, rows)
        await self._audit.log_permissions_updated(
            organization_id, user_id, actor.user_id, matrix_to_dict(full)
        )
        return full

    async def ensure_default_permissions(self, organization_id: UUID, user_id: UUID) -> bool:
        """Insert the default rows for a user without any. Returns True if inserted."""
        if await self._storage.list_permissions(organization_id, user_id):
            return False

        rows = [
            _permission_row(organization_id, user_id, resource, flags)
            for resource, flags in default_permission_matrix().items()
        ]
        try:
            await self._storage.insert_permissions(rows)
        except DuplicateError:
            logger.info(
                "default_permissions_exist",
                organization_id=str(organization_id),
                user_id=str(user_id),
            )
            return False
        return True

    async def has_permission(
        self,
        organization_id: UUID,
        user_id: UUID,
        resource: ResourceType,
        action: PermissionAction,
    ) -> bool:
        role = await self.get_role(organization_id, user_id)
        if role is None:
            return False
        if role.can_manage_team:
            return True
        if role == MemberRole.VIEWER:
            return action == PermissionAction.VIEW

        matrix = await self.get_member_permissions(organization_id, user_id)
        return matrix[resource].allows(action)

    async def require_permission(
        self,
        organization_id: UUID,
        user_id: UUID,
        resource: ResourceType,
        action: PermissionAction,
    ) -> None:
        if not await self.has_permission(organization_id, user_id, resource, action):
            raise AccessDeniedError(
                f"Not allowed to {action.value} {resource.value}",
                organization_id=organization_id,
            )
