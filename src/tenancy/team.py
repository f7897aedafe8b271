"""Team management: listing members, changing roles, removing members."""

from typing import Optional
from uuid import UUID

from src.audit import AuditLogger
from src.models.organization import MemberRole, OrganizationMember, UserContext
from src.services.storage import OrganizationStorage
from src.tenancy.errors import MembershipError
from src.tenancy.permissions import PermissionService


class TeamService:
    """
    Owner/admin operations on an organization's members.

    The owner's membership is fixed: it cannot be demoted or removed, and
    nobody can be promoted to owner.
    """

    def __init__(
        self,
        storage: OrganizationStorage,
        permissions: PermissionService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._permissions = permissions
        self._audit = audit_logger or AuditLogger()

    async def list_members(self, organization_id: UUID) -> list[OrganizationMember]:
        return await self._storage.list_members(organization_id)

    async def _get_changeable_member(
        self, actor: UserContext, member_id: UUID
    ) -> OrganizationMember:
        member = await self._storage.get_member(member_id)
        if member is None:
            raise MembershipError(f"Member not found: {member_id}")

        await self._permissions.require_team_manager(member.organization_id, actor.user_id)

        if member.role == MemberRole.OWNER:
            raise MembershipError("The organization owner cannot be changed or removed")
        return member

    async def update_member_role(
        self,
        actor: UserContext,
        member_id: UUID,
        new_role: MemberRole,
    ) -> OrganizationMember:
        """
        Raises:
            MembershipError: Unknown member, owner target or owner role
            AccessDeniedError: If the actor cannot manage the team
        """
        member = await self._get_changeable_member(actor, member_id)

        if new_role == MemberRole.OWNER:
            raise MembershipError("Ownership cannot be assigned")
        if new_role == member.role:
            return member

        updated = await self._storage.update_member_role(member_id, new_role)
        await self._audit.log_member_role_updated(
            organization_id=member.organization_id,
            member_id=member_id,
            actor_id=actor.user_id,
            old_role=member.role.value,
            new_role=new_role.value,
        )
        return updated or member.model_copy(update={"role": new_role})

    async def remove_member(self, actor: UserContext, member_id: UUID) -> bool:
        member = await self._get_changeable_member(actor, member_id)

        removed = await self._storage.delete_member(member_id)
        if removed:
            await self._audit.log_member_removed(
                organization_id=member.organization_id,
                member_id=member_id,
                actor_id=actor.user_id,
                user_id=member.user_id,
            )
        return removed
