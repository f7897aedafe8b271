"""
Team Invitations

An invitation is addressed to an e-mail address and carries the role the
invitee will get. Accepting it is what the backend's row-level security
lets a not-yet-member do: insert its own membership, but only with the
invited role, only while the invitation is pending and unexpired, and
only if the e-mails match case-insensitively. This service applies the
same rules before calling the backend so the user gets a clear error.
"""

from datetime import datetime, timedelta
from typing import Optional, Union
from uuid import UUID

import structlog

from src.audit import AuditLogger
from src.config import AppSettings, get_settings
from src.models.organization import (
    Invitation,
    InvitationRole,
    InvitationStatus,
    MemberRole,
    OrganizationMember,
    UserContext,
    as_utc,
    utc_now,
)
from src.services.storage import OrganizationStorage
from src.tenancy.errors import (
    AccessDeniedError,
    InvitationExpiredError,
    InvitationNotFoundError,
    InvitationStateError,
    InvitationValidationError,
)
from src.tenancy.organizations import ActiveOrganizationStore
from src.tenancy.permissions import PermissionService
from src.validation import InvitationValidator


logger = structlog.get_logger(__name__)


class InvitationService:
    """Create, answer, cancel and expire invitations."""

    def __init__(
        self,
        storage: OrganizationStorage,
        permissions: PermissionService,
        active_store: Optional[ActiveOrganizationStore] = None,
        validator: Optional[InvitationValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._permissions = permissions
        self._active = active_store or ActiveOrganizationStore()
        self._validator = validator or InvitationValidator(storage)
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app

    async def create_invitation(
        self,
        actor: UserContext,
        organization_id: UUID,
        email: str,
        role: Union[str, InvitationRole] = InvitationRole.MEMBER,
    ) -> Invitation:
        """
        Invite an e-mail address into an organization.

        Sending the e-mail itself is left to the caller.

        Raises:
            AccessDeniedError: If the actor is not an owner or admin
            InvitationValidationError: If the address or role is invalid,
                or a pending invitation already exists
        """
        await self._permissions.require_team_manager(organization_id, actor.user_id)

        result = await self._validator.validate(organization_id, email, role)
        if not result.is_valid:
            raise InvitationValidationError(result.error_messages)

        if not isinstance(role, InvitationRole):
            role = InvitationRole(str(role).strip().lower())

        invitation = Invitation(
            organization_id=organization_id,
            email=email.strip().lower(),
            role=role,
            invited_by=actor.user_id,
            status=InvitationStatus.PENDING,
            expires_at=utc_now() + timedelta(days=self._settings.invitation_expiry_days),
        )
        saved = await self._storage.create_invitation(invitation)

        await self._audit.log_invitation_created(
            invitation_id=saved.id,
            organization_id=organization_id,
            invited_by=actor.user_id,
            email=saved.email,
            role=saved.role.value,
        )
        return saved

    async def list_pending_invitations(
        self,
        email: str,
        now: Optional[datetime] = None,
    ) -> list[Invitation]:
        """Unexpired pending invitations for an address, organizations attached."""
        now = as_utc(now) if now else utc_now()
        invitations = await self._storage.list_invitations_for_email(email)
        return [
            inv for inv in invitations
            if inv.is_addressed_to(email) and not inv.is_expired(now)
        ]

    async def list_organization_invitations(self, organization_id: UUID) -> list[Invitation]:
        return await self._storage.list_organization_invitations(organization_id)

    async def _get_pending(self, invitation_id: UUID) -> Invitation:
        invitation = await self._storage.get_invitation(invitation_id)
        if invitation is None:
            raise InvitationNotFoundError(invitation_id)
        if invitation.status != InvitationStatus.PENDING:
            raise InvitationStateError(invitation_id, invitation.status.value)
        return invitation

    async def accept_invitation(
        self,
        user: UserContext,
        invitation_id: UUID,
        now: Optional[datetime] = None,
    ) -> OrganizationMember:
        """
        Join the inviting organization with the invited role.

        An existing membership is kept as it is; accepting never changes
        the role of someone who already belongs to the organization.

        Raises:
            InvitationNotFoundError: Unknown invitation
            InvitationStateError: Already answered, cancelled or expired
            AccessDeniedError: Addressed to a different e-mail
            InvitationExpiredError: Past its expiry (it is marked expired)
        """
        invitation = await self._get_pending(invitation_id)

        if not invitation.is_addressed_to(user.email):
            raise AccessDeniedError(
                "This invitation was sent to a different e-mail address",
                organization_id=invitation.organization_id,
            )

        if invitation.is_expired(now):
            await self._storage.set_invitation_status(invitation_id, InvitationStatus.EXPIRED)
            raise InvitationExpiredError(invitation_id)

        organization_id = invitation.organization_id
        member = await self._storage.get_membership(organization_id, user.user_id)
        if member is None:
            member = await self._storage.upsert_member(
                organization_id, user.user_id, MemberRole(invitation.role.value)
            )
        else:
            logger.info(
                "invitation_for_existing_member",
                organization_id=str(organization_id),
                user_id=str(user.user_id),
                role=member.role.value,
            )

        await self._storage.set_invitation_status(invitation_id, InvitationStatus.ACCEPTED)
        await self._permissions.ensure_default_permissions(organization_id, user.user_id)
        self._active.set(organization_id)

        await self._audit.log_invitation_answered(
            invitation_id=invitation_id,
            organization_id=organization_id,
            user_id=user.user_id,
            accepted=True,
            role=invitation.role.value,
        )

        return member or OrganizationMember(
            organization_id=organization_id,
            user_id=user.user_id,
            role=MemberRole(invitation.role.value),
        )

    async def decline_invitation(self, user: UserContext, invitation_id: UUID) -> Invitation:
        """
        Raises:
            InvitationNotFoundError: Unknown invitation
            InvitationStateError: Not pending anymore
            AccessDeniedError: Addressed to a different e-mail
        """
        invitation = await self._get_pending(invitation_id)

        if not invitation.is_addressed_to(user.email):
            raise AccessDeniedError(
                "This invitation was sent to a different e-mail address",
                organization_id=invitation.organization_id,
            )

        updated = await self._storage.set_invitation_status(
            invitation_id, InvitationStatus.DECLINED
        )
        await self._audit.log_invitation_answered(
            invitation_id=invitation_id,
            organization_id=invitation.organization_id,
            user_id=user.user_id,
            accepted=False,
            role=invitation.role.value,
        )
        return updated or invitation.model_copy(update={"status": InvitationStatus.DECLINED})

    async def cancel_invitation(self, actor: UserContext, invitation_id: UUID) -> bool:
        """
        Withdraw an invitation (owner/admin only).

        Raises:
            InvitationNotFoundError: Unknown invitation
            AccessDeniedError: If the actor cannot manage the team
        """
        invitation = await self._storage.get_invitation(invitation_id)
        if invitation is None:
            raise InvitationNotFoundError(invitation_id)

        await self._permissions.require_team_manager(invitation.organization_id, actor.user_id)

        deleted = await self._storage.delete_invitation(invitation_id)
        if deleted:
            await self._audit.log_invitation_cancelled(
                invitation_id, invitation.organization_id, actor.user_id
            )
        return deleted

    async def expire_stale_invitations(
        self,
        organization_id: UUID,
        now: Optional[datetime] = None,
    ) -> int:
        """Mark overdue pending invitations expired. Returns how many were marked."""
        expired = await self._storage.expire_invitations(
            organization_id, as_utc(now) if now else utc_now()
        )
        if expired:
            await self._audit.log_invitations_expired(
                organization_id, [inv.id for inv in expired]
            )
        return len(expired)
