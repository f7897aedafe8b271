"""Tests for organization bootstrap, permissions, invitations and team management."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from src.audit import AuditLogger
from src.models import (
    InvitationRole,
    InvitationStatus,
    MemberRole,
    PermissionAction,
    PermissionFlags,
    ResourceType,
    UserContext,
    utc_now,
)
from src.services.storage import AuditStorage, ConnectionError, DuplicateError
from src.tenancy import (
    ACTIVE_ORGANIZATION_KEY,
    AccessDeniedError,
    ActiveOrganizationStore,
    InvitationExpiredError,
    InvitationNotFoundError,
    InvitationStateError,
    InvitationValidationError,
    MembershipError,
    OrganizationAccessError,
    OrganizationBootstrapError,
    OrganizationService,
)


class TestActiveOrganizationStore:
    """Tests for the session-backed active organization."""

    def test_round_trip(self):
        session = {}
        store = ActiveOrganizationStore(session)
        org_id = uuid4()

        store.set(org_id)
        assert session[ACTIVE_ORGANIZATION_KEY] == str(org_id)
        assert store.get() == org_id

        store.set(None)
        assert ACTIVE_ORGANIZATION_KEY not in session

    def test_unreadable_value_is_ignored(self):
        store = ActiveOrganizationStore({ACTIVE_ORGANIZATION_KEY: "not-a-uuid"})
        assert store.get() is None


class TestEnsureUserOrganization:
    """Tests for resolving or creating the active organization."""

    def test_new_user_gets_owned_organization(self, app, org_storage, owner, session):
        org_id = asyncio.run(app.organizations.ensure_user_organization(owner.user_id))

        organization = asyncio.run(org_storage.get_organization(org_id))
        membership = asyncio.run(org_storage.get_membership(org_id, owner.user_id))
        assert organization.name == "My organization"
        assert organization.owner_id == owner.user_id
        assert membership.role == MemberRole.OWNER
        assert session[ACTIVE_ORGANIZATION_KEY] == str(org_id)

    def test_second_call_reuses_organization(self, app, backend, owner, organization_id):
        again = asyncio.run(app.organizations.ensure_user_organization(owner.user_id))

        assert again == organization_id
        assert len(backend.rows("organizations")) == 1
        assert len(backend.rows("organization_members")) == 1

    def test_remembered_organization_is_used(self, app, org_storage, owner, organization_id, session):
        other = asyncio.run(org_storage.create_organization("Second", uuid4()))
        asyncio.run(org_storage.upsert_member(other.id, owner.user_id, MemberRole.MEMBER))
        session[ACTIVE_ORGANIZATION_KEY] = str(other.id)

        resolved = asyncio.run(app.organizations.ensure_user_organization(owner.user_id))

        assert resolved == other.id

    def test_preferred_organization_without_membership_falls_back(
        self, app, owner, organization_id, session
    ):
        resolved = asyncio.run(
            app.organizations.ensure_user_organization(owner.user_id, uuid4())
        )

        assert resolved == organization_id
        assert session[ACTIVE_ORGANIZATION_KEY] == str(organization_id)

    def test_creation_race_falls_back_to_winner(self, org_storage, finance_storage, owner):
        winner_org = asyncio.run(org_storage.create_organization("Winner", owner.user_id))

        async def lose_race(name, owner_id):
            await org_storage.upsert_member(winner_org.id, owner_id, MemberRole.OWNER)
            raise DuplicateError("duplicate key", code="23505")

        service = OrganizationService(org_storage, finance_storage)
        with patch.object(org_storage, "create_organization", AsyncMock(side_effect=lose_race)):
            resolved = asyncio.run(service.ensure_user_organization(owner.user_id))

        assert resolved == winner_org.id

    def test_no_organization_at_all_raises(self, org_storage, finance_storage, owner):
        service = OrganizationService(org_storage, finance_storage)
        with patch.object(org_storage, "create_organization", AsyncMock(return_value=None)):
            with pytest.raises(OrganizationBootstrapError):
                asyncio.run(service.ensure_user_organization(owner.user_id))

    def test_other_storage_errors_propagate(self, backend, org_storage, finance_storage, owner):
        service = OrganizationService(org_storage, finance_storage)
        backend.fail_on("organizations", ConnectionError("backend down"))

        with pytest.raises(ConnectionError):
            asyncio.run(service.ensure_user_organization(owner.user_id))

    def test_creation_is_audited(self, backend, org_storage, finance_storage, owner):
        audit = AuditLogger(AuditStorage(backend))
        service = OrganizationService(org_storage, finance_storage, audit_logger=audit)

        org_id = asyncio.run(service.ensure_user_organization(owner.user_id))
        asyncio.run(service.ensure_user_organization(owner.user_id))

        events = backend.rows("audit_events")
        assert [e["event_type"] for e in events] == ["organization_created"]
        assert events[0]["organization_id"] == str(org_id)


class TestOrganizationSwitching:
    """Tests for listing and switching organizations."""

    def test_switch_to_member_organization(self, app, org_storage, owner, organization_id, session):
        other = asyncio.run(org_storage.create_organization("Client work", uuid4()))
        asyncio.run(org_storage.upsert_member(other.id, owner.user_id, MemberRole.ADMIN))

        asyncio.run(app.organizations.switch_organization(owner.user_id, other.id))

        assert session[ACTIVE_ORGANIZATION_KEY] == str(other.id)
        memberships = asyncio.run(app.organizations.list_user_organizations(owner.user_id))
        assert {m.organization.id for m in memberships} == {organization_id, other.id}

    def test_switch_to_foreign_organization_is_refused(self, app, owner, organization_id, session):
        with pytest.raises(OrganizationAccessError):
            asyncio.run(app.organizations.switch_organization(owner.user_id, uuid4()))
        assert session[ACTIVE_ORGANIZATION_KEY] == str(organization_id)


class TestDefaultCategories:
    """Tests for seeding categories into a new organization."""

    def test_categories_seeded_once(self, app, finance_storage, owner, organization_id):
        created = asyncio.run(
            app.organizations.ensure_default_categories(owner.user_id, organization_id)
        )
        again = asyncio.run(
            app.organizations.ensure_default_categories(owner.user_id, organization_id)
        )

        assert [c.name for c in created] == ["Materials", "Labor", "Transport", "Tools", "Other"]
        assert again == []
        assert len(asyncio.run(finance_storage.list_categories(organization_id))) == 5


class TestPermissions:
    """Tests for roles and the member permission matrix."""

    def test_owner_can_do_everything(self, app, owner, organization_id):
        assert asyncio.run(app.permissions.has_permission(
            organization_id, owner.user_id, ResourceType.BUDGETS, PermissionAction.DELETE
        ))

    def test_viewer_can_only_view(self, app, organization_id, add_member):
        viewer = add_member(organization_id, MemberRole.VIEWER)

        assert asyncio.run(app.permissions.has_permission(
            organization_id, viewer.user_id, ResourceType.PROJECTS, PermissionAction.VIEW
        ))
        assert not asyncio.run(app.permissions.has_permission(
            organization_id, viewer.user_id, ResourceType.PROJECTS, PermissionAction.CREATE
        ))

    def test_non_member_has_no_permissions(self, app, organization_id):
        assert not asyncio.run(app.permissions.has_permission(
            organization_id, uuid4(), ResourceType.ANALYTICS, PermissionAction.VIEW
        ))

    def test_member_defaults_to_view_only(self, app, organization_id, add_member):
        member = add_member(organization_id)
        matrix = asyncio.run(app.permissions.get_member_permissions(organization_id, member.user_id))

        assert set(matrix) == set(ResourceType)
        assert all(flags == PermissionFlags() for flags in matrix.values())

    def test_saved_matrix_is_applied(self, app, backend, owner, organization_id, add_member):
        member = add_member(organization_id)

        asyncio.run(app.permissions.save_member_permissions(
            owner,
            organization_id,
            member.user_id,
            {ResourceType.BUDGETS: PermissionFlags(can_view=True, can_create=True)},
        ))

        assert len(backend.rows("resource_permissions")) == len(ResourceType)
        assert asyncio.run(app.permissions.has_permission(
            organization_id, member.user_id, ResourceType.BUDGETS, PermissionAction.CREATE
        ))
        assert not asyncio.run(app.permissions.has_permission(
            organization_id, member.user_id, ResourceType.EXPENSES, PermissionAction.CREATE
        ))

    def test_saving_twice_replaces_rows(self, app, backend, owner, organization_id, add_member):
        member = add_member(organization_id)
        for can_edit in (True, False):
            asyncio.run(app.permissions.save_member_permissions(
                owner,
                organization_id,
                member.user_id,
                {ResourceType.PROJECTS: PermissionFlags(can_edit=can_edit)},
            ))

        assert len(backend.rows("resource_permissions")) == len(ResourceType)
        matrix = asyncio.run(app.permissions.get_member_permissions(organization_id, member.user_id))
        assert not matrix[ResourceType.PROJECTS].can_edit

    def test_string_resource_keys_are_accepted(self, app, backend, owner, organization_id, add_member):
        member = add_member(organization_id)

        matrix = asyncio.run(app.permissions.save_member_permissions(
            owner,
            organization_id,
            member.user_id,
            {"budgets": PermissionFlags(can_view=True, can_edit=True)},
        ))

        assert set(matrix) == set(ResourceType)
        assert matrix[ResourceType.BUDGETS].can_edit
        assert len(backend.rows("resource_permissions")) == len(ResourceType)

    def test_member_cannot_edit_permissions(self, app, organization_id, add_member):
        member = add_member(organization_id)
        with pytest.raises(AccessDeniedError):
            asyncio.run(app.permissions.save_member_permissions(
                member, organization_id, member.user_id, {}
            ))

    def test_default_permissions_inserted_once(self, app, organization_id, add_member):
        member = add_member(organization_id)
        assert asyncio.run(app.permissions.ensure_default_permissions(organization_id, member.user_id))
        assert not asyncio.run(app.permissions.ensure_default_permissions(organization_id, member.user_id))


@pytest.fixture
def invitee():
    return UserContext(user_id=uuid4(), email="new.hire@example.com")


@pytest.fixture
def invitation(app, owner, organization_id, invitee):
    return asyncio.run(app.invitations.create_invitation(
        owner, organization_id, "New.Hire@Example.com", "admin"
    ))


class TestInvitations:
    """Tests for creating and answering invitations."""

    def test_create_invitation(self, invitation, organization_id, owner):
        assert invitation.email == "new.hire@example.com"
        assert invitation.role == InvitationRole.ADMIN
        assert invitation.status == InvitationStatus.PENDING
        assert invitation.invited_by == owner.user_id
        assert invitation.expires_at - utc_now() > timedelta(days=6)

    def test_member_cannot_invite(self, app, organization_id, add_member):
        member = add_member(organization_id)
        with pytest.raises(AccessDeniedError):
            asyncio.run(app.invitations.create_invitation(
                member, organization_id, "someone@example.com"
            ))

    def test_duplicate_pending_invitation_is_rejected(self, app, owner, organization_id, invitation):
        with pytest.raises(InvitationValidationError) as exc_info:
            asyncio.run(app.invitations.create_invitation(
                owner, organization_id, "new.hire@example.com"
            ))
        assert "pending invitation" in str(exc_info.value)

    def test_similar_address_is_not_a_duplicate(self, app, owner, organization_id):
        asyncio.run(app.invitations.create_invitation(
            owner, organization_id, "johnXdoe@example.com"
        ))

        created = asyncio.run(app.invitations.create_invitation(
            owner, organization_id, "john_doe@example.com"
        ))

        assert created.email == "john_doe@example.com"
        pending = asyncio.run(app.invitations.list_pending_invitations("john_doe@example.com"))
        assert [inv.id for inv in pending] == [created.id]

    def test_owner_role_cannot_be_invited(self, app, owner, organization_id):
        with pytest.raises(InvitationValidationError):
            asyncio.run(app.invitations.create_invitation(
                owner, organization_id, "boss@example.com", "owner"
            ))

    def test_pending_invitations_include_organization(self, app, invitee, invitation, organization_id):
        pending = asyncio.run(app.invitations.list_pending_invitations(invitee.email))

        assert [inv.id for inv in pending] == [invitation.id]
        assert pending[0].organization.id == organization_id

    def test_expired_invitations_are_not_listed(self, app, invitee, invitation):
        later = utc_now() + timedelta(days=8)
        assert asyncio.run(app.invitations.list_pending_invitations(invitee.email, later)) == []

    def test_naive_time_is_treated_as_utc(self, app, invitee, invitation):
        later = (utc_now() + timedelta(days=8)).replace(tzinfo=None)

        assert asyncio.run(app.invitations.list_pending_invitations(invitee.email, later)) == []
        with pytest.raises(InvitationExpiredError):
            asyncio.run(app.invitations.accept_invitation(invitee, invitation.id, later))

    def test_accept_invitation(self, app, org_storage, invitee, invitation, organization_id, session):
        member = asyncio.run(app.invitations.accept_invitation(invitee, invitation.id))

        assert member.role == MemberRole.ADMIN
        assert asyncio.run(org_storage.get_invitation(invitation.id)).status == InvitationStatus.ACCEPTED
        assert len(asyncio.run(org_storage.list_permissions(organization_id, invitee.user_id))) == len(ResourceType)
        assert session[ACTIVE_ORGANIZATION_KEY] == str(organization_id)

    def test_accept_twice_is_refused(self, app, invitee, invitation):
        asyncio.run(app.invitations.accept_invitation(invitee, invitation.id))
        with pytest.raises(InvitationStateError):
            asyncio.run(app.invitations.accept_invitation(invitee, invitation.id))

    def test_accept_for_other_email_is_refused(self, app, invitation):
        stranger = UserContext(user_id=uuid4(), email="stranger@example.com")
        with pytest.raises(AccessDeniedError):
            asyncio.run(app.invitations.accept_invitation(stranger, invitation.id))

    def test_accept_expired_marks_expired(self, app, org_storage, invitee, invitation):
        later = utc_now() + timedelta(days=8)
        with pytest.raises(InvitationExpiredError):
            asyncio.run(app.invitations.accept_invitation(invitee, invitation.id, later))

        assert asyncio.run(org_storage.get_invitation(invitation.id)).status == InvitationStatus.EXPIRED
        assert asyncio.run(org_storage.get_membership(invitation.organization_id, invitee.user_id)) is None

    def test_accept_unknown_invitation(self, app, invitee):
        with pytest.raises(InvitationNotFoundError):
            asyncio.run(app.invitations.accept_invitation(invitee, uuid4()))

    def test_accept_keeps_existing_role(self, app, owner, organization_id, add_member):
        viewer = add_member(organization_id, MemberRole.VIEWER, email="viewer@example.com")
        invitation = asyncio.run(app.invitations.create_invitation(
            owner, organization_id, viewer.email, InvitationRole.ADMIN
        ))

        member = asyncio.run(app.invitations.accept_invitation(viewer, invitation.id))

        assert member.role == MemberRole.VIEWER

    def test_decline_invitation(self, app, org_storage, invitee, invitation):
        declined = asyncio.run(app.invitations.decline_invitation(invitee, invitation.id))

        assert declined.status == InvitationStatus.DECLINED
        assert asyncio.run(org_storage.get_membership(invitation.organization_id, invitee.user_id)) is None

    def test_cancel_invitation(self, app, owner, organization_id, invitation):
        assert asyncio.run(app.invitations.cancel_invitation(owner, invitation.id))
        assert asyncio.run(app.invitations.list_organization_invitations(organization_id)) == []

    def test_cancel_requires_team_manager(self, app, organization_id, invitation, add_member):
        member = add_member(organization_id)
        with pytest.raises(AccessDeniedError):
            asyncio.run(app.invitations.cancel_invitation(member, invitation.id))

    def test_expire_stale_invitations(self, app, org_storage, organization_id, invitation):
        later = utc_now() + timedelta(days=8)

        assert asyncio.run(app.invitations.expire_stale_invitations(organization_id, later)) == 1
        assert asyncio.run(app.invitations.expire_stale_invitations(organization_id, later)) == 0
        assert asyncio.run(org_storage.get_invitation(invitation.id)).status == InvitationStatus.EXPIRED


class TestTeam:
    """Tests for member role changes and removal."""

    def _member_id(self, org_storage, organization_id, user):
        return asyncio.run(org_storage.get_membership(organization_id, user.user_id)).id

    def test_list_members(self, app, owner, organization_id, add_member):
        add_member(organization_id)
        members = asyncio.run(app.team.list_members(organization_id))
        assert [m.role for m in members] == [MemberRole.OWNER, MemberRole.MEMBER]

    def test_update_member_role(self, app, org_storage, owner, organization_id, add_member):
        member = add_member(organization_id)
        member_id = self._member_id(org_storage, organization_id, member)

        updated = asyncio.run(app.team.update_member_role(owner, member_id, MemberRole.ADMIN))

        assert updated.role == MemberRole.ADMIN
        assert asyncio.run(org_storage.get_member(member_id)).role == MemberRole.ADMIN

    def test_owner_cannot_be_changed(self, app, org_storage, owner, organization_id, add_member):
        admin = add_member(organization_id, MemberRole.ADMIN)
        owner_member_id = self._member_id(org_storage, organization_id, owner)

        with pytest.raises(MembershipError):
            asyncio.run(app.team.update_member_role(admin, owner_member_id, MemberRole.MEMBER))
        with pytest.raises(MembershipError):
            asyncio.run(app.team.remove_member(admin, owner_member_id))

    def test_nobody_is_promoted_to_owner(self, app, org_storage, owner, organization_id, add_member):
        member = add_member(organization_id)
        member_id = self._member_id(org_storage, organization_id, member)

        with pytest.raises(MembershipError):
            asyncio.run(app.team.update_member_role(owner, member_id, MemberRole.OWNER))

    def test_member_cannot_change_roles(self, app, org_storage, organization_id, add_member):
        member = add_member(organization_id)
        other = add_member(organization_id)
        other_id = self._member_id(org_storage, organization_id, other)

        with pytest.raises(AccessDeniedError):
            asyncio.run(app.team.update_member_role(member, other_id, MemberRole.ADMIN))

    def test_remove_member(self, app, org_storage, owner, organization_id, add_member):
        member = add_member(organization_id)
        member_id = self._member_id(org_storage, organization_id, member)

        assert asyncio.run(app.team.remove_member(owner, member_id))
        assert asyncio.run(org_storage.get_member(member_id)) is None

    def test_unknown_member(self, app, owner):
        with pytest.raises(MembershipError):
            asyncio.run(app.team.remove_member(owner, uuid4()))


class TestWorkspaceBootstrapFlow:
    """Tests for the sign-in flow."""

    def test_new_user_gets_organization_and_categories(self, app, owner):
        state = asyncio.run(app.bootstrap.start_session(owner))

        assert state.organization_id is not None
        assert not state.awaiting_invitation_decision
        assert state.seeded_categories == 5
        assert [m.role for m in state.memberships] == [MemberRole.OWNER]

    def test_returning_user_is_not_reseeded(self, app, owner):
        first = asyncio.run(app.bootstrap.start_session(owner))
        second = asyncio.run(app.bootstrap.start_session(owner))

        assert second.organization_id == first.organization_id
        assert second.seeded_categories == 0

    def test_invited_user_without_membership_pauses(self, app, backend, invitee, invitation):
        organizations_before = len(backend.rows("organizations"))

        state = asyncio.run(app.bootstrap.start_session(invitee))

        assert state.awaiting_invitation_decision
        assert state.organization_id is None
        assert state.pending_count == 1
        assert len(backend.rows("organizations")) == organizations_before

    def test_accepting_joins_inviting_organization(self, app, backend, invitee, invitation, organization_id):
        organizations_before = len(backend.rows("organizations"))

        state = asyncio.run(app.bootstrap.resolve_invitations(invitee, accept_ids=[invitation.id]))

        assert state.organization_id == organization_id
        assert state.errors == []
        assert state.pending_count == 0
        assert len(backend.rows("organizations")) == organizations_before

    def test_declining_everything_creates_own_organization(self, app, invitee, invitation, organization_id):
        state = asyncio.run(app.bootstrap.resolve_invitations(invitee, decline_ids=[invitation.id]))

        assert state.organization_id not in (None, organization_id)
        assert [m.role for m in state.memberships] == [MemberRole.OWNER]

    def test_failed_answers_are_reported(self, app, invitee, invitation, organization_id):
        state = asyncio.run(app.bootstrap.resolve_invitations(
            invitee, accept_ids=[uuid4(), invitation.id]
        ))

        assert len(state.errors) == 1
        assert "not found" in state.errors[0]
        assert state.organization_id == organization_id

    def test_bootstrap_failure_is_audited(self, app, owner):
        failure = OrganizationBootstrapError(owner.user_id)
        with patch.object(app.organizations, "ensure_user_organization", AsyncMock(side_effect=failure)), \
                patch.object(app.audit_logger, "log_error", AsyncMock()) as log_error:
            with pytest.raises(OrganizationBootstrapError):
                asyncio.run(app.bootstrap.start_session(owner))

        assert log_error.await_args.args[0] == "organization_bootstrap_failed"
