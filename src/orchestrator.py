"""
Main Orchestrator for Budget Desk

This module ties together all the components and defines the
end-to-end flow that runs right after sign-in:

    pending invitations? ──yes, and no memberships──> ask the user
            │                                             │
            no                                accept / decline each
            ▼                                             ▼
    ensure organization ◄─────────────────────────────────┘
            ▼
    seed default categories

DESIGN DECISION: A user who was invited and has no organization yet is
never given a default organization behind their back. The flow stops
and reports the invitations; only after they are answered (or all
declined) is an organization resolved or created.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, MutableMapping, Optional
from uuid import UUID

import structlog

from src.analytics import AnalyticsAggregator, AnalyticsService
from src.audit import AuditLogger
from src.config import get_settings
from src.finance import BudgetPlanner
from src.models.organization import SessionState, UserContext
from src.services.storage import (
    AuditStorage,
    FinanceStorage,
    InMemoryBackend,
    OrganizationStorage,
    PostgrestClient,
    ProjectStorage,
    TableBackend,
)
from src.tenancy import (
    AccessDeniedError,
    ActiveOrganizationStore,
    InvitationError,
    InvitationService,
    OrganizationBootstrapError,
    OrganizationService,
    PermissionService,
    TeamService,
)
from src.validation import InvitationValidator, ProjectDraftValidator


logger = structlog.get_logger(__name__)


class WorkspaceBootstrapFlow:
    """
    Orchestrates the session bootstrap.

    Flow:
    1. Load pending invitations and memberships
    2. Invited but no memberships → PAUSE, let the user decide
    3. Accept / decline the chosen invitations
    4. Ensure the active organization (create one if needed)
    5. Seed default categories into an empty organization
    """

    def __init__(
        self,
        organizations: OrganizationService,
        invitations: InvitationService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._organizations = organizations
        self._invitations = invitations
        self._audit = audit_logger or AuditLogger()

    async def _finish(
        self,
        user: UserContext,
        preferred_organization_id: Optional[UUID],
        state: SessionState,
    ) -> SessionState:
        try:
            organization_id = await self._organizations.ensure_user_organization(
                user.user_id, preferred_organization_id
            )
        except OrganizationBootstrapError as e:
            await self._audit.log_error(
                "organization_bootstrap_failed",
                str(e),
                details={"user_id": str(user.user_id)},
            )
            raise
        seeded = await self._organizations.ensure_default_categories(
            user.user_id, organization_id
        )
        memberships = await self._organizations.list_user_organizations(user.user_id)
        return state.model_copy(update={
            "organization_id": organization_id,
            "memberships": memberships,
            "seeded_categories": len(seeded),
        })

    async def start_session(
        self,
        user: UserContext,
        preferred_organization_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> SessionState:
        """
        Bootstrap the workspace of a signed-in user.

        Returns:
            SessionState; ``awaiting_invitation_decision`` tells the
            caller to show the invitations before anything else
        """
        pending = await self._invitations.list_pending_invitations(user.email, now)
        memberships = await self._organizations.list_user_organizations(user.user_id)

        if pending and not memberships:
            logger.info(
                "session_awaiting_invitation_decision",
                user_id=str(user.user_id),
                pending=len(pending),
            )
            return SessionState(
                pending_invitations=pending,
                awaiting_invitation_decision=True,
            )

        state = SessionState(pending_invitations=pending, memberships=memberships)
        return await self._finish(user, preferred_organization_id, state)

    async def resolve_invitations(
        self,
        user: UserContext,
        accept_ids: Iterable[UUID] = (),
        decline_ids: Iterable[UUID] = (),
        now: Optional[datetime] = None,
    ) -> SessionState:
        """
        Answer invitations, then resolve the active organization.

        An invitation that cannot be answered (expired, withdrawn, meant
        for someone else) is reported in ``errors`` and the rest still
        go through. Declining everything ends with a default organization.
        """
        errors = []
        accepted_organization = None

        for invitation_id in accept_ids:
            try:
                member = await self._invitations.accept_invitation(user, invitation_id, now)
                accepted_organization = member.organization_id
            except (InvitationError, AccessDeniedError) as e:
                logger.warning(
                    "invitation_accept_failed",
                    invitation_id=str(invitation_id),
                    error=str(e),
                )
                errors.append(str(e))

        for invitation_id in decline_ids:
            try:
                await self._invitations.decline_invitation(user, invitation_id)
            except (InvitationError, AccessDeniedError) as e:
                logger.warning(
                    "invitation_decline_failed",
                    invitation_id=str(invitation_id),
                    error=str(e),
                )
                errors.append(str(e))

        pending = await self._invitations.list_pending_invitations(user.email, now)
        state = SessionState(pending_invitations=pending, errors=errors)
        return await self._finish(user, accepted_organization, state)


@dataclass
class AppComponents:
    """Everything an application front end needs, wired to one backend."""
    backend: TableBackend
    audit_logger: AuditLogger
    active_store: ActiveOrganizationStore
    organizations: OrganizationService
    permissions: PermissionService
    invitations: InvitationService
    team: TeamService
    analytics: AnalyticsService
    budget_planner: BudgetPlanner
    project_validator: ProjectDraftValidator
    bootstrap: WorkspaceBootstrapFlow


def create_app_components(
    use_backend: bool = True,
    session: Optional[MutableMapping[str, Any]] = None,
    access_token: Optional[str] = None,
    backend: Optional[TableBackend] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_backend: Whether to connect to the hosted backend.
                    Set to False to run on the in-memory backend.
                    An unconfigured backend is an error, not a
                    reason to fall back.
        session: Mapping that remembers the active organization
        access_token: Signed-in user's token for row-level security
        backend: Explicit backend, overrides use_backend

    Returns:
        AppComponents sharing one backend and one audit logger

    Raises:
        pydantic.ValidationError: use_backend is set but the backend
            settings are missing or invalid
    """
    app_settings = get_settings().app

    if backend is None:
        if use_backend:
            # Missing backend settings raise here
            backend = PostgrestClient(access_token=access_token)
        else:
            logger.info("using_in_memory_backend")
            backend = InMemoryBackend()

    audit_storage = None
    if app_settings.persist_audit_events:
        audit_storage = AuditStorage(backend, app_settings.audit_table_name)
    audit_logger = AuditLogger(audit_storage)

    organization_storage = OrganizationStorage(backend)
    finance_storage = FinanceStorage(backend)
    project_storage = ProjectStorage(backend)
    active_store = ActiveOrganizationStore(session)

    permissions = PermissionService(organization_storage, audit_logger)
    organizations = OrganizationService(
        organization_storage,
        finance_storage,
        active_store=active_store,
        audit_logger=audit_logger,
        settings=app_settings,
    )
    invitations = InvitationService(
        organization_storage,
        permissions,
        active_store=active_store,
        validator=InvitationValidator(organization_storage),
        audit_logger=audit_logger,
        settings=app_settings,
    )

    return AppComponents(
        backend=backend,
        audit_logger=audit_logger,
        active_store=active_store,
        organizations=organizations,
        permissions=permissions,
        invitations=invitations,
        team=TeamService(organization_storage, permissions, audit_logger),
        analytics=AnalyticsService(
            organizations,
            permissions,
            finance_storage,
            project_storage,
            aggregator=AnalyticsAggregator(app_settings),
            audit_logger=audit_logger,
        ),
        budget_planner=BudgetPlanner(finance_storage, project_storage, audit_logger),
        project_validator=ProjectDraftValidator(),
        bootstrap=WorkspaceBootstrapFlow(organizations, invitations, audit_logger),
    )
