"""
Organization Bootstrap

Every screen of the workspace works inside one organization. Before any
data is read, the caller's active organization has to be resolved:

1. The organization the caller asked for, or the one remembered in the
   session, if the user is still a member of it
2. Otherwise the user's earliest membership
3. Otherwise a fresh default organization owned by the user

DESIGN DECISION: Creation tolerates unique violations. Two tabs signing
in at the same moment can both reach step 3; the loser falls back to
whatever membership the winner created instead of failing.
"""

from typing import Any, MutableMapping, Optional
from uuid import UUID

import structlog

from src.audit import AuditLogger
from src.config import AppSettings, get_settings
from src.models.finance import Category
from src.models.organization import MemberRole, OrganizationMembership
from src.services.storage import (
    DuplicateError,
    FinanceStorage,
    OrganizationStorage,
    StorageError,
)
from src.tenancy.errors import OrganizationAccessError, OrganizationBootstrapError


ACTIVE_ORGANIZATION_KEY = "active_organization_id"

logger = structlog.get_logger(__name__)


class ActiveOrganizationStore:
    """
    Remembers the active organization id in a session mapping.

    Any MutableMapping works: a plain dict in tests, a web framework's
    session object in an application.
    """

    def __init__(self, session: Optional[MutableMapping[str, Any]] = None):
        self._session = session if session is not None else {}

    def get(self) -> Optional[UUID]:
        raw = self._session.get(ACTIVE_ORGANIZATION_KEY)
        if raw is None:
            return None
        try:
            return UUID(str(raw))
        except ValueError:
            logger.warning("active_organization_unreadable", value=str(raw))
            return None

    def set(self, organization_id: Optional[UUID]) -> None:
        if organization_id is None:
            self._session.pop(ACTIVE_ORGANIZATION_KEY, None)
        else:
            self._session[ACTIVE_ORGANIZATION_KEY] = str(organization_id)


class OrganizationService:
    """Resolves, creates and switches the user's active organization."""

    def __init__(
        self,
        storage: OrganizationStorage,
        finance_storage: FinanceStorage,
        active_store: Optional[ActiveOrganizationStore] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._finance = finance_storage
        self._active = active_store or ActiveOrganizationStore()
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app

    @property
    def active_store(self) -> ActiveOrganizationStore:
        return self._active

    async def is_member(self, user_id: UUID, organization_id: UUID) -> bool:
        """
        Check that the user belongs to the organization.

        A failed lookup counts as "not a member": the caller then falls
        back to another organization instead of failing the session.
        """
        try:
            membership = await self._storage.get_membership(organization_id, user_id)
        except StorageError as e:
            logger.warning(
                "membership_check_failed",
                user_id=str(user_id),
                organization_id=str(organization_id),
                error=str(e),
            )
            return False
        return membership is not None

    async def fetch_primary_organization(self, user_id: UUID) -> Optional[UUID]:
        membership = await self._storage.get_primary_membership(user_id)
        return membership.organization_id if membership else None

    async def ensure_user_organization(
        self,
        user_id: UUID,
        preferred_organization_id: Optional[UUID] = None,
    ) -> UUID:
        """
        Resolve the organization the user works in, creating one if needed.

        Args:
            user_id: Authenticated user
            preferred_organization_id: Organization the caller asked for;
                falls back to the remembered active organization

        Returns:
            Id of the active organization (also stored as active)

        Raises:
            OrganizationBootstrapError: If no organization could be
                resolved or created
            StorageError: If creating the organization fails for a reason
                other than a duplicate
        """
        candidate = preferred_organization_id
        if candidate is None:
            candidate = self._active.get()

        if candidate is not None and await self.is_member(user_id, candidate):
            self._active.set(candidate)
            return candidate

        primary_id = await self.fetch_primary_organization(user_id)
        if primary_id is not None:
            self._active.set(primary_id)
            return primary_id

        name = self._settings.default_organization_name
        created = None
        try:
            created = await self._storage.create_organization(name, user_id)
        except DuplicateError as e:
            logger.warning("organization_create_conflict", user_id=str(user_id), error=str(e))

        organization_id = created.id if created else None
        if organization_id is None:
            organization_id = await self.fetch_primary_organization(user_id)
        if organization_id is None:
            raise OrganizationBootstrapError(user_id)

        try:
            await self._storage.upsert_member(organization_id, user_id, MemberRole.OWNER)
        except DuplicateError as e:
            logger.warning(
                "owner_membership_conflict",
                user_id=str(user_id),
                organization_id=str(organization_id),
                error=str(e),
            )

        self._active.set(organization_id)
        if created is not None:
            await self._audit.log_organization_created(organization_id, user_id, name)
        logger.info(
            "organization_bootstrapped",
            user_id=str(user_id),
            organization_id=str(organization_id),
            created=created is not None,
        )
        return organization_id

    async def list_user_organizations(self, user_id: UUID) -> list[OrganizationMembership]:
        return await self._storage.list_memberships(user_id)

    async def switch_organization(self, user_id: UUID, organization_id: UUID) -> UUID:
        """
        Make another organization active.

        Raises:
            OrganizationAccessError: If the user is not a member
        """
        if not await self.is_member(user_id, organization_id):
            raise OrganizationAccessError(user_id, organization_id)
        self._active.set(organization_id)
        await self._audit.log_organization_selected(organization_id, user_id)
        return organization_id

    async def ensure_default_categories(
        self, user_id: UUID, organization_id: UUID
    ) -> list[Category]:
        """Seed the configured categories into an organization that has none."""
        existing = await self._finance.list_categories(organization_id)
        if existing:
            return []

        names = self._settings.default_categories_list
        if not names:
            return []

        created = await self._finance.create_categories(organization_id, user_id, names)
        await self._audit.log_default_categories_created(organization_id, user_id, names)
        return created
