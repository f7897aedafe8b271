"""
Domain Storages

Thin typed layer over a TableBackend. Each storage owns a group of
tables, turns rows into pydantic models on the way out and models into
JSON rows on the way in.

DESIGN DECISION: Joins happen here, in Python, with a second query
(``in`` filter on the collected ids). That keeps the same code working
against the REST gateway and the in-memory backend, and the volume per
organization is small.
"""

from datetime import datetime
from typing import Iterable, Optional, Type, TypeVar
from uuid import UUID

from pydantic import BaseModel

from src.models.audit import AuditEvent, AuditEventType
from src.models.finance import Budget, BudgetItem, Category, Expense
from src.models.organization import (
    Invitation,
    InvitationStatus,
    MemberRole,
    Organization,
    OrganizationMember,
    OrganizationMembership,
    ResourcePermission,
)
from src.models.projects import Employee, Project, Task
from src.services.storage.interface import (
    TableBackend,
    eq,
    escape_like,
    ilike,
    in_,
    lt,
)


ORGANIZATIONS = "organizations"
ORGANIZATION_MEMBERS = "organization_members"
INVITATIONS = "invitations"
RESOURCE_PERMISSIONS = "resource_permissions"
CATEGORIES = "categories"
BUDGETS = "budgets"
BUDGET_ITEMS = "budget_items"
EXPENSES = "expenses"
PROJECTS = "projects"
TASKS = "tasks"
EMPLOYEES = "employees"

ModelT = TypeVar("ModelT", bound=BaseModel)


def row_to_model(model: Type[ModelT], row: dict) -> ModelT:
    """
    Validate a backend row into a model.

    NULL columns are dropped first so model defaults apply, which is how
    older rows with missing numeric values still load.
    """
    return model.model_validate({k: v for k, v in row.items() if v is not None})


def model_to_row(model: BaseModel, exclude: Optional[set[str]] = None) -> dict:
    """Serialize a model for insert; unset optional columns are left to the backend."""
    return model.model_dump(mode="json", exclude=exclude, exclude_none=True)


def _first(rows: list[dict], model: Type[ModelT]) -> Optional[ModelT]:
    return row_to_model(model, rows[0]) if rows else None


class OrganizationStorage:
    """Organizations, memberships, invitations and resource permissions."""

    def __init__(self, backend: TableBackend):
        self._backend = backend

    # -- organizations -------------------------------------------------------

    async def create_organization(self, name: str, owner_id: UUID) -> Optional[Organization]:
        """
        Insert an organization.

        Returns None when the backend accepted the insert but returned no
        row (row-level security may hide it until the membership exists).
        """
        rows = await self._backend.insert(
            ORGANIZATIONS,
            [{"name": name, "owner_id": str(owner_id)}],
        )
        return _first(rows, Organization)

    async def get_organization(self, organization_id: UUID) -> Optional[Organization]:
        rows = await self._backend.select(
            ORGANIZATIONS, [eq("id", organization_id)], limit=1
        )
        return _first(rows, Organization)

    async def get_organizations(self, organization_ids: Iterable[UUID]) -> dict[UUID, Organization]:
        ids = list(organization_ids)
        if not ids:
            return {}
        rows = await self._backend.select(ORGANIZATIONS, [in_("id", ids)])
        organizations = [row_to_model(Organization, row) for row in rows]
        return {org.id: org for org in organizations}

    # -- memberships ---------------------------------------------------------

    async def get_membership(
        self, organization_id: UUID, user_id: UUID
    ) -> Optional[OrganizationMember]:
        rows = await self._backend.select(
            ORGANIZATION_MEMBERS,
            [eq("organization_id", organization_id), eq("user_id", user_id)],
            limit=1,
        )
        return _first(rows, OrganizationMember)

    async def get_member(self, member_id: UUID) -> Optional[OrganizationMember]:
        rows = await self._backend.select(
            ORGANIZATION_MEMBERS, [eq("id", member_id)], limit=1
        )
        return _first(rows, OrganizationMember)

    async def get_primary_membership(self, user_id: UUID) -> Optional[OrganizationMember]:
        """The user's earliest membership, by creation time."""
        rows = await self._backend.select(
            ORGANIZATION_MEMBERS,
            [eq("user_id", user_id)],
            order_by="created_at",
            limit=1,
        )
        return _first(rows, OrganizationMember)

    async def list_memberships(self, user_id: UUID) -> list[OrganizationMembership]:
        """Memberships of a user together with their organizations, oldest first."""
        rows = await self._backend.select(
            ORGANIZATION_MEMBERS,
            [eq("user_id", user_id)],
            order_by="created_at",
        )
        members = [row_to_model(OrganizationMember, row) for row in rows]
        organizations = await self.get_organizations(m.organization_id for m in members)
        return [
            OrganizationMembership(organization=organizations[m.organization_id], role=m.role)
            for m in members
            if m.organization_id in organizations
        ]

    async def list_members(self, organization_id: UUID) -> list[OrganizationMember]:
        rows = await self._backend.select(
            ORGANIZATION_MEMBERS,
            [eq("organization_id", organization_id)],
            order_by="created_at",
        )
        return [row_to_model(OrganizationMember, row) for row in rows]

    async def upsert_member(
        self, organization_id: UUID, user_id: UUID, role: MemberRole
    ) -> Optional[OrganizationMember]:
        rows = await self._backend.upsert(
            ORGANIZATION_MEMBERS,
            [{
                "organization_id": str(organization_id),
                "user_id": str(user_id),
                "role": role.value,
            }],
            on_conflict=("organization_id", "user_id"),
        )
        return _first(rows, OrganizationMember)

    async def update_member_role(
        self, member_id: UUID, role: MemberRole
    ) -> Optional[OrganizationMember]:
        rows = await self._backend.update(
            ORGANIZATION_MEMBERS, {"role": role.value}, [eq("id", member_id)]
        )
        return _first(rows, OrganizationMember)

    async def delete_member(self, member_id: UUID) -> bool:
        return await self._backend.delete(ORGANIZATION_MEMBERS, [eq("id", member_id)]) > 0

    # -- invitations ---------------------------------------------------------

    async def create_invitation(self, invitation: Invitation) -> Invitation:
        rows = await self._backend.insert(
            INVITATIONS, [model_to_row(invitation, exclude={"organization"})]
        )
        return _first(rows, Invitation) or invitation

    async def get_invitation(self, invitation_id: UUID) -> Optional[Invitation]:
        rows = await self._backend.select(INVITATIONS, [eq("id", invitation_id)], limit=1)
        return _first(rows, Invitation)

    async def list_invitations_for_email(
        self, email: str, status: InvitationStatus = InvitationStatus.PENDING
    ) -> list[Invitation]:
        """Invitations addressed to an e-mail (case-insensitive), organizations attached."""
        rows = await self._backend.select(
            INVITATIONS,
            [ilike("email", escape_like(email.strip())), eq("status", status)],
            order_by="created_at",
        )
        invitations = [row_to_model(Invitation, row) for row in rows]
        organizations = await self.get_organizations(
            {inv.organization_id for inv in invitations}
        )
        return [
            inv.model_copy(update={"organization": organizations.get(inv.organization_id)})
            for inv in invitations
        ]

    async def list_organization_invitations(
        self,
        organization_id: UUID,
        status: Optional[InvitationStatus] = InvitationStatus.PENDING,
    ) -> list[Invitation]:
        filters = [eq("organization_id", organization_id)]
        if status is not None:
            filters.append(eq("status", status))
        rows = await self._backend.select(
            INVITATIONS, filters, order_by="created_at", descending=True
        )
        return [row_to_model(Invitation, row) for row in rows]

    async def find_pending_invitation(
        self, organization_id: UUID, email: str
    ) -> Optional[Invitation]:
        rows = await self._backend.select(
            INVITATIONS,
            [
                eq("organization_id", organization_id),
                eq("email", email.strip().lower()),
                eq("status", InvitationStatus.PENDING),
            ],
            limit=1,
        )
        return _first(rows, Invitation)

    async def set_invitation_status(
        self, invitation_id: UUID, status: InvitationStatus
    ) -> Optional[Invitation]:
        rows = await self._backend.update(
            INVITATIONS, {"status": status.value}, [eq("id", invitation_id)]
        )
        return _first(rows, Invitation)

    async def expire_invitations(
        self, organization_id: UUID, now: datetime
    ) -> list[Invitation]:
        """Mark every overdue pending invitation of an organization as expired."""
        rows = await self._backend.update(
            INVITATIONS,
            {"status": InvitationStatus.EXPIRED.value},
            [
                eq("organization_id", organization_id),
                eq("status", InvitationStatus.PENDING),
                lt("expires_at", now),
            ],
        )
        return [row_to_model(Invitation, row) for row in rows]

    async def delete_invitation(self, invitation_id: UUID) -> bool:
        return await self._backend.delete(INVITATIONS, [eq("id", invitation_id)]) > 0

    # -- permissions ---------------------------------------------------------

    async def list_permissions(
        self, organization_id: UUID, user_id: UUID
    ) -> list[ResourcePermission]:
        rows = await self._backend.select(
            RESOURCE_PERMISSIONS,
            [eq("organization_id", organization_id), eq("user_id", user_id)],
        )
        return [row_to_model(ResourcePermission, row) for row in rows]

    async def replace_permissions(
        self,
        organization_id: UUID,
        user_id: UUID,
        permissions: list[ResourcePermission],
    ) -> list[ResourcePermission]:
        """Delete the user's rows, then insert the given ones."""
        await self._backend.delete(
            RESOURCE_PERMISSIONS,
            [eq("organization_id", organization_id), eq("user_id", user_id)],
        )
        return await self.insert_permissions(permissions)

    async def insert_permissions(
        self, permissions: list[ResourcePermission]
    ) -> list[ResourcePermission]:
        rows = await self._backend.insert(
            RESOURCE_PERMISSIONS, [model_to_row(p) for p in permissions]
        )
        return [row_to_model(ResourcePermission, row) for row in rows]


class FinanceStorage:
    """Categories, budgets, budget items and expenses of an organization."""

    def __init__(self, backend: TableBackend):
        self._backend = backend

    async def list_categories(self, organization_id: UUID) -> list[Category]:
        rows = await self._backend.select(
            CATEGORIES, [eq("organization_id", organization_id)], order_by="created_at"
        )
        return [row_to_model(Category, row) for row in rows]

    async def create_categories(
        self, organization_id: UUID, user_id: UUID, names: list[str]
    ) -> list[Category]:
        rows = await self._backend.insert(
            CATEGORIES,
            [
                {"name": name, "user_id": str(user_id), "organization_id": str(organization_id)}
                for name in names
            ],
        )
        return [row_to_model(Category, row) for row in rows]

    async def list_budgets(
        self, organization_id: UUID, include_archived: bool = False
    ) -> list[Budget]:
        filters = [eq("organization_id", organization_id)]
        if not include_archived:
            filters.append(eq("archived", False))
        rows = await self._backend.select(
            BUDGETS, filters, order_by="created_at", descending=True
        )
        return [row_to_model(Budget, row) for row in rows]

    async def get_budget(self, budget_id: UUID) -> Optional[Budget]:
        rows = await self._backend.select(BUDGETS, [eq("id", budget_id)], limit=1)
        return _first(rows, Budget)

    async def create_budget(self, budget: Budget) -> Budget:
        rows = await self._backend.insert(BUDGETS, [model_to_row(budget)])
        return _first(rows, Budget) or budget

    async def list_budget_items(self, budget_ids: Iterable[UUID]) -> list[BudgetItem]:
        ids = list(budget_ids)
        if not ids:
            return []
        rows = await self._backend.select(
            BUDGET_ITEMS, [in_("budget_id", ids)], order_by="order_index"
        )
        return [row_to_model(BudgetItem, row) for row in rows]

    async def create_budget_items(self, items: list[BudgetItem]) -> list[BudgetItem]:
        if not items:
            return []
        rows = await self._backend.insert(BUDGET_ITEMS, [model_to_row(i) for i in items])
        return [row_to_model(BudgetItem, row) for row in rows]

    async def list_expenses(
        self,
        organization_id: UUID,
        categories: Optional[list[Category]] = None,
    ) -> list[Expense]:
        """Expenses of an organization, newest first, with category names attached."""
        if categories is None:
            categories = await self.list_categories(organization_id)
        names = {category.id: category.name for category in categories}

        rows = await self._backend.select(
            EXPENSES,
            [eq("organization_id", organization_id)],
            order_by="date",
            descending=True,
        )
        expenses = [row_to_model(Expense, row) for row in rows]
        return [
            expense.model_copy(update={"category_name": names.get(expense.category_id)})
            for expense in expenses
        ]


class ProjectStorage:
    """Projects, tasks and employees."""

    def __init__(self, backend: TableBackend):
        self._backend = backend

    async def list_projects(self, organization_id: UUID) -> list[Project]:
        rows = await self._backend.select(
            PROJECTS, [eq("organization_id", organization_id)],
            order_by="created_at", descending=True,
        )
        return [row_to_model(Project, row) for row in rows]

    async def get_project(self, project_id: UUID) -> Optional[Project]:
        rows = await self._backend.select(PROJECTS, [eq("id", project_id)], limit=1)
        return _first(rows, Project)

    async def link_budget(self, project_id: UUID, budget_id: UUID) -> Optional[Project]:
        rows = await self._backend.update(
            PROJECTS, {"budget_id": str(budget_id)}, [eq("id", project_id)]
        )
        return _first(rows, Project)

    async def list_tasks(self, project_id: UUID) -> list[Task]:
        rows = await self._backend.select(
            TASKS, [eq("project_id", project_id)], order_by="created_at"
        )
        return [row_to_model(Task, row) for row in rows]

    async def list_employees(self, organization_id: UUID) -> list[Employee]:
        rows = await self._backend.select(
            EMPLOYEES, [eq("organization_id", organization_id)], order_by="last_name"
        )
        return [row_to_model(Employee, row) for row in rows]


class AuditStorage:
    """
    Append-only audit table.

    Only used when audit persistence is switched on; the table is not part
    of the application schema by default.
    """

    def __init__(self, backend: TableBackend, table_name: str = "audit_events"):
        self._backend = backend
        self._table = table_name

    async def append_event(self, event: AuditEvent) -> bool:
        await self._backend.insert(self._table, [event.to_row()])
        return True

    async def get_events_by_entity(
        self, entity_type: str, entity_id: UUID
    ) -> list[AuditEvent]:
        rows = await self._backend.select(
            self._table,
            [eq("entity_type", entity_type), eq("entity_id", entity_id)],
            order_by="timestamp",
        )
        return [self._row_to_event(row) for row in rows]

    async def get_recent_events(
        self,
        organization_id: UUID,
        limit: int = 100,
        event_types: Optional[list[AuditEventType]] = None,
    ) -> list[AuditEvent]:
        filters = [eq("organization_id", organization_id)]
        if event_types:
            filters.append(in_("event_type", event_types))
        rows = await self._backend.select(
            self._table, filters, order_by="timestamp", descending=True, limit=limit
        )
        return [self._row_to_event(row) for row in rows]

    @staticmethod
    def _row_to_event(row: dict) -> AuditEvent:
        return AuditEvent.from_row(row)
