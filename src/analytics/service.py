"""
Analytics Service

Loads an organization's data through the storages and hands it to the
aggregator.

DESIGN DECISION: A failed backend read never propagates out of
load_analytics or load_dashboard. The screen shows an empty report with
the error message instead; the failure is logged and audited.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

import structlog

from src.analytics.aggregator import AnalyticsAggregator
from src.audit import AuditLogger
from src.finance.budgets import calculate_budget_totals
from src.models.analytics import (
    AnalyticsReport,
    DashboardSnapshot,
    ProjectPortfolio,
    TaskWorkload,
)
from src.models.finance import BudgetTotals
from src.models.organization import PermissionAction, ResourceType, UserContext
from src.services.storage import FinanceStorage, ProjectStorage, StorageError
from src.tenancy.organizations import OrganizationService
from src.tenancy.permissions import PermissionService


logger = structlog.get_logger(__name__)


class AnalyticsService:
    """Organization analytics, dashboard and summaries."""

    def __init__(
        self,
        organizations: OrganizationService,
        permissions: PermissionService,
        finance_storage: FinanceStorage,
        project_storage: ProjectStorage,
        aggregator: Optional[AnalyticsAggregator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._organizations = organizations
        self._permissions = permissions
        self._finance = finance_storage
        self._projects = project_storage
        self._aggregator = aggregator or AnalyticsAggregator()
        self._audit = audit_logger or AuditLogger()

    async def load_analytics(
        self,
        user: UserContext,
        active_organization_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> AnalyticsReport:
        """
        Build the analytics report for the user's active organization.

        Raises:
            AccessDeniedError: If the user may not view analytics
            OrganizationBootstrapError: If no organization can be resolved
        """
        organization_id = None
        try:
            organization_id = await self._organizations.ensure_user_organization(
                user.user_id, active_organization_id
            )
            await self._permissions.require_permission(
                organization_id, user.user_id, ResourceType.ANALYTICS, PermissionAction.VIEW
            )

            budgets = await self._finance.list_budgets(organization_id)
            categories = await self._finance.list_categories(organization_id)
            items = await self._finance.list_budget_items(b.id for b in budgets)
            expenses = await self._finance.list_expenses(organization_id, categories)
        except StorageError as e:
            logger.error(
                "analytics_load_failed",
                user_id=str(user.user_id),
                organization_id=str(organization_id) if organization_id else None,
                error=str(e),
            )
            await self._audit.log_analytics_failed(organization_id, user.user_id, str(e))
            return AnalyticsReport.empty(str(e))

        stats = self._aggregator.build_stats(budgets, items, categories, expenses, now)
        return AnalyticsReport(
            organization_id=organization_id,
            stats=stats,
            health=self._aggregator.business_health(stats),
        )

    async def load_dashboard(
        self,
        user: UserContext,
        active_organization_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> DashboardSnapshot:
        organization_id = None
        try:
            organization_id = await self._organizations.ensure_user_organization(
                user.user_id, active_organization_id
            )
            budgets = await self._finance.list_budgets(organization_id)
            items = await self._finance.list_budget_items(b.id for b in budgets)
            expenses = await self._finance.list_expenses(organization_id)
            projects = await self._projects.list_projects(organization_id)
            employees = await self._projects.list_employees(organization_id)
        except StorageError as e:
            logger.error(
                "dashboard_load_failed",
                user_id=str(user.user_id),
                organization_id=str(organization_id) if organization_id else None,
                error=str(e),
            )
            await self._audit.log_backend_error(
                "load_dashboard", str(e), error_code=e.code, organization_id=organization_id
            )
            return DashboardSnapshot(organization_id=organization_id)

        snapshot = self._aggregator.dashboard(budgets, items, expenses, projects, employees, now)
        return snapshot.model_copy(update={"organization_id": organization_id})

    async def budget_summary(self, budget_id: UUID) -> BudgetTotals:
        items = await self._finance.list_budget_items([budget_id])
        return calculate_budget_totals(items)

    async def project_summary(
        self, organization_id: UUID, today: Optional[date] = None
    ) -> ProjectPortfolio:
        projects = await self._projects.list_projects(organization_id)
        return self._aggregator.project_portfolio(projects, today)

    async def task_summary(self, project_id: UUID) -> TaskWorkload:
        tasks = await self._projects.list_tasks(project_id)
        return self._aggregator.task_workload(tasks)
