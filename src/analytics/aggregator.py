"""
Analytics Aggregation

DESIGN DECISION: Aggregation happens client-side over plain model lists.
The backend only filters by organization; grouping by status, category
and month is done here. This keeps every number reproducible in a unit
test without a database, and the row counts per organization are small.

All money stays Decimal. Ratios (margin, trend, shares) are floats in
percent.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from src.config import AppSettings, get_settings
from src.finance.budgets import item_is_personnel
from src.models.analytics import (
    AlertLevel,
    AnalyticsStats,
    BusinessHealth,
    CategoryAmount,
    DashboardAlert,
    DashboardSnapshot,
    DashboardStats,
    MonthlyFigures,
    ProjectPortfolio,
    RecentActivity,
    StatusCount,
    TaskWorkload,
)
from src.models.finance import Budget, BudgetItem, BudgetStatus, Category, Expense
from src.models.organization import utc_now
from src.models.projects import Employee, Project, ProjectStatus, Task, TaskStatus


ZERO = Decimal("0")
DASHBOARD_WINDOW_DAYS = 30


def _sum(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def _percent(part: Decimal, whole: Decimal) -> float:
    return float(part / whole * 100) if whole > 0 else 0.0


def month_key(moment: datetime) -> str:
    return f"{moment.year:04d}-{moment.month:02d}"


def month_label(moment: datetime) -> str:
    return moment.strftime("%b %Y")


class AnalyticsAggregator:
    """
    Pure aggregation over already-loaded organization data.

    Example:
        aggregator = AnalyticsAggregator()
        stats = aggregator.build_stats(budgets, items, categories, expenses)
        health = aggregator.business_health(stats)
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    # -- organization analytics ---------------------------------------------

    def build_stats(
        self,
        budgets: list[Budget],
        items: list[BudgetItem],
        categories: list[Category],
        expenses: list[Expense],
        now: Optional[datetime] = None,
    ) -> AnalyticsStats:
        """
        Aggregate budgets, their items and expenses of one organization.

        Args:
            budgets: Non-archived budgets of the organization
            items: Items of exactly those budgets
            categories: Categories of the organization (for item labels)
            expenses: Expenses, with category_name attached where known
            now: Month used for items without a creation time
        """
        now = now or utc_now()

        total_revenue = _sum(item.total_price for item in items)
        total_costs = _sum(item.internal_total_price for item in items)
        total_personnel = _sum(
            item.internal_total_price for item in items if item_is_personnel(item)
        )

        return AnalyticsStats(
            total_budgets=len(budgets),
            total_revenue=total_revenue,
            total_costs=total_costs,
            total_profit=total_revenue - total_costs,
            total_personnel_costs=total_personnel,
            total_expenses=_sum(expense.amount for expense in expenses),
            budgets_by_status=self.budgets_by_status(budgets),
            expenses_by_category=self.expenses_by_category(expenses),
            internal_costs_by_category=self.internal_costs_by_category(items, categories),
            monthly_data=self.monthly_figures(items, now),
        )

    @staticmethod
    def budgets_by_status(budgets: list[Budget]) -> list[StatusCount]:
        """Counts for every status in lifecycle order, zeros included."""
        return [
            StatusCount(status=status, count=sum(1 for b in budgets if b.status == status))
            for status in BudgetStatus
        ]

    def expenses_by_category(self, expenses: list[Expense]) -> list[CategoryAmount]:
        """Expense sums per category name, in first-seen order."""
        totals: dict[str, Decimal] = {}
        for expense in expenses:
            name = expense.category_name or self._settings.other_expenses_label
            totals[name] = totals.get(name, ZERO) + expense.amount
        return [CategoryAmount(category=name, amount=amount) for name, amount in totals.items()]

    def internal_costs_by_category(
        self,
        items: list[BudgetItem],
        categories: list[Category],
    ) -> list[CategoryAmount]:
        """Positive internal cost per item category, largest first."""
        names = {category.id: category.name for category in categories}
        totals: dict[str, Decimal] = {}
        for item in items:
            name = names.get(item.category_id) or self._settings.uncategorized_label
            totals[name] = totals.get(name, ZERO) + item.internal_total_price

        positive = [
            CategoryAmount(category=name, amount=amount)
            for name, amount in totals.items()
            if amount > 0
        ]
        # sorted() is stable, so equal amounts keep first-seen order
        return sorted(positive, key=lambda entry: entry.amount, reverse=True)

    def monthly_figures(self, items: list[BudgetItem], now: datetime) -> list[MonthlyFigures]:
        """Revenue and cost per creation month, the most recent N months."""
        months: dict[str, MonthlyFigures] = {}
        for item in items:
            created = item.created_at or now
            key = month_key(created)
            current = months.get(key) or MonthlyFigures(
                month_key=key, month_label=month_label(created)
            )
            revenue = current.revenue + item.total_price
            costs = current.costs + item.internal_total_price
            months[key] = current.model_copy(update={
                "revenue": revenue,
                "costs": costs,
                "profit": revenue - costs,
            })

        ordered = [months[key] for key in sorted(months)]
        return ordered[-self._settings.analytics_month_window:]

    # -- business health ----------------------------------------------------

    @staticmethod
    def business_health(stats: AnalyticsStats) -> BusinessHealth:
        monthly = stats.monthly_data
        count = len(monthly)

        average_revenue = _sum(m.revenue for m in monthly) / count if count else ZERO
        average_profit = _sum(m.profit for m in monthly) / count if count else ZERO

        best_month = None
        for month in monthly:
            if best_month is None or month.profit > best_month.profit:
                best_month = month

        revenue_trend = 0.0
        if count >= 2:
            previous, last = monthly[-2].revenue, monthly[-1].revenue
            revenue_trend = float((last - previous) / (previous or Decimal("1")) * 100)

        return BusinessHealth(
            average_monthly_revenue=average_revenue,
            average_monthly_profit=average_profit,
            best_month=best_month,
            revenue_trend=revenue_trend,
            profit_margin=_percent(stats.total_profit, stats.total_revenue),
            expense_ratio=_percent(stats.total_expenses, stats.total_revenue),
            personnel_cost_share=_percent(stats.total_personnel_costs, stats.total_costs),
        )

    # -- dashboard ----------------------------------------------------------

    def dashboard(
        self,
        budgets: list[Budget],
        items: list[BudgetItem],
        expenses: list[Expense],
        projects: list[Project],
        employees: list[Employee],
        now: Optional[datetime] = None,
    ) -> DashboardSnapshot:
        """
        Figures for the dashboard cards, alerts and activity feed.

        Revenue counts only items of approved budgets.
        """
        now = now or utc_now()

        approved_ids = {b.id for b in budgets if b.status == BudgetStatus.APPROVED}
        total_revenue = _sum(i.total_price for i in items if i.budget_id in approved_ids)
        total_expenses = _sum(e.amount for e in expenses)

        window = timedelta(days=DASHBOARD_WINDOW_DAYS)
        last_start, previous_start = now - window, now - 2 * window
        last_period = _sum(
            e.amount for e in expenses
            if e.created_at is not None and e.created_at >= last_start
        )
        previous_period = _sum(
            e.amount for e in expenses
            if e.created_at is not None and previous_start <= e.created_at < last_start
        )

        stats = DashboardStats(
            total_budgets=len(budgets),
            active_budgets=sum(
                1 for b in budgets if b.status in (BudgetStatus.SENT, BudgetStatus.APPROVED)
            ),
            total_revenue=total_revenue,
            total_expenses=total_expenses,
            expenses_change=_percent(last_period - previous_period, previous_period),
            active_projects=sum(1 for p in projects if p.status == ProjectStatus.ACTIVE),
            total_employees=len(employees),
            budget_utilization=_percent(total_expenses, total_revenue),
            profit_margin=_percent(total_revenue - total_expenses, total_revenue),
        )

        return DashboardSnapshot(
            stats=stats,
            alerts=self.alerts(budgets, projects, now),
            recent_activity=self.recent_activity(budgets),
        )

    def alerts(
        self,
        budgets: list[Budget],
        projects: list[Project],
        now: datetime,
    ) -> list[DashboardAlert]:
        threshold = Decimal(str(self._settings.budget_alert_threshold))
        alerts = []

        for project in projects:
            if project.total_budget > 0 and project.spent_amount > project.total_budget * threshold:
                alerts.append(DashboardAlert(
                    entity_id=project.id,
                    level=AlertLevel.WARNING,
                    message=(
                        f'Project "{project.name}" has used more than '
                        f"{threshold * 100:.0f}% of its budget"
                    ),
                    timestamp=now,
                ))

        for budget in budgets:
            if budget.status == BudgetStatus.SENT:
                alerts.append(DashboardAlert(
                    entity_id=budget.id,
                    level=AlertLevel.INFO,
                    message=f'Budget "{budget.name}" is awaiting approval',
                    timestamp=budget.created_at or now,
                ))

        return alerts

    def recent_activity(self, budgets: list[Budget]) -> list[RecentActivity]:
        dated = [b for b in budgets if b.created_at is not None]
        undated = [b for b in budgets if b.created_at is None]
        newest = sorted(dated, key=lambda b: b.created_at, reverse=True) + undated

        return [
            RecentActivity(
                entity_id=budget.id,
                timestamp=budget.created_at,
                details=f'Budget "{budget.name}" for {budget.client_name}',
            )
            for budget in newest[:self._settings.recent_activity_limit]
        ]

    # -- projects and tasks -------------------------------------------------

    def project_portfolio(
        self,
        projects: list[Project],
        today: Optional[date] = None,
    ) -> ProjectPortfolio:
        today = today or utc_now().date()
        horizon = today + timedelta(days=self._settings.upcoming_project_window_days)

        return ProjectPortfolio(
            total_budget=_sum(p.total_budget for p in projects),
            total_spent=_sum(p.spent_amount for p in projects),
            status_counts={
                status: sum(1 for p in projects if p.status == status)
                for status in ProjectStatus
            },
            overspent=sum(
                1 for p in projects
                if p.total_budget > 0 and p.spent_amount > p.total_budget
            ),
            upcoming=sum(
                1 for p in projects
                if p.start_date is not None and today <= p.start_date <= horizon
            ),
        )

    @staticmethod
    def task_workload(tasks: list[Task]) -> TaskWorkload:
        return TaskWorkload(
            estimated_hours=_sum(t.estimated_hours for t in tasks),
            actual_hours=_sum(t.actual_hours for t in tasks),
            completed_tasks=sum(1 for t in tasks if t.status == TaskStatus.COMPLETED),
            total_tasks=len(tasks),
        )
