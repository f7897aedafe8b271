"""
Analytics Models

Read-only results of the aggregation in src.analytics. Nothing here is
ever written back to the backend.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.models.finance import BudgetStatus
from src.models.projects import ProjectStatus


class StatusCount(BaseModel):
    status: BudgetStatus
    count: int = Field(ge=0)


class CategoryAmount(BaseModel):
    category: str
    amount: Decimal


class MonthlyFigures(BaseModel):
    """Revenue and internal cost of budget items created in one month."""

    month_key: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}$",
        description="Sortable YYYY-MM key"
    )
    month_label: str
    revenue: Decimal = Decimal("0")
    costs: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")


class AnalyticsStats(BaseModel):
    """Organization-wide figures over non-archived budgets."""

    total_budgets: int = 0
    total_revenue: Decimal = Decimal("0")
    total_costs: Decimal = Decimal("0")
    total_profit: Decimal = Decimal("0")
    total_personnel_costs: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    budgets_by_status: list[StatusCount] = Field(default_factory=list)
    expenses_by_category: list[CategoryAmount] = Field(default_factory=list)
    internal_costs_by_category: list[CategoryAmount] = Field(default_factory=list)
    monthly_data: list[MonthlyFigures] = Field(default_factory=list)


class BusinessHealth(BaseModel):
    """Ratios derived from AnalyticsStats. Percentages are 0-100 based."""

    average_monthly_revenue: Decimal = Decimal("0")
    average_monthly_profit: Decimal = Decimal("0")
    best_month: Optional[MonthlyFigures] = None
    revenue_trend: float = 0.0
    profit_margin: float = 0.0
    expense_ratio: float = 0.0
    personnel_cost_share: float = 0.0


class AnalyticsReport(BaseModel):
    organization_id: Optional[UUID] = None
    stats: AnalyticsStats = Field(default_factory=AnalyticsStats)
    health: BusinessHealth = Field(default_factory=BusinessHealth)
    success: bool = True
    error_message: Optional[str] = None

    @classmethod
    def empty(cls, error_message: Optional[str] = None) -> 'AnalyticsReport':
        return cls(success=error_message is None, error_message=error_message)


class AlertLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"


class DashboardAlert(BaseModel):
    entity_id: UUID
    level: AlertLevel
    message: str
    timestamp: datetime


class RecentActivity(BaseModel):
    entity_id: UUID
    entity_type: str = "budget"
    action: str = "created"
    timestamp: Optional[datetime] = None
    details: str


class DashboardStats(BaseModel):
    total_budgets: int = 0
    active_budgets: int = 0
    total_revenue: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    expenses_change: float = 0.0
    active_projects: int = 0
    total_employees: int = 0
    budget_utilization: float = 0.0
    profit_margin: float = 0.0


class DashboardSnapshot(BaseModel):
    organization_id: Optional[UUID] = None
    stats: DashboardStats = Field(default_factory=DashboardStats)
    alerts: list[DashboardAlert] = Field(default_factory=list)
    recent_activity: list[RecentActivity] = Field(default_factory=list)


class ProjectPortfolio(BaseModel):
    total_budget: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    status_counts: dict[ProjectStatus, int] = Field(default_factory=dict)
    overspent: int = 0
    upcoming: int = 0


class TaskWorkload(BaseModel):
    estimated_hours: Decimal = Decimal("0")
    actual_hours: Decimal = Decimal("0")
    completed_tasks: int = 0
    total_tasks: int = 0

    @property
    def completion_rate(self) -> float:
        if self.total_tasks == 0:
            return 0.0
        return self.completed_tasks / self.total_tasks * 100
