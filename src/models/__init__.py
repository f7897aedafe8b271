"""
Data Models Package

This package contains all Pydantic models used in Budget Desk.
Rows read from the backend are validated into these models before any
arithmetic touches them.
"""

from src.models.organization import (
    Invitation,
    InvitationRole,
    InvitationStatus,
    MemberRole,
    Organization,
    OrganizationMember,
    OrganizationMembership,
    PermissionAction,
    PermissionFlags,
    ResourcePermission,
    ResourceType,
    SessionState,
    UserContext,
    as_utc,
    utc_now,
)
from src.models.finance import (
    Budget,
    BudgetItem,
    BudgetSection,
    BudgetStatus,
    BudgetTotals,
    Category,
    Expense,
    ExpenseSummary,
    RecurringFrequency,
)
from src.models.projects import (
    Employee,
    Project,
    ProjectDraft,
    ProjectStatus,
    Task,
    TaskPriority,
    TaskStatus,
)
from src.models.analytics import (
    AlertLevel,
    AnalyticsReport,
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
from src.models.validation import ValidationIssue, ValidationResult
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Tenancy models
    "Invitation",
    "InvitationRole",
    "InvitationStatus",
    "MemberRole",
    "Organization",
    "OrganizationMember",
    "OrganizationMembership",
    "PermissionAction",
    "PermissionFlags",
    "ResourcePermission",
    "ResourceType",
    "SessionState",
    "UserContext",
    "as_utc",
    "utc_now",
    # Finance models
    "Budget",
    "BudgetItem",
    "BudgetSection",
    "BudgetStatus",
    "BudgetTotals",
    "Category",
    "Expense",
    "ExpenseSummary",
    "RecurringFrequency",
    # Project models
    "Employee",
    "Project",
    "ProjectDraft",
    "ProjectStatus",
    "Task",
    "TaskPriority",
    "TaskStatus",
    # Analytics models
    "AlertLevel",
    "AnalyticsReport",
    "AnalyticsStats",
    "BusinessHealth",
    "CategoryAmount",
    "DashboardAlert",
    "DashboardSnapshot",
    "DashboardStats",
    "MonthlyFigures",
    "ProjectPortfolio",
    "RecentActivity",
    "StatusCount",
    "TaskWorkload",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
