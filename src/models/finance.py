"""
Finance Models for Budget Desk

Budgets are client offers made of line items. Every item carries two
prices: what the client pays and what the work costs internally. The
difference is the profit the analytics are built on.

DESIGN DECISION: Money is Decimal end to end. The backend stores
numeric columns and float rounding would leak into sums and margins.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BudgetStatus(str, Enum):
    """Budget lifecycle as seen by the client."""
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"


class RecurringFrequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class Category(BaseModel):
    """Category shared by budget items and expenses of one organization."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    user_id: UUID
    organization_id: Optional[UUID] = None
    created_at: Optional[datetime] = None


class Budget(BaseModel):
    """A client budget (offer)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    client_name: str = Field(..., min_length=1, max_length=200)
    client_email: Optional[str] = None
    contact_person: Optional[str] = None
    project_manager: Optional[str] = None
    manager_email: Optional[str] = None
    status: BudgetStatus = BudgetStatus.DRAFT
    user_id: UUID
    organization_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    archived: bool = False
    archived_at: Optional[datetime] = None


class BudgetSection(BaseModel):
    """Named group of items inside a budget."""

    id: UUID = Field(default_factory=uuid4)
    budget_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BudgetItem(BaseModel):
    """
    One line of a budget.

    The client side is quantity x price_per_unit, the internal side is
    internal_quantity x internal_price_per_unit. Totals and profit are
    stored denormalized, see src.finance.budgets.recalculate_item.

    ``is_cost`` and ``is_personnel`` are not columns in every deployment;
    older rows keep those flags in the notes metadata instead.
    """

    id: UUID = Field(default_factory=uuid4)
    budget_id: UUID
    category_id: Optional[UUID] = None
    item_name: str = Field(default="", max_length=300)
    unit: str = Field(default="pcs", max_length=20)
    quantity: Decimal = Decimal("0")
    price_per_unit: Decimal = Decimal("0")
    total_price: Decimal = Decimal("0")
    notes: Optional[str] = ""
    internal_price_per_unit: Decimal = Decimal("0")
    internal_quantity: Decimal = Decimal("0")
    internal_total_price: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")
    order_index: int = 0
    created_at: Optional[datetime] = None
    task_id: Optional[UUID] = None
    is_cost: Optional[bool] = None
    is_personnel: Optional[bool] = None


class BudgetTotals(BaseModel):
    """Summary shown on a budget's detail page."""

    total_amount: Decimal = Decimal("0")
    internal_total: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")
    margin: float = Field(
        default=0.0,
        description="Profit as a percentage of the client total"
    )


class Expense(BaseModel):
    """An expense booked against an organization (optionally a project)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    category_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Decimal("0")
    date: date
    notes: Optional[str] = ""
    budget_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    user_id: UUID
    organization_id: Optional[UUID] = None
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    next_occurrence: Optional[date] = None
    is_billable: bool = False
    is_billed: bool = False
    billed_date: Optional[date] = None
    created_at: Optional[datetime] = None

    # Joined from categories(name); not a column
    category_name: Optional[str] = None

    @model_validator(mode='after')
    def validate_recurrence(self) -> 'Expense':
        if self.is_recurring and self.recurring_frequency is None:
            raise ValueError("Recurring expense needs a recurring frequency")
        return self


class ExpenseSummary(BaseModel):
    """Totals shown above the expense list."""

    total_amount: Decimal = Decimal("0")
    billable_outstanding: Decimal = Decimal("0")
    recurring_count: int = 0
    expense_count: int = 0
