"""Tests for budget item arithmetic, recurring expenses and budget generation."""

import asyncio
import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from src.finance import (
    NOTES_META_PREFIX,
    BudgetGenerationError,
    BudgetPlanner,
    calculate_budget_totals,
    calculate_next_occurrence,
    decode_item_notes,
    encode_item_notes,
    item_is_personnel,
    recalculate_item,
    renumber_items,
    summarize_expenses,
)
from src.models import (
    BudgetItem,
    BudgetStatus,
    Category,
    Employee,
    Expense,
    Project,
    RecurringFrequency,
    Task,
)


def make_item(**overrides):
    values = {"budget_id": uuid4(), "item_name": "Work"}
    values.update(overrides)
    return BudgetItem(**values)


class TestItemNotes:
    """Tests for the flags stored in item notes."""

    def test_plain_notes(self):
        decoded = decode_item_notes("Bring the ladder")
        assert decoded.note == "Bring the ladder"
        assert not decoded.is_cost
        assert not decoded.is_personnel

    def test_empty_notes(self):
        assert decode_item_notes(None).note == ""

    def test_metadata_notes(self):
        notes = NOTES_META_PREFIX + json.dumps({"note": "Crew", "isCost": False, "isPersonnel": True})
        decoded = decode_item_notes(notes)
        assert decoded.note == "Crew"
        assert decoded.is_personnel

    def test_malformed_metadata_kept_as_text(self):
        notes = NOTES_META_PREFIX + "{not json"
        assert decode_item_notes(notes).note == notes

    def test_encode_without_flags_is_plain(self):
        assert encode_item_notes("Just text") == "Just text"

    def test_encode_with_flags(self):
        encoded = encode_item_notes("Fuel", is_cost=True)
        assert encoded.startswith(NOTES_META_PREFIX)
        assert json.loads(encoded[len(NOTES_META_PREFIX):]) == {"note": "Fuel", "isCost": True}
        assert decode_item_notes(encoded).is_cost

    def test_column_wins_over_notes(self):
        item = make_item(notes=encode_item_notes("", is_personnel=True), is_personnel=False)
        assert not item_is_personnel(item)
        assert item_is_personnel(make_item(notes=encode_item_notes("", is_personnel=True)))


class TestItemArithmetic:
    """Tests for item totals and budget totals."""

    def test_recalculate_item(self):
        item = recalculate_item(make_item(
            quantity=Decimal("10"),
            price_per_unit=Decimal("50"),
            internal_quantity=Decimal("10"),
            internal_price_per_unit=Decimal("30"),
        ))
        assert item.total_price == Decimal("500")
        assert item.internal_total_price == Decimal("300")
        assert item.profit == Decimal("200")

    def test_cost_item_has_no_profit(self):
        item = recalculate_item(make_item(
            quantity=Decimal("2"),
            price_per_unit=Decimal("75"),
            internal_quantity=Decimal("1"),
            internal_price_per_unit=Decimal("10"),
            is_cost=True,
        ))
        assert item.internal_quantity == Decimal("2")
        assert item.internal_price_per_unit == Decimal("75")
        assert item.profit == Decimal("0")

    def test_recalculate_returns_copy(self):
        original = make_item(quantity=Decimal("1"), price_per_unit=Decimal("5"))
        recalculate_item(original)
        assert original.total_price == Decimal("0")

    def test_renumber_items(self):
        items = renumber_items([make_item(order_index=7), make_item(order_index=3)])
        assert [item.order_index for item in items] == [0, 1]

    def test_budget_totals(self):
        items = [
            recalculate_item(make_item(quantity=Decimal("1"), price_per_unit=Decimal("300"),
                                       internal_quantity=Decimal("1"),
                                       internal_price_per_unit=Decimal("150"))),
            recalculate_item(make_item(quantity=Decimal("1"), price_per_unit=Decimal("100"),
                                       is_cost=True)),
        ]
        totals = calculate_budget_totals(items)
        assert totals.total_amount == Decimal("400")
        assert totals.internal_total == Decimal("250")
        assert totals.profit == Decimal("150")
        assert totals.margin == pytest.approx(37.5)

    def test_empty_budget_totals(self):
        assert calculate_budget_totals([]).margin == 0.0


class TestRecurringExpenses:
    """Tests for the recurring expense schedule."""

    def test_weekly(self):
        assert calculate_next_occurrence(date(2026, 1, 28), RecurringFrequency.WEEKLY) == date(2026, 2, 4)

    def test_monthly_clamps_to_month_end(self):
        assert calculate_next_occurrence(date(2026, 1, 31), RecurringFrequency.MONTHLY) == date(2026, 2, 28)
        assert calculate_next_occurrence(date(2028, 1, 31), RecurringFrequency.MONTHLY) == date(2028, 2, 29)

    def test_quarterly_crosses_year(self):
        assert calculate_next_occurrence(date(2026, 11, 30), RecurringFrequency.QUARTERLY) == date(2027, 2, 28)

    def test_yearly_from_leap_day(self):
        assert calculate_next_occurrence(date(2028, 2, 29), RecurringFrequency.YEARLY) == date(2029, 2, 28)

    def test_summarize_expenses(self):
        user_id = uuid4()
        expenses = [
            Expense(name="Fuel", amount=Decimal("40"), date=date(2026, 1, 1), user_id=user_id,
                    is_billable=True),
            Expense(name="Rent", amount=Decimal("900"), date=date(2026, 1, 1), user_id=user_id,
                    is_recurring=True, recurring_frequency=RecurringFrequency.MONTHLY),
            Expense(name="Hotel", amount=Decimal("120"), date=date(2026, 1, 2), user_id=user_id,
                    is_billable=True, is_billed=True),
        ]
        summary = summarize_expenses(expenses)
        assert summary.total_amount == Decimal("1060")
        assert summary.billable_outstanding == Decimal("40")
        assert summary.recurring_count == 1
        assert summary.expense_count == 3


@pytest.fixture
def planner(finance_storage, project_storage):
    return BudgetPlanner(finance_storage, project_storage)


@pytest.fixture
def project(seed, owner, organization_id):
    project = Project(
        user_id=owner.user_id,
        organization_id=organization_id,
        name="Kitchen renovation",
        client_hourly_rate=Decimal("60"),
    )
    seed("projects", project)
    return project


class TestBudgetPlanner:
    """Tests for generating a budget from project tasks."""

    def test_generate_budget(self, planner, seed, owner, organization_id, project,
                             finance_storage, project_storage):
        category = Category(name="Labor", user_id=owner.user_id, organization_id=organization_id)
        employee = Employee(user_id=owner.user_id, organization_id=organization_id,
                            first_name="Ada", last_name="Byte", hourly_rate=Decimal("25"))
        seed("categories", category)
        seed("employees", employee)
        seed(
            "tasks",
            Task(project_id=project.id, title="Demolition", estimated_hours=Decimal("8"),
                 assigned_to=employee.id),
            Task(project_id=project.id, title="Cleanup", estimated_hours=Decimal("2"),
                 description="Skip container"),
        )

        budget, items = asyncio.run(planner.generate_budget_for_project(owner, project.id))

        assert budget.name == "Budget - Kitchen renovation"
        assert budget.client_name == "Kitchen renovation"
        assert budget.status == BudgetStatus.DRAFT
        assert [i.item_name for i in items] == ["Demolition", "Cleanup"]
        assert [i.unit for i in items] == ["h", "h"]
        assert items[0].total_price == Decimal("480")
        assert items[0].internal_total_price == Decimal("200")
        assert items[1].internal_total_price == Decimal("0")
        assert items[1].notes == "Skip container"
        assert all(i.category_id == category.id for i in items)

        linked = asyncio.run(project_storage.get_project(project.id))
        assert linked.budget_id == budget.id
        assert len(asyncio.run(finance_storage.list_budget_items([budget.id]))) == 2

    def test_unknown_project(self, planner, owner):
        with pytest.raises(BudgetGenerationError):
            asyncio.run(planner.generate_budget_for_project(owner, uuid4()))

    def test_project_without_tasks(self, planner, owner, project):
        with pytest.raises(BudgetGenerationError, match="tasks"):
            asyncio.run(planner.generate_budget_for_project(owner, project.id))

    def test_project_without_rate(self, planner, seed, owner, organization_id):
        project = Project(user_id=owner.user_id, organization_id=organization_id, name="Pro bono")
        seed("projects", project)
        seed("tasks", Task(project_id=project.id, title="Help", estimated_hours=Decimal("1")))

        with pytest.raises(BudgetGenerationError, match="hourly rate"):
            asyncio.run(planner.generate_budget_for_project(owner, project.id))

    def test_organization_without_categories(self, planner, seed, owner, project, backend):
        seed("tasks", Task(project_id=project.id, title="Paint", estimated_hours=Decimal("3")))

        with pytest.raises(BudgetGenerationError, match="category"):
            asyncio.run(planner.generate_budget_for_project(owner, project.id))
        assert backend.rows("budgets") == []
