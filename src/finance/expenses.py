"""Recurring expense schedule and the totals above the expense list."""

import calendar
from datetime import date, timedelta
from decimal import Decimal

from src.models.finance import Expense, ExpenseSummary, RecurringFrequency


MONTHS_PER_PERIOD = {
    RecurringFrequency.MONTHLY: 1,
    RecurringFrequency.QUARTERLY: 3,
    RecurringFrequency.YEARLY: 12,
}


def add_months(start: date, months: int) -> date:
    """Shift by whole months, clamping to the last day of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def calculate_next_occurrence(current: date, frequency: RecurringFrequency) -> date:
    """
    Date of the next occurrence of a recurring expense.

    Jan 31 monthly is Feb 28 (29 in leap years), not Mar 3.
    """
    if frequency == RecurringFrequency.WEEKLY:
        return current + timedelta(days=7)
    return add_months(current, MONTHS_PER_PERIOD[frequency])


def summarize_expenses(expenses: list[Expense]) -> ExpenseSummary:
    return ExpenseSummary(
        total_amount=sum((e.amount for e in expenses), Decimal("0")),
        billable_outstanding=sum(
            (e.amount for e in expenses if e.is_billable and not e.is_billed),
            Decimal("0"),
        ),
        recurring_count=sum(1 for e in expenses if e.is_recurring),
        expense_count=len(expenses),
    )
