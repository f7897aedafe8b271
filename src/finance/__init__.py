"""Finance helpers: budget item arithmetic, budget generation, expenses."""

from src.finance.budgets import (
    NOTES_META_PREFIX,
    BudgetGenerationError,
    BudgetPlanner,
    ItemNotes,
    calculate_budget_totals,
    decode_item_notes,
    encode_item_notes,
    item_is_cost,
    item_is_personnel,
    recalculate_item,
    renumber_items,
)
from src.finance.expenses import (
    add_months,
    calculate_next_occurrence,
    summarize_expenses,
)

__all__ = [
    "NOTES_META_PREFIX",
    "BudgetGenerationError",
    "BudgetPlanner",
    "ItemNotes",
    "add_months",
    "calculate_budget_totals",
    "calculate_next_occurrence",
    "decode_item_notes",
    "encode_item_notes",
    "item_is_cost",
    "item_is_personnel",
    "recalculate_item",
    "renumber_items",
    "summarize_expenses",
]
