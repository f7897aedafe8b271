"""
Budget Item Arithmetic and Budget Generation

Budget items are stored denormalized: totals and profit are columns, so
every edit has to recompute them before saving. Two flags ride along in
the item notes for deployments without dedicated columns:

    __budget_meta__:{"note": "...", "isCost": true, "isPersonnel": true}

``isCost`` marks a pass-through cost (internal price equals client
price). ``isPersonnel`` marks labor, which the analytics report
separately.
"""

import json
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel

from src.audit import AuditLogger
from src.models.finance import Budget, BudgetItem, BudgetStatus, BudgetTotals
from src.models.organization import UserContext
from src.services.storage import FinanceStorage, ProjectStorage


NOTES_META_PREFIX = "__budget_meta__:"
TASK_ITEM_UNIT = "h"

logger = structlog.get_logger(__name__)


class BudgetGenerationError(Exception):
    """A budget could not be generated from the project's tasks."""
    pass


class ItemNotes(BaseModel):
    """Decoded item notes."""
    note: str = ""
    is_cost: bool = False
    is_personnel: bool = False


def decode_item_notes(notes: Optional[str]) -> ItemNotes:
    """
    Split stored notes into the visible text and the metadata flags.

    Notes without the prefix are plain text. Malformed metadata is kept
    as plain text too, so nothing the user typed is lost.
    """
    if not notes:
        return ItemNotes()
    if not notes.startswith(NOTES_META_PREFIX):
        return ItemNotes(note=notes)

    try:
        data = json.loads(notes[len(NOTES_META_PREFIX):])
    except ValueError:
        logger.warning("item_notes_metadata_invalid", notes=notes[:100])
        return ItemNotes(note=notes)
    if not isinstance(data, dict):
        logger.warning("item_notes_metadata_invalid", notes=notes[:100])
        return ItemNotes(note=notes)

    return ItemNotes(
        note=str(data.get("note") or ""),
        is_cost=bool(data.get("isCost")),
        is_personnel=bool(data.get("isPersonnel")),
    )


def encode_item_notes(note: str = "", is_cost: bool = False, is_personnel: bool = False) -> str:
    """Inverse of decode_item_notes; plain text when no flag is set."""
    if not is_cost and not is_personnel:
        return note
    data = {"note": note, "isCost": is_cost}
    if is_personnel:
        data["isPersonnel"] = True
    return NOTES_META_PREFIX + json.dumps(data, ensure_ascii=False)


def item_is_cost(item: BudgetItem) -> bool:
    if item.is_cost is not None:
        return item.is_cost
    return decode_item_notes(item.notes).is_cost


def item_is_personnel(item: BudgetItem) -> bool:
    if item.is_personnel is not None:
        return item.is_personnel
    return decode_item_notes(item.notes).is_personnel


def recalculate_item(item: BudgetItem) -> BudgetItem:
    """
    Recompute the derived columns of an item.

    Cost items copy their client quantity and price to the internal side,
    so they never produce profit.
    """
    if item_is_cost(item):
        internal_quantity = item.quantity
        internal_price = item.price_per_unit
    else:
        internal_quantity = item.internal_quantity
        internal_price = item.internal_price_per_unit

    total_price = item.quantity * item.price_per_unit
    internal_total = internal_quantity * internal_price

    return item.model_copy(update={
        "internal_quantity": internal_quantity,
        "internal_price_per_unit": internal_price,
        "total_price": total_price,
        "internal_total_price": internal_total,
        "profit": total_price - internal_total,
    })


def renumber_items(items: list[BudgetItem]) -> list[BudgetItem]:
    """Rewrite order_index to 0..n-1 in list order."""
    return [item.model_copy(update={"order_index": index}) for index, item in enumerate(items)]


def calculate_budget_totals(items: list[BudgetItem]) -> BudgetTotals:
    total = sum((item.total_price for item in items), Decimal("0"))
    internal = sum((item.internal_total_price for item in items), Decimal("0"))
    profit = total - internal
    margin = float(profit / total * 100) if total > 0 else 0.0
    return BudgetTotals(
        total_amount=total,
        internal_total=internal,
        profit=profit,
        margin=margin,
    )


class BudgetPlanner:
    """Turns a project's tasks into a draft client budget."""

    def __init__(
        self,
        finance_storage: FinanceStorage,
        project_storage: ProjectStorage,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._finance = finance_storage
        self._projects = project_storage
        self._audit = audit_logger or AuditLogger()

    async def generate_budget_for_project(
        self,
        actor: UserContext,
        project_id: UUID,
    ) -> tuple[Budget, list[BudgetItem]]:
        """
        Create a draft budget with one item per task and link it to the project.

        Each task is billed at estimated hours x the project's client rate.
        Its internal cost uses the hourly rate of the assigned employee,
        or zero when nobody (or nobody with a rate) is assigned.

        Raises:
            BudgetGenerationError: Unknown project, no tasks, no client
                rate or no category to file the items under
        """
        project = await self._projects.get_project(project_id)
        if project is None:
            raise BudgetGenerationError(f"Project not found: {project_id}")

        tasks = await self._projects.list_tasks(project_id)
        if not tasks:
            raise BudgetGenerationError("Create tasks for this project first")

        rate = project.client_hourly_rate
        if rate is None or rate <= 0:
            raise BudgetGenerationError("Set a client hourly rate for this project first")

        organization_id = project.organization_id
        categories = (
            await self._finance.list_categories(organization_id) if organization_id else []
        )
        if not categories:
            raise BudgetGenerationError("Create at least one category first")

        employees = (
            await self._projects.list_employees(organization_id) if organization_id else []
        )
        employee_rates = {e.id: e.hourly_rate for e in employees if e.hourly_rate}

        budget = await self._finance.create_budget(Budget(
            name=f"Budget - {project.name}",
            client_name=project.name,
            status=BudgetStatus.DRAFT,
            user_id=actor.user_id,
            organization_id=organization_id,
        ))

        items = []
        for index, task in enumerate(tasks):
            employee_rate = employee_rates.get(task.assigned_to, Decimal("0"))
            items.append(recalculate_item(BudgetItem(
                budget_id=budget.id,
                task_id=task.id,
                category_id=categories[0].id,
                item_name=task.title,
                unit=TASK_ITEM_UNIT,
                quantity=task.estimated_hours,
                price_per_unit=rate,
                notes=task.description or "",
                internal_quantity=task.estimated_hours,
                internal_price_per_unit=employee_rate,
                order_index=index,
            )))

        saved_items = await self._finance.create_budget_items(items)
        await self._projects.link_budget(project_id, budget.id)

        await self._audit.log_budget_generated(
            budget_id=budget.id,
            project_id=project_id,
            organization_id=organization_id,
            actor_id=actor.user_id,
            item_count=len(saved_items),
        )
        return budget, saved_items
