"""
In-Memory Table Backend

Used by the test-suite and for running the services offline. It keeps
the parts of the hosted database the services rely on:
- generated ``id`` and ``created_at`` columns
- the unique constraints the bootstrap and invitation flows lean on
- filter, ordering and limit semantics of the REST gateway

Row-level security is not emulated; callers see every row.
"""

import copy
import re
from datetime import datetime
from functools import cmp_to_key
from typing import Any, Optional, Sequence
from uuid import uuid4

from src.models.organization import utc_now
from src.services.storage.interface import (
    DuplicateError,
    Filter,
    StorageError,
    TableBackend,
    to_json_value,
)


UNIQUE_CONSTRAINTS: dict[str, list[tuple[str, ...]]] = {
    "organization_members": [("organization_id", "user_id")],
    "resource_permissions": [("organization_id", "user_id", "resource_type")],
    "invitations": [("token",)],
}


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


def _compare(left: Any, right: Any) -> int:
    left, right = _comparable(left), _comparable(right)
    try:
        return (left > right) - (left < right)
    except TypeError:
        left, right = str(left), str(right)
        return (left > right) - (left < right)


def _like_regex(pattern: str) -> str:
    parts = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif ch in "*%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return "".join(parts)


def _ilike(value: Any, pattern: str) -> bool:
    if value is None:
        return False
    regex = _like_regex(pattern)
    return re.fullmatch(regex, str(value), flags=re.IGNORECASE | re.DOTALL) is not None


def _matches(row: dict, flt: Filter) -> bool:
    value = row.get(flt.column)

    if flt.op == "is":
        return value is flt.value if flt.value is None else value == flt.value
    if flt.op == "eq":
        return value == flt.value
    if flt.op == "neq":
        return value is not None and value != flt.value
    if flt.op == "in":
        return value in flt.value
    if flt.op == "ilike":
        return _ilike(value, flt.value)

    if value is None:
        return False
    result = _compare(value, flt.value)
    return {
        "gt": result > 0,
        "gte": result >= 0,
        "lt": result < 0,
        "lte": result <= 0,
    }[flt.op]


class InMemoryBackend(TableBackend):
    """
    Dict-of-lists implementation of TableBackend.

    Example:
        backend = InMemoryBackend()
        await backend.insert("organizations", [{"name": "Acme", "owner_id": uid}])
    """

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._failures: dict[str, Exception] = {}

    def rows(self, table: str) -> list[dict]:
        """Copy of everything stored in a table."""
        return copy.deepcopy(self._tables.get(table, []))

    def fail_on(self, table: str, error: Optional[Exception]) -> None:
        """Make every operation on ``table`` raise ``error`` (None clears it)."""
        if error is None:
            self._failures.pop(table, None)
        else:
            self._failures[table] = error

    def _check_failure(self, table: str) -> None:
        error = self._failures.get(table)
        if error is not None:
            raise error

    def _table(self, table: str) -> list[dict]:
        return self._tables.setdefault(table, [])

    @staticmethod
    def _normalize(row: dict) -> dict:
        normalized = {}
        for key, value in row.items():
            value = to_json_value(value)
            if isinstance(value, tuple):
                value = list(value)
            normalized[key] = copy.deepcopy(value)
        return normalized

    def _check_unique(self, table: str, row: dict, ignore: Optional[dict] = None) -> None:
        for columns in UNIQUE_CONSTRAINTS.get(table, []):
            key = tuple(row.get(column) for column in columns)
            if any(part is None for part in key):
                continue
            for existing in self._table(table):
                if existing is ignore:
                    continue
                if tuple(existing.get(column) for column in columns) == key:
                    raise DuplicateError(
                        f"duplicate key value violates unique constraint on "
                        f"{table}({', '.join(columns)})",
                        code="23505",
                    )

    def _insert_one(self, table: str, row: dict) -> dict:
        stored = self._normalize(row)
        stored.setdefault("id", str(uuid4()))
        if stored.get("created_at") is None:
            stored["created_at"] = utc_now().isoformat()
        if any(existing["id"] == stored["id"] for existing in self._table(table)):
            raise DuplicateError(f"duplicate key value violates {table}_pkey", code="23505")
        self._check_unique(table, stored)
        self._table(table).append(stored)
        return stored

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        self._check_failure(table)
        result = [
            row for row in self._table(table)
            if all(_matches(row, flt) for flt in filters)
        ]

        if order_by:
            present = [row for row in result if row.get(order_by) is not None]
            missing = [row for row in result if row.get(order_by) is None]
            present.sort(
                key=cmp_to_key(lambda a, b: _compare(a[order_by], b[order_by])),
                reverse=descending,
            )
            # Nulls sort last ascending and first descending, like Postgres
            result = missing + present if descending else present + missing

        if limit is not None:
            result = result[:limit]

        if columns.strip() != "*":
            wanted = [column.strip() for column in columns.split(",")]
            result = [{column: row.get(column) for column in wanted} for row in result]

        return copy.deepcopy(result)

    async def insert(self, table: str, rows: Sequence[dict]) -> list[dict]:
        self._check_failure(table)
        inserted = []
        for row in rows:
            inserted.append(self._insert_one(table, row))
        return copy.deepcopy(inserted)

    async def update(
        self,
        table: str,
        values: dict,
        filters: Sequence[Filter],
    ) -> list[dict]:
        self._check_failure(table)
        if not filters:
            raise StorageError("Refusing to update without filters")

        changes = self._normalize(values)
        updated = []
        for row in self._table(table):
            if all(_matches(row, flt) for flt in filters):
                self._check_unique(table, {**row, **changes}, ignore=row)
                row.update(copy.deepcopy(changes))
                updated.append(row)
        return copy.deepcopy(updated)

    async def upsert(
        self,
        table: str,
        rows: Sequence[dict],
        on_conflict: Sequence[str],
    ) -> list[dict]:
        self._check_failure(table)
        result = []
        for row in rows:
            candidate = self._normalize(row)
            existing = next(
                (
                    stored for stored in self._table(table)
                    if all(stored.get(column) == candidate.get(column) for column in on_conflict)
                ),
                None,
            )
            if existing is None:
                result.append(self._insert_one(table, candidate))
            else:
                candidate.pop("id", None)
                self._check_unique(table, {**existing, **candidate}, ignore=existing)
                existing.update(candidate)
                result.append(existing)
        return copy.deepcopy(result)

    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        self._check_failure(table)
        if not filters:
            raise StorageError("Refusing to delete without filters")

        kept, removed = [], 0
        for row in self._table(table):
            if all(_matches(row, flt) for flt in filters):
                removed += 1
            else:
                kept.append(row)
        self._tables[table] = kept
        return removed
