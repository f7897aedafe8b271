"""
Abstract Storage Interface

DESIGN DECISION: The hosted backend is a table-oriented REST gateway in
front of Postgres. We define an abstract interface for exactly the table
operations we use. This allows us to:
1. Talk to the real backend over HTTP in production
2. Use in-memory storage for testing
3. Keep business logic decoupled from the transport

The interface is intentionally simple - we're not building an ORM.
Row-level security stays on the backend; this layer never tries to
re-implement it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Sequence
from uuid import UUID


FILTER_OPERATORS = ("eq", "neq", "in", "gt", "gte", "lt", "lte", "ilike", "is")
LIKE_SPECIAL = "\\%_"


def to_json_value(value: Any) -> Any:
    """Convert ids, dates, enums and decimals to what the REST gateway expects."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple)):
        return tuple(to_json_value(v) for v in value)
    return value


@dataclass(frozen=True)
class Filter:
    """
    One column condition, combined with AND.

    Values are normalized with to_json_value, so ids, dates and enums
    can be passed as they are.
    """
    column: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")
        object.__setattr__(self, "value", to_json_value(self.value))


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def in_(column: str, values: Sequence[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def gt(column: str, value: Any) -> Filter:
    return Filter(column, "gt", value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lt(column: str, value: Any) -> Filter:
    return Filter(column, "lt", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def ilike(column: str, pattern: str) -> Filter:
    """Case-insensitive match; ``*`` and ``%`` match any run, ``_`` one character."""
    return Filter(column, "ilike", pattern)


def escape_like(text: str) -> str:
    """Backslash-escape ``%``, ``_`` and ``\\`` so they match literally."""
    return "".join("\\" + ch if ch in LIKE_SPECIAL else ch for ch in text)


def is_(column: str, value: Optional[bool]) -> Filter:
    return Filter(column, "is", value)


class TableBackend(ABC):
    """
    Abstract interface for table operations.

    Any backend implementation (REST gateway, in-memory, etc.)
    must implement these methods. Rows are plain dicts keyed by column.
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """
        Read rows.

        Args:
            table: Table name
            filters: Conditions, all of which must hold
            columns: Column list in REST select syntax, embeds included
            order_by: Column to sort by
            descending: Sort direction
            limit: Maximum number of rows

        Returns:
            Matching rows (possibly empty)
        """
        pass

    @abstractmethod
    async def insert(self, table: str, rows: Sequence[dict]) -> list[dict]:
        """
        Insert rows and return them as stored (defaults filled in).

        Raises:
            DuplicateError: If a unique constraint is violated
        """
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        values: dict,
        filters: Sequence[Filter],
    ) -> list[dict]:
        """
        Update matching rows and return them.

        An empty result means nothing matched (or row-level security hid it).
        """
        pass

    @abstractmethod
    async def upsert(
        self,
        table: str,
        rows: Sequence[dict],
        on_conflict: Sequence[str],
    ) -> list[dict]:
        """
        Insert rows, merging into existing ones on the given unique columns.
        """
        pass

    @abstractmethod
    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        """
        Delete matching rows.

        Returns:
            Number of rows deleted
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity (unique_violation, 23505)."""
    pass


class PermissionDeniedError(StorageError):
    """The backend refused the operation (row-level security or auth)."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class TransientBackendError(ConnectionError):
    """Temporary failure worth retrying (5xx, timeouts, dropped connections)."""
    pass
