"""
Storage Services Package

Provides the abstract table interface, its two implementations (the
hosted REST gateway and an in-memory backend) and the typed domain
storages the services use.
"""

from src.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    Filter,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    TableBackend,
    TransientBackendError,
    eq,
    escape_like,
    gt,
    gte,
    ilike,
    in_,
    is_,
    lt,
    lte,
    neq,
)
from src.services.storage.memory import InMemoryBackend
from src.services.storage.postgrest import PostgrestClient
from src.services.storage.repositories import (
    AuditStorage,
    FinanceStorage,
    OrganizationStorage,
    ProjectStorage,
)

__all__ = [
    # Interface
    "Filter",
    "TableBackend",
    "eq",
    "escape_like",
    "gt",
    "gte",
    "ilike",
    "in_",
    "is_",
    "lt",
    "lte",
    "neq",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "PermissionDeniedError",
    "StorageError",
    "TransientBackendError",
    # Backends
    "InMemoryBackend",
    "PostgrestClient",
    # Domain storages
    "AuditStorage",
    "FinanceStorage",
    "OrganizationStorage",
    "ProjectStorage",
]
