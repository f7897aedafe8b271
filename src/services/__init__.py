"""Services package."""

from src.services.storage import (
    AuditStorage,
    ConnectionError,
    DuplicateError,
    FinanceStorage,
    InMemoryBackend,
    NotFoundError,
    OrganizationStorage,
    PermissionDeniedError,
    PostgrestClient,
    ProjectStorage,
    StorageError,
    TableBackend,
    TransientBackendError,
)

__all__ = [
    # Backends
    "InMemoryBackend",
    "PostgrestClient",
    "TableBackend",
    # Domain storages
    "AuditStorage",
    "FinanceStorage",
    "OrganizationStorage",
    "ProjectStorage",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "PermissionDeniedError",
    "StorageError",
    "TransientBackendError",
]
