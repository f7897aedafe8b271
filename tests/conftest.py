"""
Shared fixtures.

Everything runs on the in-memory backend; no test talks to the network.
Async services are driven with asyncio.run.
"""

import asyncio
from uuid import uuid4

import pytest

from src.config import AppSettings
from src.models.organization import MemberRole, UserContext
from src.orchestrator import create_app_components
from src.services.storage import (
    FinanceStorage,
    InMemoryBackend,
    OrganizationStorage,
    ProjectStorage,
)
from src.services.storage.repositories import model_to_row


@pytest.fixture
def app_settings():
    return AppSettings()


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def session():
    return {}


@pytest.fixture
def app(backend, session):
    return create_app_components(backend=backend, session=session)


@pytest.fixture
def org_storage(backend):
    return OrganizationStorage(backend)


@pytest.fixture
def finance_storage(backend):
    return FinanceStorage(backend)


@pytest.fixture
def project_storage(backend):
    return ProjectStorage(backend)


@pytest.fixture
def owner():
    return UserContext(user_id=uuid4(), email="Owner@Example.com")


@pytest.fixture
def organization_id(app, owner):
    """Organization bootstrapped for ``owner``."""
    return asyncio.run(app.organizations.ensure_user_organization(owner.user_id))


@pytest.fixture
def add_member(org_storage):
    """Create a user and make them a member of an organization with a role."""

    def _add(organization_id, role=MemberRole.MEMBER, email=None):
        user = UserContext(
            user_id=uuid4(),
            email=email or f"{role.value}-{uuid4().hex[:8]}@example.com",
        )
        asyncio.run(org_storage.upsert_member(organization_id, user.user_id, role))
        return user

    return _add


@pytest.fixture
def seed(backend):
    """Insert models into a table the way the storages would."""

    def _seed(table, *models):
        return asyncio.run(backend.insert(table, [model_to_row(m) for m in models]))

    return _seed
