"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.

The database is a SQLite file per test (not :memory:) because the
services open their own sessions through a session factory; every
session must see the same database.
"""

from dataclasses import dataclass
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from worktrack.core.actor import Actor
from worktrack.core.authorization_matrix import AuthorizationMatrix
from worktrack.db.session import build_session_factory
from worktrack.models import Base
from worktrack.models.user import UserRole
from worktrack.services.cascade import CascadeEngine
from worktrack.services.entity_service import EntityService
from worktrack.services.lifecycle_service import EntityLifecycleService
from worktrack.services.mutation import MutationCoordinator
from worktrack.services.notification_service import NotificationDispatcher
from worktrack.services.scope_resolver import ScopeResolver

from tests.factories import DepartmentFactory, OrganizationFactory, UserFactory


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    Create a test database engine.

    WHY: Function scope ensures each test gets a fresh database state,
    preventing test pollution and ensuring test isolation.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'worktrack.db'}", echo=False)

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory built the same way as the application's."""
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Session used to seed test data.

    Seeded rows are committed so the services' own sessions can see them.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def fetch(session_factory) -> Callable[..., Awaitable[Any]]:
    """
    Load a row in a fresh session.

    WHY: Rows held by the seeding session are stale once a service has
    committed through its own session.
    """

    async def _fetch(model, id: int) -> Optional[Any]:
        async with session_factory() as session:
            result = await session.execute(select(model).where(model.id == id))
            return result.scalar_one_or_none()

    return _fetch


@pytest.fixture
def in_transaction(session_factory) -> Callable[..., Awaitable[Any]]:
    """Run ``fn(session)`` inside a committed transaction."""

    async def _run(fn):
        async with session_factory() as session:
            async with session.begin():
                return await fn(session)

    return _run


# ============================================================================
# Engine components
# ============================================================================


class RecordingDispatcher(NotificationDispatcher):
    """Dispatcher that keeps every event for assertions."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    async def dispatch(self, event_name, payload, audience):
        self.events.append({"event": event_name, "payload": payload, "audience": audience})

    @property
    def names(self) -> List[str]:
        return [e["event"] for e in self.events]


@pytest.fixture
def matrix() -> AuthorizationMatrix:
    return AuthorizationMatrix.default()


@pytest.fixture
def resolver(matrix) -> ScopeResolver:
    return ScopeResolver(matrix)


@pytest.fixture
def cascade() -> CascadeEngine:
    return CascadeEngine()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def coordinator(session_factory) -> MutationCoordinator:
    return MutationCoordinator(session_factory, timeout=10, max_attempts=3, backoff=0)


@pytest.fixture
def lifecycle_service(session_factory, resolver, coordinator, dispatcher) -> EntityLifecycleService:
    return EntityLifecycleService(session_factory, resolver, coordinator, dispatcher)


@pytest.fixture
def entity_service(session_factory, resolver, coordinator, dispatcher) -> EntityService:
    return EntityService(session_factory, resolver, coordinator, dispatcher)


# ============================================================================
# Seed data
# ============================================================================


@dataclass
class World:
    """
    Two customer organizations plus the platform organization.

    Acme (org_a) has two departments; Globex (org_b) and the platform
    organization one each.
    """

    org_a: Any
    dept_a1: Any
    dept_a2: Any
    org_b: Any
    dept_b1: Any
    platform_org: Any
    dept_p1: Any
    super_a: Any
    admin_a: Any
    manager_a1: Any
    user_a1: Any
    colleague_a1: Any
    manager_a2: Any
    manager_b1: Any
    platform_admin: Any

    def actor(self, name: str) -> Actor:
        return Actor.from_user(getattr(self, name))


@pytest_asyncio.fixture
async def world(db_session: AsyncSession) -> World:
    """
    Create the tenancy graph shared by most tests.

    WHY: Scope tests need actors at every role in several departments
    and organizations.
    """
    org_a = await OrganizationFactory.create(db_session, name="Acme")
    org_b = await OrganizationFactory.create(db_session, name="Globex")
    platform_org = await OrganizationFactory.create(db_session, name="Platform", is_platform_org=True)

    dept_a1 = await DepartmentFactory.create(db_session, org_a, name="Maintenance")
    dept_a2 = await DepartmentFactory.create(db_session, org_a, name="Operations")
    dept_b1 = await DepartmentFactory.create(db_session, org_b, name="Maintenance")
    dept_p1 = await DepartmentFactory.create(db_session, platform_org, name="Support")

    return World(
        org_a=org_a,
        dept_a1=dept_a1,
        dept_a2=dept_a2,
        org_b=org_b,
        dept_b1=dept_b1,
        platform_org=platform_org,
        dept_p1=dept_p1,
        super_a=await UserFactory.create(db_session, dept_a1, UserRole.SUPER_ADMIN, "super.a"),
        admin_a=await UserFactory.create(db_session, dept_a1, UserRole.ADMIN, "admin.a"),
        manager_a1=await UserFactory.create(db_session, dept_a1, UserRole.MANAGER, "manager.a1"),
        user_a1=await UserFactory.create(db_session, dept_a1, UserRole.USER, "user.a1"),
        colleague_a1=await UserFactory.create(db_session, dept_a1, UserRole.USER, "colleague.a1"),
        manager_a2=await UserFactory.create(db_session, dept_a2, UserRole.MANAGER, "manager.a2"),
        manager_b1=await UserFactory.create(db_session, dept_b1, UserRole.MANAGER, "manager.b1"),
        platform_admin=await UserFactory.create(
            db_session, dept_p1, UserRole.SUPER_ADMIN, "platform.admin", is_platform_user=True
        ),
    )
