"""Test fixtures for cohort-tracker-api."""

from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cohort_tracker.auth import Caller, RequestContext, role_cache
from cohort_tracker.auth.dependencies import get_request_context
from cohort_tracker.db import get_db
from cohort_tracker.main import app
from cohort_tracker.models import (
    Batch,
    Base,
    Feature,
    Organization,
    OrganizationMember,
    OrganizationRole,
    Project,
    User,
)

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def clear_role_cache():
    role_cache.invalidate()
    yield
    role_cache.invalidate()


@pytest.fixture
async def async_engine():
    """Create a test database engine with schema initialized."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(async_engine, expire_on_commit=False)
    async with async_session_maker() as session:
        yield session


@pytest.fixture
async def client(async_engine) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with isolated database.

    Requests are unauthenticated until ``login`` is used.
    """
    async_session_maker = async_sessionmaker(async_engine, expire_on_commit=False)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def login() -> Callable[..., None]:
    """Act as a user, optionally with an active organization, on later requests."""

    def _login(user: User, org: Organization | None = None) -> None:
        ctx = RequestContext(
            user_id=user.id, active_org_id=org.id if org is not None else None
        )

        async def override_get_request_context():
            return ctx

        app.dependency_overrides[get_request_context] = override_get_request_context

    return _login


@dataclass
class OrgFixture:
    org: Organization
    admin: User
    pm: User
    student: User
    other_student: User
    batch: Batch

    def caller(self, user: User, role: OrganizationRole) -> Caller:
        return Caller(user_id=user.id, org_id=self.org.id, role=role)

    @property
    def admin_caller(self) -> Caller:
        return self.caller(self.admin, OrganizationRole.ADMIN)

    @property
    def pm_caller(self) -> Caller:
        return self.caller(self.pm, OrganizationRole.PM)

    @property
    def student_caller(self) -> Caller:
        return self.caller(self.student, OrganizationRole.STUDENT)


async def create_org(
    session: AsyncSession, name: str, slug: str, prefix: str
) -> OrgFixture:
    """Organization with an admin, a pm, two students and a batch."""
    org = Organization(name=name, slug=slug)
    session.add(org)
    await session.flush()

    batch = Batch(organization_id=org.id, name="Spring", slug="spring")
    session.add(batch)
    await session.flush()

    users = {}
    for key, role in [
        ("admin", OrganizationRole.ADMIN),
        ("pm", OrganizationRole.PM),
        ("student", OrganizationRole.STUDENT),
        ("other_student", OrganizationRole.STUDENT),
    ]:
        user = User(
            external_id=f"{prefix}-{key}",
            email=f"{key}@{prefix}.example.com",
            display_name=f"{prefix} {key}",
        )
        if role == OrganizationRole.STUDENT:
            user.batch_id = batch.id
        session.add(user)
        await session.flush()
        session.add(
            OrganizationMember(organization_id=org.id, user_id=user.id, role=role)
        )
        users[key] = user

    await session.commit()
    return OrgFixture(org=org, batch=batch, **users)


@pytest.fixture
async def acme(async_session: AsyncSession) -> OrgFixture:
    return await create_org(async_session, "Acme Academy", "acme-academy", "acme")


@pytest.fixture
async def globex(async_session: AsyncSession) -> OrgFixture:
    """A second tenant, for isolation tests."""
    return await create_org(async_session, "Globex School", "globex-school", "globex")


async def create_project(
    session: AsyncSession,
    org: Organization,
    name: str = "Todo App",
    features: tuple[str, ...] = ("Login", "Signup", "Dashboard"),
) -> tuple[Project, list[Feature]]:
    project = Project(organization_id=org.id, name=name, description="Build it")
    session.add(project)
    await session.flush()

    created = []
    for title in features:
        feature = Feature(project_id=project.id, title=title, tags=["web"])
        session.add(feature)
        await session.flush()
        created.append(feature)

    await session.commit()
    return project, created


@pytest.fixture
async def todo_project(
    async_session: AsyncSession, acme: OrgFixture
) -> tuple[Project, list[Feature]]:
    """A project of acme with three features."""
    return await create_project(async_session, acme.org)
