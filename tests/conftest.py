import os
from decimal import Decimal
from typing import AsyncGenerator

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["RATE_LIMIT_ENABLED"] = "False"

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backoffice.database.database import Base, get_db
from backoffice.main import app
from backoffice.models.models import Employee
from backoffice.schemas.employee_schema import EmployeeStatus

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def test_engine():
    """
    A fresh in-memory database for each test function.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """
    An httpx client talking to the app, with get_db pointed at the test database.
    """

    async def get_test_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = get_test_db
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client
    app.dependency_overrides.clear()


async def make_employee(
    db: AsyncSession,
    code: str,
    base_salary: str = "25000",
    department: str = "Engineering",
    status: EmployeeStatus = EmployeeStatus.ACTIVE,
) -> Employee:
    employee = Employee(
        employee_code=code,
        first_name="Test",
        last_name=code,
        email=f"{code.lower()}@example.com",
        department=department,
        position="Staff",
        status=status,
        base_salary=Decimal(base_salary),
        currency="PHP",
    )
    db.add(employee)
    await db.commit()
    await db.refresh(employee)
    return employee


@pytest_asyncio.fixture
async def employee_factory(test_db):
    async def factory(code: str, **kwargs) -> Employee:
        return await make_employee(test_db, code, **kwargs)

    return factory
