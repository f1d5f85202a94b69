"""Pytest fixtures for Thai payroll engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from thai_payroll.calculators.rules import THAI_2025_BRACKETS
from thai_payroll.calculators.tax_service import PayrollTaxService
from thai_payroll.database import make_session_factory
from thai_payroll.models import (
    Base,
    Employee,
    EmployeeChild,
    Employment,
    FundingAllocation,
    Grant,
    GrantItem,
)
from thai_payroll.services.bracket_service import BracketService

# Use in-memory SQLite for tests (with async support)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TAX_YEAR = 2025


def _enable_savepoints(engine: AsyncEngine) -> None:
    """Let pysqlite emit BEGIN itself so SAVEPOINT works."""

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh test database engine per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )
    _enable_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def brackets(session: AsyncSession) -> int:
    """Seed the official 2025 bracket table."""
    inserted = await BracketService(session).seed_official(TAX_YEAR)
    await session.commit()
    return inserted


@pytest.fixture
def tax_service() -> PayrollTaxService:
    """Orchestrator over the official 2025 table, no database needed."""
    return PayrollTaxService(THAI_2025_BRACKETS, TAX_YEAR)


class Seeder:
    """Builds employees, grants and allocations for service tests."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._staff_seq = 0

    async def grant(
        self,
        code: str,
        organization: str = "SMRU",
        is_hub: bool = False,
        positions: tuple[tuple[str, int | None], ...] = (("Research Assistant", None),),
    ) -> Grant:
        """Grant with one item per (position, capacity) pair."""
        grant = Grant(code=code, name=f"{code} grant", organization=organization, is_hub=is_hub)
        grant.items = [
            GrantItem(grant_position=position, grant_position_number=capacity)
            for position, capacity in positions
        ]
        self.session.add(grant)
        await self.session.flush()
        return grant

    async def employee(
        self,
        first_name: str = "Somchai",
        organization: str = "SMRU",
        status: str = "Local ID",
        date_of_birth: date | None = date(1990, 5, 1),
        has_spouse: bool = False,
        eligible_parents_count: int = 0,
        children: tuple[date | None, ...] = (),
    ) -> Employee:
        self._staff_seq += 1
        employee = Employee(
            staff_id=f"EMP{self._staff_seq:04d}",
            first_name_en=first_name,
            last_name_en="Test",
            organization=organization,
            status=status,
            date_of_birth=date_of_birth,
            has_spouse=has_spouse,
            eligible_parents_count=eligible_parents_count,
        )
        employee.children = [
            EmployeeChild(name=f"Child {i + 1}", date_of_birth=born)
            for i, born in enumerate(children)
        ]
        self.session.add(employee)
        await self.session.flush()
        return employee

    async def employment(
        self,
        employee: Employee | None,
        salary: Decimal | str = "30000",
        start_date: date = date(2024, 1, 1),
        pass_probation_date: date | None = date(2024, 4, 1),
        probation_salary: Decimal | str | None = None,
        employment_type: str = "Full-time",
        department: str = "Research",
        position: str = "Research Assistant",
        end_date: date | None = None,
    ) -> Employment:
        employment = Employment(
            employee_id=employee.id if employee else None,
            employment_type=employment_type,
            department=department,
            position=position,
            start_date=start_date,
            end_date=end_date,
            pass_probation_date=pass_probation_date,
            probation_salary=Decimal(probation_salary) if probation_salary is not None else None,
            pass_probation_salary=Decimal(salary),
            is_active=True,
        )
        self.session.add(employment)
        await self.session.flush()
        return employment

    async def allocation(
        self,
        employment: Employment,
        grant_item: GrantItem,
        effort: Decimal | str = "100",
        start_date: date = date(2024, 1, 1),
        end_date: date | None = None,
        allocation_type: str = "grant",
    ) -> FundingAllocation:
        """Allocation with effort given as a percentage."""
        allocation = FundingAllocation(
            employee_id=employment.employee_id,
            employment_id=employment.id,
            grant_item_id=grant_item.id,
            allocation_type=allocation_type,
            level_of_effort=Decimal(effort) / 100,
            start_date=start_date,
            end_date=end_date,
            is_active=True,
        )
        self.session.add(allocation)
        await self.session.flush()
        return allocation

    async def funded_employee(
        self,
        grant: Grant,
        first_name: str = "Somchai",
        organization: str = "SMRU",
        salary: str = "30000",
        **employee_kwargs,
    ) -> tuple[Employee, Employment, FundingAllocation]:
        """Employee with one employment fully funded by a grant's first item."""
        employee = await self.employee(
            first_name=first_name, organization=organization, **employee_kwargs
        )
        employment = await self.employment(employee, salary=salary)
        allocation = await self.allocation(employment, grant.items[0])
        return employee, employment, allocation


@pytest.fixture
def seed(session: AsyncSession) -> Seeder:
    return Seeder(session)
