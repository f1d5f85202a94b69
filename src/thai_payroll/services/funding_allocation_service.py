"""Funding allocation service: the 100% effort rule and grant position capacity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from thai_payroll.calculators.types import round_to_satang
from thai_payroll.models import (
    AllocationType,
    Employee,
    Employment,
    FundingAllocation,
    Grant,
    GrantItem,
)

logger = logging.getLogger(__name__)

FULL_EFFORT = Decimal("100")


class AllocationEffortError(Exception):
    """Raised when allocation efforts of an employment do not total 100%."""

    def __init__(self, total: Decimal):
        self.total = total
        super().__init__(
            "Total effort of all allocations must equal exactly 100%. "
            f"Current total: {total.normalize():f}%"
        )


class GrantCapacityError(Exception):
    """Raised when a grant position has no free slot."""

    def __init__(self, grant_item_id: int, position: str | None, capacity: int, allocated: int):
        self.grant_item_id = grant_item_id
        self.position = position
        self.capacity = capacity
        self.allocated = allocated
        super().__init__(
            f"Grant position '{position}' has reached its maximum capacity of "
            f"{capacity} allocations. Currently allocated: {allocated}"
        )


class AllocationConflictError(Exception):
    """Raised when an employment already has active allocations."""

    def __init__(self, employment_id: int):
        self.employment_id = employment_id
        super().__init__(
            f"Employment {employment_id} already has active funding allocations; "
            "replace them instead"
        )


class AllocationTargetNotFoundError(Exception):
    """Raised when a referenced employee, employment, grant or item is missing."""

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


@dataclass
class AllocationInput:
    """One requested allocation; effort is a percentage 0..100."""

    grant_item_id: int
    level_of_effort: Decimal
    allocated_amount: Decimal | None = None
    allocation_type: str = AllocationType.GRANT


def _active_on(as_of: date):
    return (
        FundingAllocation.is_active.is_(True),
        FundingAllocation.start_date <= as_of,
        or_(FundingAllocation.end_date.is_(None), FundingAllocation.end_date >= as_of),
    )


class FundingAllocationService:
    """Creates and replaces the allocation set of an employment.

    A set is validated as a whole: efforts must total exactly 100 and every
    grant position must have room. Nothing is written unless the whole set
    passes.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def allocate_employee(
        self,
        employee_id: int,
        employment_id: int,
        allocations: list[AllocationInput],
        start_date: date,
        end_date: date | None = None,
        actor: str | None = None,
    ) -> list[FundingAllocation]:
        """Create the first allocation set of an employment."""
        await self._load_employment(employee_id, employment_id)
        self.validate_total_effort(allocations)

        existing = await self._active_allocations(employment_id, start_date)
        if existing:
            raise AllocationConflictError(employment_id)

        await self._check_capacity(allocations, start_date)
        created = self._add_allocations(
            employee_id, employment_id, allocations, start_date, end_date, actor
        )
        await self.session.flush()
        logger.info(
            "Created funding allocations",
            extra={"employment_id": employment_id, "count": len(created), "actor": actor},
        )
        return await self._reload(created)

    async def update_allocations(
        self,
        employment_id: int,
        allocations: list[AllocationInput],
        start_date: date,
        end_date: date | None = None,
        actor: str | None = None,
    ) -> list[FundingAllocation]:
        """Replace the active set; superseded rows are deactivated, not deleted."""
        employment = await self.session.get(Employment, employment_id)
        if employment is None or employment.employee_id is None:
            raise AllocationTargetNotFoundError("Employment", employment_id)
        self.validate_total_effort(allocations)

        superseded = await self._active_allocations(employment_id, start_date)
        await self._check_capacity(
            allocations, start_date, exclude_ids={a.id for a in superseded}
        )

        for allocation in superseded:
            allocation.is_active = False
            allocation.updated_by = actor

        created = self._add_allocations(
            employment.employee_id, employment_id, allocations, start_date, end_date, actor
        )
        await self.session.flush()
        logger.info(
            "Replaced funding allocations",
            extra={
                "employment_id": employment_id,
                "deactivated": len(superseded),
                "created": len(created),
                "actor": actor,
            },
        )
        return await self._reload(created)

    async def get_allocation_summary(
        self, employee_id: int, as_of: date | None = None
    ) -> dict[str, Any]:
        """Active allocations of an employee with their total effort."""
        as_of = as_of or date.today()
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise AllocationTargetNotFoundError("Employee", employee_id)

        result = await self.session.execute(
            select(FundingAllocation)
            .where(FundingAllocation.employee_id == employee_id, *_active_on(as_of))
            .options(selectinload(FundingAllocation.grant_item).selectinload(GrantItem.grant))
            .order_by(FundingAllocation.start_date.desc(), FundingAllocation.id)
        )
        allocations = list(result.scalars().all())
        total = sum((a.level_of_effort for a in allocations), Decimal("0")) * 100

        return {
            "employee": {
                "id": employee.id,
                "staff_id": employee.staff_id,
                "name": employee.full_name,
                "organization": employee.organization,
            },
            "as_of": as_of.isoformat(),
            "total_allocations": len(allocations),
            "total_effort": round_to_satang(total),
            "is_fully_allocated": total == FULL_EFFORT,
            "allocations": [allocation_to_dict(a) for a in allocations],
        }

    async def calculate_available_slots(
        self, grant_id: int, as_of: date | None = None
    ) -> dict[str, Any]:
        """Used and free slots of every position on a grant."""
        as_of = as_of or date.today()
        result = await self.session.execute(
            select(Grant).where(Grant.id == grant_id).options(selectinload(Grant.items))
        )
        grant = result.scalar_one_or_none()
        if grant is None:
            raise AllocationTargetNotFoundError("Grant", grant_id)

        positions = []
        for item in sorted(grant.items, key=lambda i: i.id):
            allocated = await self._count_item_allocations(item.id, as_of)
            capacity = item.grant_position_number or 0
            positions.append(
                {
                    "grant_item_id": item.id,
                    "grant_position": item.grant_position,
                    "capacity": capacity or None,
                    "allocated": allocated,
                    "available": max(capacity - allocated, 0) if capacity else None,
                    "is_full": bool(capacity) and allocated >= capacity,
                }
            )

        return {
            "grant_id": grant.id,
            "grant_code": grant.code,
            "grant_name": grant.name,
            "organization": grant.organization,
            "as_of": as_of.isoformat(),
            "positions": positions,
        }

    @staticmethod
    def validate_total_effort(allocations: list[AllocationInput]) -> Decimal:
        """Total effort in percent; exactly 100 or AllocationEffortError."""
        total = sum((Decimal(a.level_of_effort) for a in allocations), Decimal("0"))
        if total != FULL_EFFORT:
            raise AllocationEffortError(total)
        return total

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_employment(self, employee_id: int, employment_id: int) -> Employment:
        if await self.session.get(Employee, employee_id) is None:
            raise AllocationTargetNotFoundError("Employee", employee_id)
        employment = await self.session.get(Employment, employment_id)
        if employment is None or employment.employee_id != employee_id:
            raise AllocationTargetNotFoundError("Employment", employment_id)
        return employment

    async def _active_allocations(self, employment_id: int, as_of: date) -> list[FundingAllocation]:
        result = await self.session.execute(
            select(FundingAllocation).where(
                FundingAllocation.employment_id == employment_id, *_active_on(as_of)
            )
        )
        return list(result.scalars().all())

    async def _count_item_allocations(
        self, grant_item_id: int, as_of: date, exclude_ids: set[int] | None = None
    ) -> int:
        query = select(func.count(FundingAllocation.id)).where(
            FundingAllocation.grant_item_id == grant_item_id,
            FundingAllocation.allocation_type == AllocationType.GRANT,
            *_active_on(as_of),
        )
        if exclude_ids:
            query = query.where(FundingAllocation.id.not_in(exclude_ids))
        return await self.session.scalar(query) or 0

    async def _check_capacity(
        self,
        allocations: list[AllocationInput],
        as_of: date,
        exclude_ids: set[int] | None = None,
    ) -> None:
        requested: dict[int, int] = {}
        for allocation in allocations:
            if allocation.allocation_type != AllocationType.GRANT:
                continue
            requested[allocation.grant_item_id] = requested.get(allocation.grant_item_id, 0) + 1

        for grant_item_id, count in requested.items():
            item = await self.session.get(GrantItem, grant_item_id)
            if item is None:
                raise AllocationTargetNotFoundError("Grant item", grant_item_id)
            if not item.grant_position_number:
                continue
            allocated = await self._count_item_allocations(grant_item_id, as_of, exclude_ids)
            if allocated + count > item.grant_position_number:
                raise GrantCapacityError(
                    item.id, item.grant_position, item.grant_position_number, allocated
                )

    def _add_allocations(
        self,
        employee_id: int,
        employment_id: int,
        allocations: list[AllocationInput],
        start_date: date,
        end_date: date | None,
        actor: str | None,
    ) -> list[FundingAllocation]:
        created = []
        for data in allocations:
            allocation = FundingAllocation(
                employee_id=employee_id,
                employment_id=employment_id,
                grant_item_id=data.grant_item_id,
                allocation_type=data.allocation_type,
                level_of_effort=Decimal(data.level_of_effort) / 100,
                allocated_amount=data.allocated_amount,
                start_date=start_date,
                end_date=end_date,
                is_active=True,
                created_by=actor,
                updated_by=actor,
            )
            self.session.add(allocation)
            created.append(allocation)
        return created

    async def _reload(self, allocations: list[FundingAllocation]) -> list[FundingAllocation]:
        ids = [a.id for a in allocations]
        result = await self.session.execute(
            select(FundingAllocation)
            .where(FundingAllocation.id.in_(ids))
            .options(selectinload(FundingAllocation.grant_item).selectinload(GrantItem.grant))
            .order_by(FundingAllocation.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())


def allocation_to_dict(allocation: FundingAllocation) -> dict[str, Any]:
    """Serialisable allocation with grant details; needs grant_item loaded."""
    grant = allocation.grant
    return {
        "id": allocation.id,
        "employee_id": allocation.employee_id,
        "employment_id": allocation.employment_id,
        "grant_item_id": allocation.grant_item_id,
        "grant_id": grant.id if grant else None,
        "grant_code": grant.code if grant else None,
        "grant_position": allocation.grant_item.grant_position if allocation.grant_item else None,
        "allocation_type": allocation.allocation_type,
        "level_of_effort": round_to_satang(allocation.level_of_effort * 100),
        "allocated_amount": allocation.allocated_amount,
        "start_date": allocation.start_date.isoformat(),
        "end_date": allocation.end_date.isoformat() if allocation.end_date else None,
        "is_active": allocation.is_active,
        "label": allocation.label,
    }
