"""Tests for funding allocation rules: 100% effort and position capacity."""

from datetime import date
from decimal import Decimal

import pytest

from thai_payroll.services.funding_allocation_service import (
    AllocationConflictError,
    AllocationEffortError,
    AllocationInput,
    AllocationTargetNotFoundError,
    FundingAllocationService,
    GrantCapacityError,
)

START = date(2025, 1, 1)


async def employee_with_employment(seed, first_name="Somchai"):
    employee = await seed.employee(first_name=first_name)
    employment = await seed.employment(employee)
    return employee, employment


class TestTotalEffort:
    """Allocation sets must total exactly 100%."""

    @pytest.mark.parametrize("efforts", [("99",), ("60", "41"), ("50", "49.99")])
    async def test_not_exactly_100_rejected(self, session, seed, efforts):
        """Totals other than 100 are refused and nothing is written."""
        grant = await seed.grant("GR-001", positions=(("RA", None), ("PI", None)))
        employee, employment = await employee_with_employment(seed)
        inputs = [
            AllocationInput(grant_item_id=grant.items[i % 2].id, level_of_effort=Decimal(e))
            for i, e in enumerate(efforts)
        ]

        with pytest.raises(AllocationEffortError) as exc_info:
            await FundingAllocationService(session).allocate_employee(
                employee.id, employment.id, inputs, START
            )
        assert exc_info.value.total == sum(Decimal(e) for e in efforts)
        assert "must equal exactly 100%" in str(exc_info.value)

    def test_error_message_shows_total(self):
        """The message carries the current total."""
        assert str(AllocationEffortError(Decimal("101"))).endswith("Current total: 101%")

    async def test_split_allocation_created(self, session, seed):
        """60/40 across two positions is stored as fractions."""
        grant = await seed.grant("GR-001", positions=(("RA", None), ("PI", None)))
        employee, employment = await employee_with_employment(seed)

        created = await FundingAllocationService(session).allocate_employee(
            employee.id,
            employment.id,
            [
                AllocationInput(grant_item_id=grant.items[0].id, level_of_effort=Decimal("60")),
                AllocationInput(grant_item_id=grant.items[1].id, level_of_effort=Decimal("40")),
            ],
            START,
            actor="hr",
        )

        assert [a.level_of_effort for a in created] == [Decimal("0.6"), Decimal("0.4")]
        assert created[0].label == "GR-001 - RA (60%)"
        assert created[0].created_by == "hr"


class TestCapacity:
    """Grant positions have a fixed number of slots."""

    async def test_full_position_rejected(self, session, seed):
        """A one-slot position already taken refuses a second employee."""
        grant = await seed.grant("GR-001", positions=(("Research Assistant", 1),))
        await seed.funded_employee(grant, first_name="First")
        employee, employment = await employee_with_employment(seed, "Second")

        with pytest.raises(GrantCapacityError) as exc_info:
            await FundingAllocationService(session).allocate_employee(
                employee.id,
                employment.id,
                [AllocationInput(grant_item_id=grant.items[0].id, level_of_effort=Decimal("100"))],
                START,
            )
        assert exc_info.value.capacity == 1
        assert exc_info.value.allocated == 1
        assert str(exc_info.value) == (
            "Grant position 'Research Assistant' has reached its maximum capacity of "
            "1 allocations. Currently allocated: 1"
        )

    async def test_requests_in_one_set_count_together(self, session, seed):
        """Two allocations to a one-slot position in one set are refused."""
        grant = await seed.grant("GR-001", positions=(("RA", 1),))
        employee, employment = await employee_with_employment(seed)
        item_id = grant.items[0].id

        with pytest.raises(GrantCapacityError):
            await FundingAllocationService(session).allocate_employee(
                employee.id,
                employment.id,
                [
                    AllocationInput(grant_item_id=item_id, level_of_effort=Decimal("50")),
                    AllocationInput(grant_item_id=item_id, level_of_effort=Decimal("50")),
                ],
                START,
            )

    async def test_unlimited_position(self, session, seed):
        """Zero capacity means no limit."""
        grant = await seed.grant("GR-001", positions=(("RA", 0),))
        await seed.funded_employee(grant, first_name="First")
        employee, employment = await employee_with_employment(seed, "Second")

        created = await FundingAllocationService(session).allocate_employee(
            employee.id,
            employment.id,
            [AllocationInput(grant_item_id=grant.items[0].id, level_of_effort=Decimal("100"))],
            START,
        )
        assert len(created) == 1

    async def test_org_funded_allocations_use_no_slot(self, session, seed):
        """Only grant allocations count against capacity."""
        grant = await seed.grant("GR-001", positions=(("RA", 1),))
        await seed.funded_employee(grant, first_name="First")
        employee, employment = await employee_with_employment(seed, "Second")

        created = await FundingAllocationService(session).allocate_employee(
            employee.id,
            employment.id,
            [
                AllocationInput(
                    grant_item_id=grant.items[0].id,
                    level_of_effort=Decimal("100"),
                    allocation_type="org_funded",
                )
            ],
            START,
        )
        assert created[0].allocation_type == "org_funded"


class TestConflictAndReplace:
    """Creating over an active set and replacing it."""

    async def test_second_create_conflicts(self, session, seed):
        """An employment with active allocations must be replaced, not re-created."""
        grant = await seed.grant("GR-001")
        employee, employment, _ = await seed.funded_employee(grant)

        with pytest.raises(AllocationConflictError):
            await FundingAllocationService(session).allocate_employee(
                employee.id,
                employment.id,
                [AllocationInput(grant_item_id=grant.items[0].id, level_of_effort=Decimal("100"))],
                START,
            )

    async def test_replace_deactivates_previous_set(self, session, seed):
        """Superseded rows stay in place, inactive."""
        grant = await seed.grant("GR-001", positions=(("RA", None), ("PI", None)))
        employee, employment, old = await seed.funded_employee(grant)

        created = await FundingAllocationService(session).update_allocations(
            employment.id,
            [
                AllocationInput(grant_item_id=grant.items[0].id, level_of_effort=Decimal("70")),
                AllocationInput(grant_item_id=grant.items[1].id, level_of_effort=Decimal("30")),
            ],
            START,
            actor="hr",
        )

        assert old.is_active is False
        assert old.updated_by == "hr"
        assert [a.level_of_effort for a in created] == [Decimal("0.7"), Decimal("0.3")]
        assert all(a.employee_id == employee.id for a in created)

    async def test_replace_can_reuse_own_slot(self, session, seed):
        """The superseded allocation frees its own slot."""
        grant = await seed.grant("GR-001", positions=(("RA", 1),))
        _, employment, _ = await seed.funded_employee(grant)

        created = await FundingAllocationService(session).update_allocations(
            employment.id,
            [AllocationInput(grant_item_id=grant.items[0].id, level_of_effort=Decimal("100"))],
            START,
        )
        assert len(created) == 1

    async def test_replace_with_bad_total_keeps_previous_set(self, session, seed):
        """A failed replace leaves the active set untouched."""
        grant = await seed.grant("GR-001")
        _, employment, old = await seed.funded_employee(grant)

        with pytest.raises(AllocationEffortError):
            await FundingAllocationService(session).update_allocations(
                employment.id,
                [AllocationInput(grant_item_id=grant.items[0].id, level_of_effort=Decimal("80"))],
                START,
            )
        assert old.is_active is True


class TestSummaryAndSlots:
    """Read views over allocations."""

    async def test_allocation_summary(self, session, seed):
        """A fully funded employee totals 100%."""
        grant = await seed.grant("GR-001")
        employee, _, _ = await seed.funded_employee(grant)

        summary = await FundingAllocationService(session).get_allocation_summary(
            employee.id, as_of=START
        )

        assert summary["total_allocations"] == 1
        assert summary["total_effort"] == Decimal("100")
        assert summary["is_fully_allocated"] is True
        assert summary["employee"]["name"] == "Somchai Test"
        assert summary["allocations"][0]["grant_code"] == "GR-001"
        assert summary["allocations"][0]["label"] == "GR-001 - Research Assistant (100%)"

    async def test_summary_before_allocation_start(self, session, seed):
        """Allocations that have not started are not counted."""
        grant = await seed.grant("GR-001")
        employee, _, _ = await seed.funded_employee(grant)

        summary = await FundingAllocationService(session).get_allocation_summary(
            employee.id, as_of=date(2023, 12, 31)
        )
        assert summary["total_allocations"] == 0
        assert summary["is_fully_allocated"] is False

    async def test_available_slots(self, session, seed):
        """Used and free slots per position."""
        grant = await seed.grant("GR-001", positions=(("RA", 2), ("PI", None)))
        await seed.funded_employee(grant)

        slots = await FundingAllocationService(session).calculate_available_slots(
            grant.id, as_of=START
        )

        limited, unlimited = slots["positions"]
        assert limited == {
            "grant_item_id": grant.items[0].id,
            "grant_position": "RA",
            "capacity": 2,
            "allocated": 1,
            "available": 1,
            "is_full": False,
        }
        assert unlimited["capacity"] is None
        assert unlimited["available"] is None
        assert unlimited["is_full"] is False


class TestMissingTargets:
    """Unknown ids are reported as not found."""

    async def test_unknown_employee(self, session):
        """Employee lookups fail first."""
        with pytest.raises(AllocationTargetNotFoundError) as exc_info:
            await FundingAllocationService(session).allocate_employee(999, 1, [], START)
        assert str(exc_info.value) == "Employee 999 not found"

    async def test_employment_of_another_employee(self, session, seed):
        """An employment must belong to the employee."""
        _, employment = await employee_with_employment(seed, "Owner")
        other = await seed.employee(first_name="Other")

        with pytest.raises(AllocationTargetNotFoundError) as exc_info:
            await FundingAllocationService(session).allocate_employee(
                other.id, employment.id, [], START
            )
        assert exc_info.value.entity == "Employment"

    async def test_unknown_grant_item(self, session, seed):
        """A missing grant item is reported during the capacity check."""
        employee, employment = await employee_with_employment(seed)

        with pytest.raises(AllocationTargetNotFoundError) as exc_info:
            await FundingAllocationService(session).allocate_employee(
                employee.id,
                employment.id,
                [AllocationInput(grant_item_id=999, level_of_effort=Decimal("100"))],
                START,
            )
        assert exc_info.value.entity == "Grant item"

    async def test_unknown_grant(self, session):
        """Slots for an unknown grant fail."""
        with pytest.raises(AllocationTargetNotFoundError):
            await FundingAllocationService(session).calculate_available_slots(999)

    async def test_unknown_employee_summary(self, session):
        """Summary for an unknown employee fails."""
        with pytest.raises(AllocationTargetNotFoundError):
            await FundingAllocationService(session).get_allocation_summary(999)
