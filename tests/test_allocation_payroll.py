"""Unit tests for AllocationPayrollCalculator on unsaved records."""

from datetime import date
from decimal import Decimal

import pytest

from thai_payroll.calculators.allocation_payroll import (
    AllocationPayrollCalculator,
    NoActiveEmploymentError,
)
from thai_payroll.calculators.rules import BenefitRules
from thai_payroll.models import Employee, Employment, FundingAllocation, Grant, GrantItem

JAN_2025 = date(2025, 1, 31)


def make_employee(
    organization="SMRU",
    status="Local ID",
    salary="30000",
    start_date=date(2024, 1, 1),
    pass_probation_date=date(2024, 4, 1),
    probation_salary=None,
):
    employment = Employment(
        employment_type="Full-time",
        department="Research",
        position="Research Assistant",
        start_date=start_date,
        pass_probation_date=pass_probation_date,
        probation_salary=Decimal(probation_salary) if probation_salary else None,
        pass_probation_salary=Decimal(salary),
        is_active=True,
    )
    return Employee(
        staff_id="EMP0001",
        first_name_en="Somchai",
        last_name_en="Test",
        organization=organization,
        status=status,
        date_of_birth=date(1990, 5, 1),
        has_spouse=False,
        eligible_parents_count=0,
        children=[],
        employments=[employment],
    )


def make_allocation(effort="1", grant_organization="SMRU", code="GR-001"):
    grant = Grant(code=code, name="Malaria study", organization=grant_organization, is_hub=False)
    item = GrantItem(grant=grant, grant_position="Research Assistant", grant_position_number=2)
    return FundingAllocation(
        grant_item=item,
        allocation_type="grant",
        level_of_effort=Decimal(effort),
        start_date=date(2024, 1, 1),
        is_active=True,
    )


@pytest.fixture
def calculator(tax_service) -> AllocationPayrollCalculator:
    return AllocationPayrollCalculator(tax_service)


class TestFullTimeLocal:
    """A Thai ID holder funded 100% by one grant."""

    def test_line_items(self, calculator):
        """Every payroll item for a confirmed 30,000 salary."""
        result = calculator.calculate_allocation_payroll(
            make_employee(), make_allocation(), JAN_2025
        )

        assert result.gross_salary == Decimal("30000.00")
        assert result.gross_salary_by_fte == Decimal("30000.00")
        assert result.salary_increase == Decimal("0")
        assert result.thirteenth_month_salary == Decimal("2500.00")
        assert result.pvd == Decimal("2250.00")
        assert result.saving_fund == Decimal("0")
        assert result.income_tax == Decimal("208.33")
        assert result.employee_social_security == Decimal("750.00")
        assert result.employer_social_security == Decimal("750.00")
        assert result.employee_health_welfare == Decimal("150")
        assert result.employer_health_welfare == Decimal("0")

    def test_totals(self, calculator):
        """Income, deductions, net and cost to the organisation."""
        result = calculator.calculate_allocation_payroll(
            make_employee(), make_allocation(), JAN_2025
        )

        assert result.total_income == Decimal("32500.00")
        assert result.total_deduction == Decimal("3358.33")
        assert result.net_salary == Decimal("29141.67")
        assert result.total_salary == Decimal("33250.00")
        assert result.total_pvd_saving_fund == Decimal("4500.00")

    def test_to_dict_labels(self, calculator):
        """Serialised row names the funding source and effort."""
        data = calculator.calculate_allocation_payroll(
            make_employee(), make_allocation(), JAN_2025
        ).to_dict()

        assert data["employee_name"] == "Somchai Test"
        assert data["funding_source"] == "GR-001 - Research Assistant"
        assert data["funding_label"] == "GR-001 - Research Assistant (100%)"
        assert data["fte_percentage"] == Decimal("100")
        assert data["pay_period_date"] == "2025-01-31"
        assert data["needs_advance"] is False
        assert data["calculations"]["salary_increase_1_percent"] == Decimal("0")

    def test_saving_fund_for_non_id_local(self, calculator):
        """Local non ID staff pay into the saving fund instead of PVD."""
        result = calculator.calculate_allocation_payroll(
            make_employee(status="Local non ID"), make_allocation(), JAN_2025
        )
        assert result.pvd == Decimal("0")
        assert result.saving_fund == Decimal("2250.00")

    def test_no_fund_before_probation_passes(self, calculator):
        """PVD starts once probation is passed."""
        employee = make_employee(
            start_date=date(2024, 12, 1), pass_probation_date=date(2025, 3, 1)
        )
        result = calculator.calculate_allocation_payroll(employee, make_allocation(), JAN_2025)
        assert result.pvd == Decimal("0")
        assert result.thirteenth_month_salary == Decimal("0")


class TestPartialEffort:
    """Expat funded 60% by an SMRU grant."""

    def test_scaled_items(self, calculator):
        """Salary scales by effort and employer welfare is paid."""
        result = calculator.calculate_allocation_payroll(
            make_employee(status="Expat"), make_allocation(effort="0.6"), JAN_2025
        )

        assert result.gross_salary_by_fte == Decimal("18000.00")
        assert result.thirteenth_month_salary == Decimal("1500.00")
        assert result.pvd == Decimal("0")
        assert result.income_tax == Decimal("0.00")
        assert result.employee_health_welfare == Decimal("150")
        assert result.employer_health_welfare == Decimal("150")
        assert result.fte_percentage == Decimal("60")

    def test_welfare_tiers(self):
        """Lower salaries get the lower welfare tiers."""
        benefits = BenefitRules()
        assert benefits.health_welfare_for(Decimal("15000")) == Decimal("100")
        assert benefits.health_welfare_for(Decimal("5000")) == Decimal("60")
        assert benefits.health_welfare_for(Decimal("0")) == Decimal("60")


class TestProration:
    """Mid-month probation and start dates."""

    def test_probation_ends_mid_month(self, calculator):
        """Days before the pass date are paid at the probation salary."""
        employee = make_employee(
            start_date=date(2025, 1, 1),
            pass_probation_date=date(2025, 3, 16),
            probation_salary="20000",
        )
        result = calculator.calculate_allocation_payroll(
            employee, make_allocation(), date(2025, 3, 31)
        )
        assert result.gross_salary_by_fte == Decimal("25161.29")

    def test_probation_month_before_pass_date(self, calculator):
        """A whole month before the pass date pays the probation salary."""
        employee = make_employee(
            start_date=date(2025, 1, 1),
            pass_probation_date=date(2025, 4, 1),
            probation_salary="20000",
        )
        result = calculator.calculate_allocation_payroll(
            employee, make_allocation(), date(2025, 2, 28)
        )
        assert result.gross_salary_by_fte == Decimal("20000.00")

    def test_started_mid_month(self, calculator):
        """The start month is prorated by calendar days worked."""
        employee = make_employee(start_date=date(2025, 3, 11), pass_probation_date=date(2025, 6, 11))
        result = calculator.calculate_allocation_payroll(
            employee, make_allocation(), date(2025, 3, 31)
        )
        assert result.gross_salary_by_fte == Decimal("20322.58")
        assert result.tax_result.months_working == 10

    def test_annual_increase_after_365_working_days(self, calculator):
        """Two years of service add a 1% raise."""
        employee = make_employee(start_date=date(2023, 1, 2), pass_probation_date=date(2023, 4, 1))
        result = calculator.calculate_allocation_payroll(employee, make_allocation(), JAN_2025)
        assert result.salary_increase == Decimal("300.00")
        assert result.gross_salary_by_fte == Decimal("30300.00")

    def test_no_employment_on_payday(self, calculator):
        """An employment that starts after payday cannot be paid."""
        employee = make_employee(start_date=date(2025, 2, 1))
        with pytest.raises(NoActiveEmploymentError):
            calculator.calculate_allocation_payroll(employee, make_allocation(), JAN_2025)


class TestEmploymentResolution:
    """Which employment prices an allocation."""

    @pytest.fixture
    def rehired(self):
        """An old contract left open but deactivated, and the current one."""
        employee = make_employee(salary="20000", start_date=date(2023, 1, 1))
        old = employee.employments[0]
        old.id = 1
        old.is_active = False
        current = Employment(
            id=2,
            employment_type="Full-time",
            start_date=date(2024, 6, 1),
            pass_probation_date=date(2024, 9, 1),
            pass_probation_salary=Decimal("50000"),
            is_active=True,
        )
        employee.employments.append(current)
        return employee

    def test_uses_the_allocated_employment(self, calculator, rehired):
        """Salary comes from the employment the allocation funds."""
        allocation = make_allocation()
        allocation.employment_id = 2

        result = calculator.calculate_allocation_payroll(rehired, allocation, JAN_2025)

        assert result.employment_id == 2
        assert result.gross_salary == Decimal("50000.00")
        assert result.gross_salary_by_fte == Decimal("50000.00")

    def test_inactive_allocated_employment(self, calculator, rehired):
        """An allocation on a deactivated employment is not paid."""
        allocation = make_allocation()
        allocation.employment_id = 1

        with pytest.raises(NoActiveEmploymentError):
            calculator.calculate_allocation_payroll(rehired, allocation, JAN_2025)

    def test_fallback_skips_inactive_employment(self, calculator, rehired):
        """Without an employment id the active covering employment is used."""
        result = calculator.calculate_allocation_payroll(rehired, make_allocation(), JAN_2025)
        assert result.employment_id == 2


class TestCrossSubsidiaryFunding:
    """Grants of one subsidiary paying another's staff."""

    def test_flags_advance(self, calculator):
        """BHF staff on an SMRU grant need an advance from SMRU."""
        result = calculator.calculate_allocation_payroll(
            make_employee(organization="BHF"), make_allocation(grant_organization="SMRU"), JAN_2025
        )
        assert result.needs_advance is True
        assert result.advance_from == "SMRU"
        assert result.advance_to == "BHF"

    def test_same_subsidiary_needs_nothing(self, calculator):
        """Home-subsidiary funding does not need an advance."""
        result = calculator.calculate_allocation_payroll(
            make_employee(organization="BHF"), make_allocation(grant_organization="BHF"), JAN_2025
        )
        assert result.needs_advance is False
        assert result.advance_from is None
