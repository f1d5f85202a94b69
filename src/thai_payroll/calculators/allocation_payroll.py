"""Allocation-weighted payroll for employees funded by several grants."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from thai_payroll.calculators.advance_detector import funding_organization, needs_advance
from thai_payroll.calculators.profile import (
    build_tax_profile,
    month_bounds,
    months_working_in_year,
    whole_months_between,
    working_days_between,
)
from thai_payroll.calculators.rules import BenefitRules
from thai_payroll.calculators.tax_service import PayrollTaxService
from thai_payroll.calculators.types import ZERO, PayrollCalculationResult, round_to_satang
from thai_payroll.models.employee import EmployeeStatus


class NoActiveEmploymentError(Exception):
    """Raised when no employment covers the pay period."""

    def __init__(self, employee_id: int | None, as_of_date: date):
        self.employee_id = employee_id
        self.as_of_date = as_of_date
        super().__init__(f"Employee {employee_id} has no active employment on {as_of_date}")


@dataclass
class AllocationPayroll:
    """Payroll figures for one funding allocation in one pay period."""

    allocation_id: int | None
    employment_id: int
    employee_id: int
    staff_id: str
    employee_name: str
    department: str
    position: str
    employment_type: str
    fte_percentage: Decimal
    funding_source: str
    funding_label: str
    funding_type: str
    pay_period_date: date

    gross_salary: Decimal
    gross_salary_by_fte: Decimal
    salary_increase: Decimal
    compensation_refund: Decimal
    thirteenth_month_salary: Decimal
    pvd: Decimal
    saving_fund: Decimal
    employer_social_security: Decimal
    employee_social_security: Decimal
    employer_health_welfare: Decimal
    employee_health_welfare: Decimal
    income_tax: Decimal
    tax_result: PayrollCalculationResult

    needs_advance: bool = False
    advance_from: str | None = None
    advance_to: str | None = None
    salary_bonus: Decimal = ZERO

    @property
    def pvd_saving_fund_employee(self) -> Decimal:
        return self.pvd + self.saving_fund

    @property
    def total_income(self) -> Decimal:
        return self.gross_salary_by_fte + self.compensation_refund + self.thirteenth_month_salary

    @property
    def total_deduction(self) -> Decimal:
        return (
            self.pvd_saving_fund_employee
            + self.employee_social_security
            + self.employee_health_welfare
            + self.income_tax
        )

    @property
    def employer_contribution(self) -> Decimal:
        return self.employer_social_security + self.employer_health_welfare

    @property
    def net_salary(self) -> Decimal:
        return round_to_satang(self.total_income - self.total_deduction)

    @property
    def total_salary(self) -> Decimal:
        """Cost to the organisation."""
        return round_to_satang(self.total_income + self.employer_contribution)

    @property
    def total_pvd_saving_fund(self) -> Decimal:
        return self.pvd_saving_fund_employee * 2

    def calculations(self) -> dict[str, Decimal]:
        """Payroll line values keyed as they are stored."""
        return {
            "gross_salary": self.gross_salary,
            "gross_salary_by_fte": self.gross_salary_by_fte,
            "salary_increase_1_percent": self.salary_increase,
            "compensation_refund": self.compensation_refund,
            "thirteenth_month_salary": self.thirteenth_month_salary,
            "pvd": self.pvd,
            "saving_fund": self.saving_fund,
            "pvd_saving_fund_employee": self.pvd_saving_fund_employee,
            "employer_social_security": self.employer_social_security,
            "employee_social_security": self.employee_social_security,
            "employer_health_welfare": self.employer_health_welfare,
            "employee_health_welfare": self.employee_health_welfare,
            "income_tax": self.income_tax,
            "net_salary": self.net_salary,
            "total_salary": self.total_salary,
            "total_pvd_saving_fund": self.total_pvd_saving_fund,
            "salary_bonus": self.salary_bonus,
            "total_income": self.total_income,
            "total_deduction": self.total_deduction,
            "employer_contribution": self.employer_contribution,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "allocation_id": self.allocation_id,
            "employment_id": self.employment_id,
            "employee_id": self.employee_id,
            "staff_id": self.staff_id,
            "employee_name": self.employee_name,
            "department": self.department,
            "position": self.position,
            "employment_type": self.employment_type,
            "fte_percentage": self.fte_percentage,
            "funding_source": self.funding_source,
            "funding_label": self.funding_label,
            "funding_type": self.funding_type,
            "pay_period_date": self.pay_period_date.isoformat(),
            "needs_advance": self.needs_advance,
            "advance_from": self.advance_from,
            "advance_to": self.advance_to,
            "calculations": self.calculations(),
        }


class AllocationPayrollCalculator:
    """Scales an employment's salary by allocation effort and prices it.

    Never persists; used by preview and batch paths alike.

    Items (per allocation, stable order):
    1) Gross salary (confirmed contract salary)
    2) Gross salary by FTE, with probation and start-month proration
    3) Compensation/refund
    4) 13th month accrual
    5) PVD / saving fund
    6-7) Employer / employee social security
    8-9) Employer / employee health welfare
    10) Income tax via the tax orchestrator
    """

    def __init__(self, tax_service: PayrollTaxService, benefits: BenefitRules | None = None):
        self.tax_service = tax_service
        self.benefits = benefits or BenefitRules()

    def calculate_allocation_payroll(
        self, employee: Any, allocation: Any, pay_period_date: date
    ) -> AllocationPayroll:
        """Payroll for one allocation of an employee in a pay period."""
        employment = self.resolve_employment(employee, allocation, pay_period_date)

        gross_salary = Decimal(employment.pass_probation_salary)
        increase = self.annual_increase(employment, pay_period_date)
        base_salary = self.base_monthly_salary(employment, pay_period_date) + increase
        by_fte = self.gross_salary_by_fte(
            employment, base_salary, Decimal(allocation.level_of_effort), pay_period_date
        )

        compensation_refund = ZERO
        thirteenth = self.thirteenth_month_salary(employment, by_fte, pay_period_date)
        pvd, saving_fund = self.pvd_saving_fund(employee, employment, by_fte, pay_period_date)

        tax_result = self.tax_service.calculate_employee_tax(
            by_fte,
            build_tax_profile(employee, pay_period_date),
            months_working=months_working_in_year(employment.start_date, pay_period_date),
        )
        ssf = tax_result.social_security

        employee_hw = self.benefits.health_welfare_for(by_fte)
        employer_hw = (
            employee_hw
            if employee.organization in self.benefits.employer_health_welfare_organizations
            and employee.status in self.benefits.employer_health_welfare_statuses
            else ZERO
        )

        grant = allocation.grant
        position = (
            allocation.grant_item.grant_position
            if allocation.grant_item is not None and allocation.grant_item.grant_position
            else (employment.position or "N/A")
        )
        advance_needed = needs_advance(employee, allocation)

        return AllocationPayroll(
            allocation_id=allocation.id,
            employment_id=employment.id,
            employee_id=employee.id,
            staff_id=employee.staff_id,
            employee_name=employee.full_name,
            department=employment.department or "N/A",
            position=employment.position or "N/A",
            employment_type=employment.employment_type,
            fte_percentage=round_to_satang(Decimal(allocation.level_of_effort) * 100),
            funding_source=f"{grant.code if grant else 'Unknown grant'} - {position}",
            funding_label=allocation.label,
            funding_type=allocation.allocation_type,
            pay_period_date=pay_period_date,
            gross_salary=round_to_satang(gross_salary),
            gross_salary_by_fte=by_fte,
            salary_increase=increase,
            compensation_refund=compensation_refund,
            thirteenth_month_salary=thirteenth,
            pvd=pvd,
            saving_fund=saving_fund,
            employer_social_security=ssf.employer_contribution,
            employee_social_security=ssf.employee_contribution,
            employer_health_welfare=employer_hw,
            employee_health_welfare=employee_hw,
            income_tax=tax_result.monthly_tax,
            tax_result=tax_result,
            needs_advance=advance_needed,
            advance_from=funding_organization(allocation) if advance_needed else None,
            advance_to=employee.organization if advance_needed else None,
        )

    @staticmethod
    def resolve_employment(employee: Any, allocation: Any, pay_period_date: date) -> Any:
        """The active employment funded by the allocation on the pay date.

        Unsaved allocations without an employment id fall back to the
        employee's active employment covering the date.
        """
        if allocation.employment_id is not None:
            employment = next(
                (e for e in employee.employments if e.id == allocation.employment_id), None
            )
        else:
            employment = employee.employment_on(pay_period_date)

        if (
            employment is None
            or not employment.is_active
            or not employment.is_active_on(pay_period_date)
        ):
            raise NoActiveEmploymentError(employee.id, pay_period_date)
        return employment

    def base_monthly_salary(self, employment: Any, pay_period_date: date) -> Decimal:
        """Contract salary for the month, split by days when probation ends mid-month."""
        confirmed = Decimal(employment.pass_probation_salary)
        pass_date = employment.pass_probation_date
        if employment.probation_salary is None or pass_date is None:
            return confirmed

        probation = Decimal(employment.probation_salary)
        month_start, month_end = month_bounds(pay_period_date)
        if pass_date <= month_start:
            return confirmed
        if pass_date > month_end:
            return probation

        days_in_month = month_end.day
        probation_days = (pass_date - month_start).days
        return (
            probation * probation_days + confirmed * (days_in_month - probation_days)
        ) / days_in_month

    def annual_increase(self, employment: Any, pay_period_date: date) -> Decimal:
        """1% raise once 365 working days have been served."""
        worked = working_days_between(employment.start_date, pay_period_date)
        if worked >= self.benefits.annual_increase_working_days:
            return round_to_satang(
                Decimal(employment.pass_probation_salary) * self.benefits.annual_increase_rate / 100
            )
        return ZERO

    def gross_salary_by_fte(
        self,
        employment: Any,
        monthly_salary: Decimal,
        level_of_effort: Decimal,
        pay_period_date: date,
    ) -> Decimal:
        """Salary scaled by effort, prorated when employment began this month."""
        amount = monthly_salary * level_of_effort
        start = employment.start_date
        month_start, month_end = month_bounds(pay_period_date)
        if month_start <= start <= month_end:
            days_worked = (month_end - start).days + 1
            amount = amount / month_end.day * days_worked
        return round_to_satang(amount)

    def thirteenth_month_salary(
        self, employment: Any, by_fte: Decimal, pay_period_date: date
    ) -> Decimal:
        service = whole_months_between(employment.start_date, pay_period_date)
        if service >= self.benefits.thirteenth_month_min_service_months:
            return round_to_satang(by_fte / 12)
        return ZERO

    def pvd_saving_fund(
        self, employee: Any, employment: Any, by_fte: Decimal, pay_period_date: date
    ) -> tuple[Decimal, Decimal]:
        """(pvd, saving_fund) deducted once probation has been passed."""
        pass_date = employment.pass_probation_date
        if pass_date is None or pass_date > pay_period_date:
            return ZERO, ZERO
        if employee.status == EmployeeStatus.LOCAL_ID:
            return round_to_satang(by_fte * self.benefits.pvd_rate / 100), ZERO
        if employee.status == EmployeeStatus.LOCAL_NON_ID:
            return ZERO, round_to_satang(by_fte * self.benefits.saving_fund_rate / 100)
        return ZERO, ZERO
