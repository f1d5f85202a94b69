"""Employment deduction and personal allowances."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from thai_payroll.calculators.rules import TaxYearRules
from thai_payroll.calculators.types import (
    ZERO,
    AllowanceBreakdown,
    DeductionResult,
    EmployeeTaxProfile,
    to_decimal,
)


class InvalidCalculationInputError(Exception):
    """Raised when a monetary input is missing or out of range."""

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} ({value!r}): {reason}")


class DeductionCalculator:
    """Computes deductions applied before progressive tax.

    Employment deduction comes first (Revenue Code Section 42(1)), then
    personal allowances (Section 42(2-6)). Pure function of its inputs.
    """

    def __init__(self, rules: TaxYearRules):
        self.rules = rules

    def employment_deduction(self, gross_annual_income: Decimal) -> Decimal:
        """min(income * rate, cap)."""
        calculated = gross_annual_income * self.rules.employment_deduction_rate / 100
        return min(calculated, self.rules.employment_deduction_cap)

    def child_allowance(self, profile: EmployeeTaxProfile) -> Decimal:
        """Allowance for children, tiered per child by birth order and year.

        The first child gets the base tier. Each later child born in or after
        the cutoff year gets the higher tier; earlier-born children keep the
        base tier.
        """
        # Unknown birth dates sort last and never qualify for the higher tier
        children = sorted(
            profile.children_birth_dates,
            key=lambda d: (d is None, d or date.min),
        )[: self.rules.max_children]

        total = ZERO
        for index, born in enumerate(children):
            if index == 0:
                total += self.rules.child_allowance_first
            elif born is not None and born.year >= self.rules.child_cutoff_year:
                total += self.rules.child_allowance_subsequent
            else:
                total += self.rules.child_allowance_first
        return total

    def personal_allowances(self, profile: EmployeeTaxProfile) -> AllowanceBreakdown:
        """Allowance components for a taxpayer."""
        rules = self.rules
        parents = min(max(profile.eligible_parents_count, 0), rules.max_parents)
        is_senior = profile.age is not None and profile.age >= rules.senior_age

        return AllowanceBreakdown(
            personal=rules.personal_allowance,
            spouse=rules.spouse_allowance if profile.has_spouse else ZERO,
            child=self.child_allowance(profile),
            parent=rules.parent_allowance * parents,
            senior=rules.senior_allowance if is_senior else ZERO,
        )

    def calculate_deductions_and_allowances(
        self,
        gross_annual_income: Decimal | int | float | str,
        profile: EmployeeTaxProfile,
    ) -> DeductionResult:
        """Employment deduction plus allowances for annual income."""
        income = to_decimal(gross_annual_income)
        if income < 0:
            raise InvalidCalculationInputError(
                "gross_annual_income", gross_annual_income, "must not be negative"
            )

        return DeductionResult(
            employment_deduction_rate=self.rules.employment_deduction_rate,
            employment_deduction_calculated=income * self.rules.employment_deduction_rate / 100,
            employment_deduction_max=self.rules.employment_deduction_cap,
            employment_deduction=self.employment_deduction(income),
            allowances=self.personal_allowances(profile),
        )
