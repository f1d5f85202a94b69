"""Social Security Fund contributions."""

from __future__ import annotations

from decimal import Decimal

from thai_payroll.calculators.allowances import InvalidCalculationInputError
from thai_payroll.calculators.rules import TaxYearRules
from thai_payroll.calculators.types import SocialSecurityContribution, round_to_satang, to_decimal


class SocialSecurityCalculator:
    """Computes monthly SSF contributions (Social Security Act).

    The salary is clamped into the contribution band before applying the
    rate; the employer matches the employee contribution.
    """

    def __init__(self, rules: TaxYearRules):
        self.rules = rules

    def calculate_social_security(
        self, monthly_gross_salary: Decimal | int | float | str
    ) -> SocialSecurityContribution:
        """Contribution for one month of gross salary."""
        salary = to_decimal(monthly_gross_salary)
        if salary < 0:
            raise InvalidCalculationInputError(
                "monthly_gross_salary", monthly_gross_salary, "must not be negative"
            )

        rules = self.rules
        effective_salary = max(rules.ssf_min_salary, min(salary, rules.ssf_max_salary))
        uncapped = effective_salary * rules.ssf_rate / 100
        contribution = round_to_satang(min(uncapped, rules.ssf_max_monthly))

        return SocialSecurityContribution(
            gross_salary=salary,
            effective_salary=effective_salary,
            ssf_rate=rules.ssf_rate,
            min_salary=rules.ssf_min_salary,
            max_salary=rules.ssf_max_salary,
            max_monthly_contribution=rules.ssf_max_monthly,
            employee_contribution=contribution,
            employer_contribution=contribution,
            is_salary_capped=salary > rules.ssf_max_salary,
            is_contribution_capped=uncapped > rules.ssf_max_monthly,
        )
