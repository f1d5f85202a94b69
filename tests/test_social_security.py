"""Unit tests for Social Security Fund contributions."""

from dataclasses import replace
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from thai_payroll.calculators.allowances import InvalidCalculationInputError
from thai_payroll.calculators.rules import get_tax_rules
from thai_payroll.calculators.social_security import SocialSecurityCalculator


@pytest.fixture
def calculator() -> SocialSecurityCalculator:
    return SocialSecurityCalculator(get_tax_rules(2025))


class TestSocialSecurity:
    """5% of the clamped salary, at most 750 a month."""

    def test_salary_above_ceiling(self, calculator):
        """Salary is clamped to 15,000."""
        result = calculator.calculate_social_security(Decimal("30000"))
        assert result.effective_salary == Decimal("15000")
        assert result.employee_contribution == Decimal("750.00")
        assert result.is_salary_capped is True
        assert result.is_contribution_capped is False

    def test_salary_at_ceiling(self, calculator):
        """15,000 is inside the band."""
        result = calculator.calculate_social_security(Decimal("15000"))
        assert result.employee_contribution == Decimal("750.00")
        assert result.is_salary_capped is False

    def test_salary_inside_band(self, calculator):
        """Mid-band salary pays 5%."""
        result = calculator.calculate_social_security(Decimal("10000"))
        assert result.effective_salary == Decimal("10000")
        assert result.employee_contribution == Decimal("500.00")

    def test_salary_below_floor(self, calculator):
        """Salary below 1,650 is raised to the floor."""
        result = calculator.calculate_social_security(Decimal("1000"))
        assert result.effective_salary == Decimal("1650")
        assert result.employee_contribution == Decimal("82.50")

    def test_employer_matches_employee(self, calculator):
        """Employer pays the same amount."""
        result = calculator.calculate_social_security(Decimal("12345"))
        assert result.employer_contribution == result.employee_contribution
        assert result.total_contribution == result.employee_contribution * 2

    def test_annual_figures(self, calculator):
        """Annual contributions are twelve months."""
        result = calculator.calculate_social_security(Decimal("20000"))
        assert result.annual_employee_contribution == Decimal("9000.00")
        assert result.annual_employer_contribution == Decimal("9000.00")

    def test_contribution_capped_when_rate_exceeds_maximum(self):
        """A raised rate is held to the 750 monthly maximum."""
        rules = replace(get_tax_rules(2025), ssf_rate=Decimal("6"))
        result = SocialSecurityCalculator(rules).calculate_social_security(Decimal("15000"))
        assert result.employee_contribution == Decimal("750.00")
        assert result.is_contribution_capped is True

    def test_negative_salary_rejected(self, calculator):
        """Negative salary is an input error."""
        with pytest.raises(InvalidCalculationInputError):
            calculator.calculate_social_security(Decimal("-100"))


class TestSocialSecurityProperties:
    """Bounds that hold for any salary."""

    @settings(max_examples=200)
    @given(salary=st.decimals(min_value=0, max_value=10_000_000, places=2))
    def test_contribution_within_bounds(self, salary):
        """0 <= contribution <= 750 and the salary base stays in 1,650..15,000."""
        result = SocialSecurityCalculator(get_tax_rules(2025)).calculate_social_security(salary)
        assert Decimal("0") <= result.employee_contribution <= Decimal("750")
        assert Decimal("1650") <= result.effective_salary <= Decimal("15000")
        assert result.employer_contribution == result.employee_contribution
