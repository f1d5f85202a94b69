"""Statutory constants for Thai personal income tax, versioned by tax year.

Rule objects are immutable. A new year with changed amounts gets a new
``TaxYearRules`` entry in ``_RULES_BY_YEAR``; callers keep passing only the
year.

Pattern:
    rules = get_tax_rules(2025)
    rules.employment_deduction_cap   # Decimal("100000")
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from decimal import Decimal

from thai_payroll.calculators.types import TaxBand


@dataclass(frozen=True)
class TaxYearRules:
    """
    Deduction, allowance and social security constants for one year.

    Attributes:
        employment_deduction_rate: Percent of annual employment income
            deductible (Revenue Code Section 42(1)).
        employment_deduction_cap: Annual ceiling of that deduction.
        child_cutoff_year: Children born in or after this year receive the
            higher allowance when they are not the first child.
        max_children: Children counted for allowances.
        max_parents: Parents counted for allowances.
        senior_age: Age at which the senior allowance applies.
        ssf_rate: Social security rate in percent.
        ssf_min_salary / ssf_max_salary: Salary band the rate applies to.
        ssf_max_monthly: Monthly contribution ceiling per party.
    """

    tax_year: int
    employment_deduction_rate: Decimal = Decimal("50")
    employment_deduction_cap: Decimal = Decimal("100000")
    personal_allowance: Decimal = Decimal("60000")
    spouse_allowance: Decimal = Decimal("60000")
    child_allowance_first: Decimal = Decimal("30000")
    child_allowance_subsequent: Decimal = Decimal("60000")
    child_cutoff_year: int = 2018
    max_children: int = 3
    parent_allowance: Decimal = Decimal("30000")
    max_parents: int = 4
    parent_min_age: int = 60
    parent_max_income: Decimal = Decimal("30000")
    senior_allowance: Decimal = Decimal("190000")
    senior_age: int = 65
    ssf_rate: Decimal = Decimal("5")
    ssf_min_salary: Decimal = Decimal("1650")
    ssf_max_salary: Decimal = Decimal("15000")
    ssf_max_monthly: Decimal = Decimal("750")

    def __post_init__(self) -> None:
        if self.ssf_min_salary > self.ssf_max_salary:
            raise ValueError("ssf_min_salary cannot exceed ssf_max_salary")
        if not Decimal("0") <= self.employment_deduction_rate <= Decimal("100"):
            raise ValueError("employment_deduction_rate must be within 0..100")


def _band(order: int, low: int, high: int | None, rate: int, code: str, description: str) -> TaxBand:
    return TaxBand(
        bracket_order=order,
        min_income=Decimal(low),
        max_income=Decimal(high) if high is not None else None,
        tax_rate=Decimal(rate),
        code=code,
        description=description,
    )


# Revenue Code Section 48, contiguous boundaries
THAI_2025_BRACKETS: tuple[TaxBand, ...] = (
    _band(1, 0, 150_000, 0, "B1_EXEMPT", "Tax exempt"),
    _band(2, 150_000, 300_000, 5, "B2_5PCT", "5% bracket"),
    _band(3, 300_000, 500_000, 10, "B3_10PCT", "10% bracket"),
    _band(4, 500_000, 750_000, 15, "B4_15PCT", "15% bracket"),
    _band(5, 750_000, 1_000_000, 20, "B5_20PCT", "20% bracket"),
    _band(6, 1_000_000, 2_000_000, 25, "B6_25PCT", "25% bracket"),
    _band(7, 2_000_000, 5_000_000, 30, "B7_30PCT", "30% bracket"),
    _band(8, 5_000_000, None, 35, "B8_35PCT", "35% bracket (top)"),
)

TOP_MARGINAL_RATE = Decimal("35")

_RULES_BY_YEAR: dict[int, TaxYearRules] = {
    2025: TaxYearRules(tax_year=2025),
}
_OFFICIAL_BRACKETS_BY_YEAR: dict[int, tuple[TaxBand, ...]] = {
    2025: THAI_2025_BRACKETS,
}


def _latest_year_at_or_before(table: dict[int, object], year: int) -> int:
    eligible = [y for y in table if y <= year]
    # Years before the first configured year use the earliest table
    return max(eligible) if eligible else min(table)


def get_tax_rules(year: int) -> TaxYearRules:
    """Rules in force for a tax year."""
    if year in _RULES_BY_YEAR:
        return _RULES_BY_YEAR[year]
    base = _RULES_BY_YEAR[_latest_year_at_or_before(_RULES_BY_YEAR, year)]
    return replace(base, tax_year=year)


def official_brackets(year: int) -> tuple[TaxBand, ...]:
    """Official bracket table used as the compliance reference for a year."""
    return _OFFICIAL_BRACKETS_BY_YEAR[
        _latest_year_at_or_before(_OFFICIAL_BRACKETS_BY_YEAR, year)
    ]


def official_rules(year: int) -> TaxYearRules:
    """Statutory constants, independent of any local rule overrides."""
    return TaxYearRules(tax_year=year)


@dataclass(frozen=True)
class BenefitRules:
    """Organisation payroll policy applied on top of statutory tax.

    Attributes:
        pvd_rate: Provident fund percent for Thai ID holders.
        saving_fund_rate: Saving fund percent for non-ID locals.
        annual_increase_rate: Percent raise once the employee has
            annual_increase_working_days weekdays of service.
        thirteenth_month_min_service_months: Whole months of service before
            the 13th month salary accrues.
        health_welfare_tiers: (salary floor, amount) pairs, highest first;
            a salary strictly above the floor gets the amount.
        employer_health_welfare_organizations: Subsidiaries that pay the
            employer share of health welfare.
        employer_health_welfare_statuses: Employee statuses covered by it.
    """

    pvd_rate: Decimal = Decimal("7.5")
    saving_fund_rate: Decimal = Decimal("7.5")
    annual_increase_rate: Decimal = Decimal("1")
    annual_increase_working_days: int = 365
    thirteenth_month_min_service_months: int = 6
    health_welfare_tiers: tuple[tuple[Decimal, Decimal], ...] = (
        (Decimal("15000"), Decimal("150")),
        (Decimal("5000"), Decimal("100")),
        (Decimal("0"), Decimal("60")),
    )
    health_welfare_minimum: Decimal = Decimal("60")
    employer_health_welfare_organizations: frozenset[str] = frozenset({"SMRU"})
    employer_health_welfare_statuses: frozenset[str] = frozenset({"Non-Thai ID", "Expat"})

    def health_welfare_for(self, monthly_salary: Decimal) -> Decimal:
        """Tiered health welfare amount for a monthly salary."""
        for floor, amount in self.health_welfare_tiers:
            if monthly_salary > floor:
                return amount
        return self.health_welfare_minimum


# Stored tax setting keys and the rule fields they override
TAX_SETTING_FIELDS: dict[str, str] = {
    "EMPLOYMENT_DEDUCTION_RATE": "employment_deduction_rate",
    "EMPLOYMENT_DEDUCTION_MAX": "employment_deduction_cap",
    "PERSONAL_ALLOWANCE": "personal_allowance",
    "SPOUSE_ALLOWANCE": "spouse_allowance",
    "CHILD_ALLOWANCE": "child_allowance_first",
    "CHILD_ALLOWANCE_SUBSEQUENT": "child_allowance_subsequent",
    "PARENT_ALLOWANCE": "parent_allowance",
    "SENIOR_CITIZEN_ALLOWANCE": "senior_allowance",
    "SSF_RATE": "ssf_rate",
    "SSF_MIN_SALARY": "ssf_min_salary",
    "SSF_MAX_SALARY": "ssf_max_salary",
    "SSF_MAX_MONTHLY": "ssf_max_monthly",
}

BENEFIT_SETTING_FIELDS: dict[str, str] = {
    "pvd_percentage": "pvd_rate",
    "saving_fund_percentage": "saving_fund_rate",
    "annual_increase_percentage": "annual_increase_rate",
}


def rules_with_overrides(year: int, values: Mapping[str, Decimal]) -> TaxYearRules:
    """Year rules with stored setting values applied over the defaults.

    Unknown keys are ignored. Raises ValueError when the combined values
    are inconsistent.
    """
    changes = {
        TAX_SETTING_FIELDS[key]: Decimal(value)
        for key, value in values.items()
        if key in TAX_SETTING_FIELDS
    }
    base = get_tax_rules(year)
    return replace(base, **changes) if changes else base


def benefit_rules_with_overrides(values: Mapping[str, Decimal]) -> BenefitRules:
    """Benefit policy with stored setting values applied over the defaults."""
    changes = {
        BENEFIT_SETTING_FIELDS[key]: Decimal(value)
        for key, value in values.items()
        if key in BENEFIT_SETTING_FIELDS
    }
    return replace(BenefitRules(), **changes) if changes else BenefitRules()
