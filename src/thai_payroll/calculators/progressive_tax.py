"""Progressive income tax over an ordered bracket table."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from thai_payroll.calculators.types import (
    ZERO,
    BracketTax,
    TaxBand,
    TaxBreakdown,
    round_to_satang,
    to_decimal,
)


class NoBracketsConfiguredError(Exception):
    """Raised when no active tax brackets exist for a tax year."""

    def __init__(self, tax_year: int | None):
        self.tax_year = tax_year
        super().__init__(f"No active tax brackets configured for tax year {tax_year}")


def check_bracket_coverage(brackets: Iterable[TaxBand]) -> list[str]:
    """Check that ordered brackets partition [0, inf) without gaps or overlaps.

    Returns list of problems (empty if the table is well formed).
    """
    ordered = sorted(brackets, key=lambda b: b.bracket_order)
    problems: list[str] = []
    if not ordered:
        return ["No brackets defined"]

    if ordered[0].min_income != 0:
        problems.append(
            f"Bracket {ordered[0].bracket_order} must start at 0, "
            f"starts at {ordered[0].min_income}"
        )

    for lower, upper in zip(ordered, ordered[1:]):
        if lower.max_income is None:
            problems.append(
                f"Bracket {lower.bracket_order} is unbounded but is not the top bracket"
            )
        elif upper.min_income != lower.max_income:
            problems.append(
                f"Bracket {upper.bracket_order} starts at {upper.min_income}, "
                f"expected {lower.max_income}"
            )

    if ordered[-1].max_income is not None:
        problems.append(f"Top bracket {ordered[-1].bracket_order} must be unbounded")

    return problems


class ProgressiveTaxCalculator:
    """Calculates progressive tax by apportioning income into brackets.

    Boundary policy: each bracket covers (min_income, max_income]. Income
    equal to a threshold is taxed entirely in the brackets below it, so
    exactly 150,000 falls in the 0% band.

    Amounts accumulate unrounded; only the returned monthly figure and the
    serialised breakdown are rounded to satang.
    """

    def __init__(self, brackets: Iterable[Any], tax_year: int | None = None):
        bands = [b if isinstance(b, TaxBand) else TaxBand.from_model(b) for b in brackets]
        if not bands:
            raise NoBracketsConfiguredError(tax_year)
        self.brackets = sorted(bands, key=lambda b: b.bracket_order)
        self.tax_year = tax_year

    def tax_breakdown(self, taxable_income: Decimal | int | float | str) -> TaxBreakdown:
        """Per-bracket apportionment of annual taxable income."""
        income = to_decimal(taxable_income)
        breakdown = TaxBreakdown(taxable_income=max(income, ZERO))
        if income <= 0:
            return breakdown

        remaining = income
        for band in self.brackets:
            if remaining <= 0:
                break

            # Unbounded top bracket absorbs whatever is left
            bracket_max = band.max_income if band.max_income is not None else income
            if income <= band.min_income:
                continue

            taxable_in_bracket = min(remaining, bracket_max - band.min_income)
            if taxable_in_bracket > 0:
                breakdown.brackets.append(
                    BracketTax(
                        bracket_order=band.bracket_order,
                        income_range=band.income_range,
                        tax_rate=band.formatted_rate,
                        taxable_amount=taxable_in_bracket,
                        tax_amount=taxable_in_bracket * band.tax_rate / 100,
                    )
                )
                remaining -= taxable_in_bracket

        return breakdown

    def calculate_annual_tax(self, taxable_income: Decimal | int | float | str) -> Decimal:
        """Unrounded annual tax on annual taxable income."""
        return self.tax_breakdown(taxable_income).annual_tax

    def calculate_progressive_income_tax(
        self, taxable_income: Decimal | int | float | str
    ) -> Decimal:
        """Monthly tax (annual / 12) on ANNUAL taxable income."""
        return round_to_satang(self.calculate_annual_tax(taxable_income) / 12)
