"""Type definitions for the tax calculation pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

OUTPUT_PRECISION = Decimal("0.01")  # 2 decimal places (satang) for output
ZERO = Decimal("0")


def round_to_satang(amount: Decimal) -> Decimal:
    """Round amount to 2 decimal places."""
    return Decimal(amount).quantize(OUTPUT_PRECISION, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    """Coerce ints, floats and strings to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class TaxBand:
    """One progressive rate band.

    A band covers the half-open interval (min_income, max_income]; the top
    band has max_income None.
    """

    bracket_order: int
    min_income: Decimal
    max_income: Decimal | None
    tax_rate: Decimal  # Percent, e.g. 5 for 5%
    code: str | None = None
    description: str | None = None

    @classmethod
    def from_model(cls, row: Any) -> TaxBand:
        """Build from a TaxBracket ORM row."""
        return cls(
            bracket_order=row.bracket_order,
            min_income=to_decimal(row.min_income),
            max_income=to_decimal(row.max_income) if row.max_income is not None else None,
            tax_rate=to_decimal(row.tax_rate),
            description=row.description,
        )

    @property
    def income_range(self) -> str:
        low = f"฿{self.min_income:,.0f}"
        if self.max_income is None:
            return f"{low} and above"
        return f"{low} - ฿{self.max_income:,.0f}"

    @property
    def formatted_rate(self) -> str:
        return f"{self.tax_rate.normalize():f}%"


@dataclass(frozen=True)
class EmployeeTaxProfile:
    """Demographic facts used for allowances, recomputed per calculation."""

    has_spouse: bool = False
    # Birth dates of children, oldest first; None when unknown
    children_birth_dates: tuple[date | None, ...] = ()
    eligible_parents_count: int = 0
    employee_status: str | None = None
    age: int | None = None

    @property
    def children_count(self) -> int:
        return len(self.children_birth_dates)


@dataclass
class IncomeLine:
    """Additional income or deduction passed by the caller."""

    type: str
    amount: Decimal
    description: str | None = None


@dataclass
class AllowanceBreakdown:
    """Personal allowances by category."""

    personal: Decimal = ZERO
    spouse: Decimal = ZERO
    child: Decimal = ZERO
    parent: Decimal = ZERO
    senior: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.personal + self.spouse + self.child + self.parent + self.senior


@dataclass
class DeductionResult:
    """Employment deduction plus personal allowances."""

    employment_deduction_rate: Decimal
    employment_deduction_calculated: Decimal
    employment_deduction_max: Decimal
    employment_deduction: Decimal
    allowances: AllowanceBreakdown

    @property
    def total_deductions(self) -> Decimal:
        return self.employment_deduction + self.allowances.total


@dataclass
class SocialSecurityContribution:
    """Monthly SSF contribution for one salary."""

    gross_salary: Decimal
    effective_salary: Decimal
    ssf_rate: Decimal
    min_salary: Decimal
    max_salary: Decimal
    max_monthly_contribution: Decimal
    employee_contribution: Decimal
    employer_contribution: Decimal
    is_salary_capped: bool
    is_contribution_capped: bool

    @property
    def total_contribution(self) -> Decimal:
        return self.employee_contribution + self.employer_contribution

    @property
    def annual_employee_contribution(self) -> Decimal:
        return self.employee_contribution * 12

    @property
    def annual_employer_contribution(self) -> Decimal:
        return self.employer_contribution * 12


@dataclass
class BracketTax:
    """Tax attributed to one bracket."""

    bracket_order: int
    income_range: str
    tax_rate: str
    taxable_amount: Decimal
    tax_amount: Decimal

    @property
    def monthly_tax(self) -> Decimal:
        return self.tax_amount / 12

    @property
    def calculation_method(self) -> str:
        return (
            f"฿{self.taxable_amount:,.0f} × {self.tax_rate} = "
            f"฿{round_to_satang(self.tax_amount):,.2f}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "bracket_order": self.bracket_order,
            "income_range": self.income_range,
            "tax_rate": self.tax_rate,
            "taxable_amount": round_to_satang(self.taxable_amount),
            "tax_amount": round_to_satang(self.tax_amount),
            "monthly_tax": round_to_satang(self.monthly_tax),
            "calculation_method": self.calculation_method,
        }


@dataclass
class TaxBreakdown:
    """Per-bracket audit view of a progressive tax calculation."""

    taxable_income: Decimal
    brackets: list[BracketTax] = field(default_factory=list)

    @property
    def annual_tax(self) -> Decimal:
        return sum((b.tax_amount for b in self.brackets), ZERO)

    @property
    def effective_rate(self) -> Decimal:
        if self.taxable_income <= 0:
            return ZERO
        return self.annual_tax / self.taxable_income * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "brackets": [b.to_dict() for b in self.brackets],
            "summary": {
                "total_taxable_income": round_to_satang(self.taxable_income),
                "total_annual_tax": round_to_satang(self.annual_tax),
                "total_monthly_tax": round_to_satang(self.annual_tax / 12),
                "effective_tax_rate": round_to_satang(self.effective_rate),
                "brackets_used": len(self.brackets),
            },
        }


@dataclass
class PayrollCalculationResult:
    """Full result of the tax sequence for one monthly salary."""

    tax_year: int
    gross_salary: Decimal
    months_working: int
    annual_gross_salary: Decimal
    deductions: DeductionResult
    taxable_income: Decimal
    annual_tax: Decimal
    monthly_tax: Decimal
    social_security: SocialSecurityContribution
    tax_breakdown: TaxBreakdown
    additional_income: list[IncomeLine] = field(default_factory=list)
    additional_deductions: list[IncomeLine] = field(default_factory=list)

    @property
    def total_additional_income(self) -> Decimal:
        return sum((line.amount for line in self.additional_income), ZERO)

    @property
    def total_additional_deductions(self) -> Decimal:
        return sum((line.amount for line in self.additional_deductions), ZERO)

    @property
    def net_salary(self) -> Decimal:
        return round_to_satang(
            self.gross_salary
            - self.monthly_tax
            - self.social_security.employee_contribution
            + self.total_additional_income
            - self.total_additional_deductions
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialisable view used by API responses and reports."""
        ded = self.deductions
        ssf = self.social_security
        return {
            "tax_year": self.tax_year,
            "gross_salary": round_to_satang(self.gross_salary),
            "months_working": self.months_working,
            "annual_gross_salary": round_to_satang(self.annual_gross_salary),
            "employment_deduction": round_to_satang(ded.employment_deduction),
            "personal_allowances": {
                "personal": ded.allowances.personal,
                "spouse": ded.allowances.spouse,
                "child": ded.allowances.child,
                "parent": ded.allowances.parent,
                "senior": ded.allowances.senior,
                "total": ded.allowances.total,
            },
            "total_deductions": round_to_satang(ded.total_deductions),
            "taxable_income": round_to_satang(self.taxable_income),
            "annual_tax": round_to_satang(self.annual_tax),
            "income_tax": self.monthly_tax,
            "social_security": {
                "effective_salary": ssf.effective_salary,
                "ssf_rate": ssf.ssf_rate,
                "employee_contribution": ssf.employee_contribution,
                "employer_contribution": ssf.employer_contribution,
                "total_contribution": ssf.total_contribution,
                "annual_employee_contribution": ssf.annual_employee_contribution,
                "annual_employer_contribution": ssf.annual_employer_contribution,
                "is_salary_capped": ssf.is_salary_capped,
                "is_contribution_capped": ssf.is_contribution_capped,
            },
            "additional_income": [asdict(line) for line in self.additional_income],
            "additional_deductions": [asdict(line) for line in self.additional_deductions],
            "net_salary": self.net_salary,
            "tax_breakdown": self.tax_breakdown.to_dict(),
        }


@dataclass
class ComplianceReport:
    """Outcome of checking a calculation against the official rules."""

    tax_year: int
    validation_date: date
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_compliant(self) -> bool:
        return not self.errors

    @property
    def compliance_score(self) -> int:
        if self.is_compliant:
            return 100
        return max(0, 100 - 20 * len(self.errors))

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_compliant": self.is_compliant,
            "compliance_score": self.compliance_score,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "validation_date": self.validation_date.isoformat(),
            "tax_year": self.tax_year,
        }
