"""Payroll tax orchestrator: the mandated Thai calculation sequence."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from thai_payroll.calculators.allowances import DeductionCalculator, InvalidCalculationInputError
from thai_payroll.calculators.progressive_tax import ProgressiveTaxCalculator, check_bracket_coverage
from thai_payroll.calculators.rules import (
    TOP_MARGINAL_RATE,
    TaxYearRules,
    get_tax_rules,
    official_brackets,
    official_rules,
)
from thai_payroll.calculators.social_security import SocialSecurityCalculator
from thai_payroll.calculators.types import (
    ZERO,
    ComplianceReport,
    EmployeeTaxProfile,
    IncomeLine,
    PayrollCalculationResult,
    round_to_satang,
    to_decimal,
)

logger = logging.getLogger(__name__)

TOLERANCE = Decimal("0.01")

THAI_LAW_REFERENCES = {
    "Revenue Code Section 42(1)": "Employment income deductions - 50% of gross income, maximum ฿100,000",
    "Revenue Code Section 42(2)": "Personal allowance - ฿60,000 per taxpayer",
    "Revenue Code Section 42(3)": "Spouse allowance - ฿60,000 (if spouse has no income)",
    "Revenue Code Section 42(4)": "Child allowances - ฿30,000 first child, ฿60,000 subsequent (born 2018+)",
    "Revenue Code Section 42(5)": "Parent allowance - ฿30,000 per eligible parent (age 60+, income < ฿30,000)",
    "Revenue Code Section 42(6)": "Senior citizen allowance - ฿190,000 additional (taxpayer age 65+)",
    "Revenue Code Section 48": "Progressive tax rates - 0%, 5%, 10%, 15%, 20%, 25%, 30%, 35%",
    "Social Security Act": "SSF contributions - 5% rate, ฿750 monthly maximum",
}


def _money(amount: Decimal) -> str:
    return f"{round_to_satang(amount):,.2f}"


class PayrollTaxService:
    """Runs the Thai Revenue Department calculation sequence.

    Calculation pipeline (order is a compliance requirement):
    1) Annualize monthly gross
    2) Employment deduction (50%, capped)
    3) Personal allowances; taxable income floored at zero
    4) Progressive tax on taxable income -> monthly tax
    5) Social security on monthly gross (independent base)
    6) Net = gross - tax - employee SSF + additional income - additional deductions
    """

    CALCULATION_METHOD = (
        "Thai Revenue Department sequence: (1) Employment deductions 50% max ฿100,000, "
        "(2) Personal allowances, (3) Progressive tax 8-bracket 0%-35%, "
        "(4) Social Security 5% max ฿750/month"
    )

    def __init__(
        self,
        brackets: Iterable[Any],
        tax_year: int,
        rules: TaxYearRules | None = None,
    ):
        self.tax_year = tax_year
        self.rules = rules or get_tax_rules(tax_year)
        self.tax_calculator = ProgressiveTaxCalculator(brackets, tax_year)
        self.deduction_calculator = DeductionCalculator(self.rules)
        self.ssf_calculator = SocialSecurityCalculator(self.rules)

    # ------------------------------------------------------------------
    # Core calculation
    # ------------------------------------------------------------------

    def calculate_employee_tax(
        self,
        gross_monthly_salary: Decimal | int | float | str,
        profile: EmployeeTaxProfile,
        additional_income: Iterable[IncomeLine | Mapping[str, Any]] = (),
        additional_deductions: Iterable[IncomeLine | Mapping[str, Any]] = (),
        months_working: int = 12,
    ) -> PayrollCalculationResult:
        """Calculate tax, SSF and net pay for one monthly salary."""
        gross = self._require_amount("gross_salary", gross_monthly_salary)
        if not 1 <= months_working <= 12:
            raise InvalidCalculationInputError(
                "months_working", months_working, "must be between 1 and 12"
            )
        income_lines = self._coerce_lines("additional_income", additional_income)
        deduction_lines = self._coerce_lines("additional_deductions", additional_deductions)

        # 1) Annualize
        annual_gross = gross * months_working

        # 2) + 3) Employment deduction, then allowances
        deductions = self.deduction_calculator.calculate_deductions_and_allowances(
            annual_gross, profile
        )
        taxable_income = max(annual_gross - deductions.total_deductions, ZERO)

        # 4) Progressive tax
        breakdown = self.tax_calculator.tax_breakdown(taxable_income)
        annual_tax = breakdown.annual_tax
        monthly_tax = round_to_satang(annual_tax / 12)

        # 5) Social security on the monthly gross
        social_security = self.ssf_calculator.calculate_social_security(gross)

        result = PayrollCalculationResult(
            tax_year=self.tax_year,
            gross_salary=gross,
            months_working=months_working,
            annual_gross_salary=annual_gross,
            deductions=deductions,
            taxable_income=taxable_income,
            annual_tax=annual_tax,
            monthly_tax=monthly_tax,
            social_security=social_security,
            tax_breakdown=breakdown,
            additional_income=income_lines,
            additional_deductions=deduction_lines,
        )
        logger.debug(
            "Calculated payroll tax",
            extra={
                "tax_year": self.tax_year,
                "gross_salary": str(gross),
                "taxable_income": str(taxable_income),
                "monthly_tax": str(monthly_tax),
            },
        )
        return result

    def calculate_annual_summary(
        self,
        profile: EmployeeTaxProfile,
        monthly_payrolls: Iterable[Mapping[str, Any]],
    ) -> dict[str, Any]:
        """Reconcile a year of monthly withholding against the annual liability."""
        rows = list(monthly_payrolls)
        if not rows:
            raise InvalidCalculationInputError(
                "monthly_payrolls", rows, "at least one month is required"
            )

        total_income = sum((to_decimal(r["total_income"]) for r in rows), ZERO)
        tax_paid = sum((to_decimal(r["income_tax"]) for r in rows), ZERO)

        deductions = self.deduction_calculator.calculate_deductions_and_allowances(
            total_income, profile
        )
        taxable_income = max(total_income - deductions.total_deductions, ZERO)
        tax_liability = round_to_satang(self.tax_calculator.calculate_annual_tax(taxable_income))
        difference = tax_liability - tax_paid

        return {
            "tax_year": self.tax_year,
            "months": len(rows),
            "total_income": round_to_satang(total_income),
            "total_deductions": round_to_satang(deductions.total_deductions),
            "taxable_income": round_to_satang(taxable_income),
            "tax_liability": tax_liability,
            "tax_paid": round_to_satang(tax_paid),
            "tax_difference": round_to_satang(difference),
            "refund_due": round_to_satang(-difference) if difference < 0 else ZERO,
            "additional_tax_due": round_to_satang(difference) if difference > 0 else ZERO,
        }

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def validate_calculation_inputs(payload: Mapping[str, Any]) -> list[str]:
        """Pre-flight checks on a raw calculation payload.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []

        employee_id = payload.get("employee_id")
        if isinstance(employee_id, bool) or not _is_number(employee_id):
            errors.append("Valid employee ID is required")

        gross = payload.get("gross_salary")
        if isinstance(gross, bool) or not _is_number(gross) or to_decimal(gross) < 0:
            errors.append("Valid gross salary amount is required")

        if "additional_income" in payload and not isinstance(payload["additional_income"], list):
            errors.append("Additional income must be a list")

        if "additional_deductions" in payload and not isinstance(
            payload["additional_deductions"], list
        ):
            errors.append("Additional deductions must be a list")

        return errors

    def validate_thai_compliance(
        self, result: PayrollCalculationResult, as_of: date | None = None
    ) -> ComplianceReport:
        """Re-derive statutory values and diff them against a result."""
        statutory = official_rules(self.tax_year)
        report = ComplianceReport(tax_year=self.tax_year, validation_date=as_of or date.today())
        ded = result.deductions

        # Employment deduction: rate, cap and amount
        if ded.employment_deduction_max != statutory.employment_deduction_cap:
            report.errors.append(
                "Employment deduction cap must be exactly ฿100,000 for Thai compliance"
            )
        if ded.employment_deduction_rate != statutory.employment_deduction_rate:
            report.errors.append("Employment deduction rate must be exactly 50% for Thai compliance")
        expected_employment = min(
            result.annual_gross_salary * statutory.employment_deduction_rate / 100,
            statutory.employment_deduction_cap,
        )
        if abs(ded.employment_deduction - expected_employment) > TOLERANCE:
            report.errors.append(
                f"Employment deduction {_money(ded.employment_deduction)} differs from "
                f"expected {_money(expected_employment)}"
            )
        if ded.allowances.personal != statutory.personal_allowance:
            report.errors.append("Personal allowance must be ฿60,000 for Thai compliance")

        # Taxable income must follow deductions
        expected_taxable = max(result.annual_gross_salary - ded.total_deductions, ZERO)
        if abs(result.taxable_income - expected_taxable) > TOLERANCE:
            report.errors.append(
                "Taxable income must equal annual income less employment deductions "
                "and personal allowances"
            )

        # Social security
        ssf = result.social_security
        if ssf.ssf_rate != statutory.ssf_rate:
            report.errors.append("Social Security Fund rate must be exactly 5% for Thai compliance")
        if ssf.max_monthly_contribution != statutory.ssf_max_monthly:
            report.errors.append(
                "Maximum monthly SSF contribution must be ฿750 for Thai compliance"
            )
        expected_ssf = round_to_satang(
            min(
                max(statutory.ssf_min_salary, min(result.gross_salary, statutory.ssf_max_salary))
                * statutory.ssf_rate
                / 100,
                statutory.ssf_max_monthly,
            )
        )
        if abs(ssf.employee_contribution - expected_ssf) > TOLERANCE:
            report.errors.append(
                f"SSF contribution {_money(ssf.employee_contribution)} differs from "
                f"expected {_money(expected_ssf)}"
            )

        # Bracket table against the official table
        bracket_errors, bracket_warnings = self._validate_brackets()
        report.errors.extend(bracket_errors)
        report.warnings.extend(bracket_warnings)

        # Tax recomputed with the official table
        official_tax = ProgressiveTaxCalculator(
            official_brackets(self.tax_year), self.tax_year
        ).calculate_annual_tax(result.taxable_income)
        if abs(result.annual_tax - official_tax) > TOLERANCE:
            report.errors.append(
                f"Annual tax {_money(result.annual_tax)} differs from official "
                f"bracket result {_money(official_tax)}"
            )

        if result.taxable_income == 0 and result.gross_salary > 0:
            report.warnings.append("Income is fully covered by deductions and allowances")

        return report

    def _validate_brackets(self) -> tuple[list[str], list[str]]:
        errors: list[str] = []
        warnings: list[str] = []
        configured = self.tax_calculator.brackets
        official = official_brackets(self.tax_year)

        if len(configured) != len(official):
            warnings.append(
                f"Expected {len(official)} tax brackets for Thai compliance, "
                f"found {len(configured)}"
            )

        errors.extend(check_bracket_coverage(configured))

        by_order = {b.bracket_order: b for b in configured}
        for expected in official:
            actual = by_order.get(expected.bracket_order)
            if actual is None:
                errors.append(f"Missing tax bracket {expected.bracket_order}")
                continue
            if actual.tax_rate != expected.tax_rate:
                errors.append(
                    f"Bracket {expected.bracket_order} rate should be "
                    f"{expected.formatted_rate}, found {actual.formatted_rate}"
                )
            if actual.min_income != expected.min_income:
                errors.append(
                    f"Bracket {expected.bracket_order} minimum should be "
                    f"{expected.min_income:,.0f}, found {actual.min_income:,.0f}"
                )
            if actual.max_income != expected.max_income:
                errors.append(
                    f"Bracket {expected.bracket_order} maximum should be "
                    f"{_limit(expected.max_income)}, found {_limit(actual.max_income)}"
                )

        top = configured[-1]
        if top.tax_rate != TOP_MARGINAL_RATE:
            errors.append(f"Top bracket rate must be 35%, found {top.formatted_rate}")

        return errors, warnings

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def generate_thai_tax_report(
        self,
        employee: Any,
        result: PayrollCalculationResult,
        compliance: ComplianceReport | None = None,
    ) -> dict[str, Any]:
        """Audit report with a law reference for each step of the sequence."""
        compliance = compliance or self.validate_thai_compliance(result)
        ded = result.deductions
        allowances = ded.allowances
        ssf = result.social_security

        return {
            "report_title": "Thai Personal Income Tax Calculation Report",
            "report_date": datetime.now().strftime("%d/%m/%Y %H:%M:%S"),
            "tax_year": self.tax_year,
            "employee_info": {
                "staff_id": getattr(employee, "staff_id", None),
                "name": getattr(employee, "full_name", None),
                "tax_number": getattr(employee, "tax_number", None),
            },
            "calculation_sequence": {
                "step_1": {
                    "title": "Employment Income Deductions (Applied First)",
                    "rate": f"{ded.employment_deduction_rate.normalize():f}%",
                    "calculated": _money(ded.employment_deduction_calculated),
                    "maximum_allowed": _money(ded.employment_deduction_max),
                    "actual_deduction": _money(ded.employment_deduction),
                    "law_reference": "Revenue Code Section 42(1)",
                },
                "step_2": {
                    "title": "Personal Allowances (Applied After Employment Deductions)",
                    "personal_allowance": _money(allowances.personal),
                    "spouse_allowance": _money(allowances.spouse),
                    "child_allowance": _money(allowances.child),
                    "parent_allowance": _money(allowances.parent),
                    "senior_citizen_allowance": _money(allowances.senior),
                    "total_allowances": _money(allowances.total),
                    "law_reference": "Revenue Code Section 42(2-6)",
                },
                "step_3": {
                    "title": "Progressive Tax Calculation",
                    "taxable_income": _money(result.taxable_income),
                    "tax_brackets_used": result.tax_breakdown.to_dict(),
                    "annual_tax": _money(result.annual_tax),
                    "monthly_tax": _money(result.monthly_tax),
                    "law_reference": "Revenue Code Section 48",
                },
                "step_4": {
                    "title": "Social Security Contributions (Separate from Income Tax)",
                    "employee_contribution": _money(ssf.employee_contribution),
                    "employer_contribution": _money(ssf.employer_contribution),
                    "rate": f"{ssf.ssf_rate.normalize():f}%",
                    "law_reference": "Social Security Act",
                },
            },
            "summary": {
                "gross_salary_monthly": _money(result.gross_salary),
                "gross_salary_annual": _money(result.annual_gross_salary),
                "employment_deductions": _money(ded.employment_deduction),
                "personal_allowances": _money(allowances.total),
                "total_deductions": _money(ded.total_deductions),
                "taxable_income": _money(result.taxable_income),
                "income_tax_annual": _money(result.annual_tax),
                "income_tax_monthly": _money(result.monthly_tax),
                "social_security_employee": _money(ssf.employee_contribution),
                "net_salary": _money(result.net_salary),
            },
            "compliance_status": compliance.to_dict(),
            "thai_law_references": dict(THAI_LAW_REFERENCES),
            "calculation_method": self.CALCULATION_METHOD,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_amount(field: str, value: Any) -> Decimal:
        if value is None or isinstance(value, bool):
            raise InvalidCalculationInputError(field, value, "a numeric amount is required")
        try:
            amount = to_decimal(value)
        except (InvalidOperation, ValueError) as e:
            raise InvalidCalculationInputError(field, value, "not a number") from e
        if not amount.is_finite():
            raise InvalidCalculationInputError(field, value, "must be finite")
        if amount < 0:
            raise InvalidCalculationInputError(field, value, "must not be negative")
        return amount

    @classmethod
    def _coerce_lines(
        cls, field: str, lines: Iterable[IncomeLine | Mapping[str, Any]]
    ) -> list[IncomeLine]:
        coerced: list[IncomeLine] = []
        for index, line in enumerate(lines):
            if isinstance(line, IncomeLine):
                line_type, amount, description = line.type, line.amount, line.description
            else:
                line_type = line.get("type")
                amount = line.get("amount")
                description = line.get("description")
            if not line_type:
                raise InvalidCalculationInputError(f"{field}[{index}].type", line_type, "required")
            coerced.append(
                IncomeLine(
                    type=str(line_type),
                    amount=cls._require_amount(f"{field}[{index}].amount", amount),
                    description=description,
                )
            )
        return coerced


def _is_number(value: Any) -> bool:
    if value is None:
        return False
    try:
        return to_decimal(value).is_finite()
    except (InvalidOperation, ValueError):
        return False


def _limit(value: Decimal | None) -> str:
    return "unbounded" if value is None else f"{value:,.0f}"
