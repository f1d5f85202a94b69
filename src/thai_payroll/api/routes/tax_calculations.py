"""Tax calculation endpoints."""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any

from fastapi import APIRouter, Body, HTTPException, status
from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from thai_payroll.api.dependencies import DbSession, SettingsDep
from thai_payroll.api.schemas import (
    AnnualSummaryRequest,
    Envelope,
    ErrorResponse,
    IncomeTaxRequest,
    PayrollTaxRequest,
)
from thai_payroll.calculators.allowances import InvalidCalculationInputError
from thai_payroll.calculators.profile import build_tax_profile
from thai_payroll.calculators.progressive_tax import NoBracketsConfiguredError
from thai_payroll.calculators.tax_service import PayrollTaxService
from thai_payroll.calculators.types import PayrollCalculationResult, round_to_satang
from thai_payroll.models import Employee, Employment, Payroll
from thai_payroll.services.bracket_service import BracketService

router = APIRouter(prefix="/tax-calculations", tags=["tax-calculations"])

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


async def _tax_service(db: AsyncSession, tax_year: int) -> PayrollTaxService:
    try:
        return await BracketService(db).build_tax_service(tax_year)
    except NoBracketsConfiguredError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


async def _load_employee(db: AsyncSession, employee_id: int) -> Employee:
    result = await db.execute(
        select(Employee).where(Employee.id == employee_id).options(selectinload(Employee.children))
    )
    employee = result.scalar_one_or_none()
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": f"Employee {employee_id} not found",
                "errors": {"employee_id": ["The selected employee id is invalid"]},
            },
        )
    return employee


async def _calculate(
    db: AsyncSession, payload: PayrollTaxRequest, default_year: int
) -> tuple[PayrollTaxService, Employee, PayrollCalculationResult]:
    tax_year = payload.tax_year or default_year
    employee = await _load_employee(db, payload.employee_id)
    service = await _tax_service(db, tax_year)
    try:
        result = service.calculate_employee_tax(
            payload.gross_salary,
            build_tax_profile(employee, date(tax_year, 12, 31)),
            additional_income=[line.model_dump() for line in payload.additional_income],
            additional_deductions=[line.model_dump() for line in payload.additional_deductions],
            months_working=payload.months_working,
        )
    except InvalidCalculationInputError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    return service, employee, result


@router.post("/payroll", response_model=Envelope, responses=ERROR_RESPONSES)
async def calculate_payroll(
    db: DbSession, settings: SettingsDep, payload: PayrollTaxRequest
) -> Envelope:
    """Run the full Thai tax sequence for one monthly salary."""
    _, employee, result = await _calculate(db, payload, settings.tax_year)
    data = result.to_dict()
    data["employee_id"] = employee.id
    data["staff_id"] = employee.staff_id
    return Envelope(message="Payroll calculated successfully", data=data)


@router.post("/income-tax", response_model=Envelope, responses=ERROR_RESPONSES)
async def calculate_income_tax(
    db: DbSession, settings: SettingsDep, payload: IncomeTaxRequest
) -> Envelope:
    """Progressive tax with per-bracket breakdown for annual taxable income."""
    tax_year = payload.tax_year or settings.tax_year
    service = await _tax_service(db, tax_year)
    breakdown = service.tax_calculator.tax_breakdown(payload.taxable_income)
    return Envelope(
        data={
            "tax_year": tax_year,
            "taxable_income": round_to_satang(payload.taxable_income),
            "annual_tax": round_to_satang(breakdown.annual_tax),
            "monthly_tax": service.tax_calculator.calculate_progressive_income_tax(
                payload.taxable_income
            ),
            "effective_rate": round_to_satang(breakdown.effective_rate),
            "tax_breakdown": breakdown.to_dict(),
        }
    )


@router.post("/annual-summary", response_model=Envelope, responses=ERROR_RESPONSES)
async def annual_summary(
    db: DbSession, settings: SettingsDep, payload: AnnualSummaryRequest
) -> Envelope:
    """Reconcile a year of monthly withholding against the annual liability."""
    tax_year = payload.tax_year or settings.tax_year
    employee = await _load_employee(db, payload.employee_id)
    service = await _tax_service(db, tax_year)

    if payload.monthly_payrolls is not None:
        months = [m.model_dump() for m in payload.monthly_payrolls]
    else:
        months = await _stored_monthly_totals(db, employee.id, tax_year)

    try:
        summary = service.calculate_annual_summary(
            build_tax_profile(employee, date(tax_year, 12, 31)), months
        )
    except InvalidCalculationInputError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e

    summary["employee_id"] = employee.id
    summary["staff_id"] = employee.staff_id
    return Envelope(data=summary)


@router.post("/validate-inputs", response_model=Envelope, responses=ERROR_RESPONSES)
async def validate_inputs(payload: Annotated[dict[str, Any], Body()]) -> Envelope:
    """Pre-flight checks on a raw calculation payload."""
    errors = PayrollTaxService.validate_calculation_inputs(payload)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Input validation failed", "errors": errors},
        )
    return Envelope(message="Input validation passed", data={"errors": []})


@router.post("/compliance-check", response_model=Envelope, responses=ERROR_RESPONSES)
async def compliance_check(
    db: DbSession, settings: SettingsDep, payload: PayrollTaxRequest
) -> Envelope:
    """Calculate, then check the result against the statutory rules."""
    service, _, result = await _calculate(db, payload, settings.tax_year)
    report = service.validate_thai_compliance(result)
    return Envelope(
        data={"compliance": report.to_dict(), "calculation": result.to_dict()}
    )


@router.post("/thai-report", response_model=Envelope, responses=ERROR_RESPONSES)
async def thai_report(
    db: DbSession, settings: SettingsDep, payload: PayrollTaxRequest
) -> Envelope:
    """Audit report with a law reference for each calculation step."""
    service, employee, result = await _calculate(db, payload, settings.tax_year)
    return Envelope(data=service.generate_thai_tax_report(employee, result))


async def _stored_monthly_totals(
    db: AsyncSession, employee_id: int, tax_year: int
) -> list[dict[str, Any]]:
    """Per-month income and tax from stored payrolls of a year."""
    month = extract("month", Payroll.pay_period_date)
    result = await db.execute(
        select(
            month.label("month"),
            func.sum(Payroll.total_income).label("total_income"),
            func.sum(Payroll.income_tax).label("income_tax"),
        )
        .join(Employment, Employment.id == Payroll.employment_id)
        .where(
            Employment.employee_id == employee_id,
            Payroll.pay_period_date >= date(tax_year, 1, 1),
            Payroll.pay_period_date <= date(tax_year, 12, 31),
        )
        .group_by(month)
        .order_by(month)
    )
    return [
        {"month": int(row.month), "total_income": row.total_income, "income_tax": row.income_tax}
        for row in result
    ]
