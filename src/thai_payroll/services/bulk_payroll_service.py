"""Bulk payroll: preview, batch creation and the background batch runner."""

from __future__ import annotations

import csv
import io
import logging
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from thai_payroll.calculators.allocation_payroll import AllocationPayroll, AllocationPayrollCalculator
from thai_payroll.calculators.types import ZERO, round_to_satang
from thai_payroll.models import (
    BulkPayrollBatch,
    Employee,
    Employment,
    FundingAllocation,
    GrantItem,
    Payroll,
)
from thai_payroll.services.advance_service import AdvanceService
from thai_payroll.services.bracket_service import BracketService
from thai_payroll.services.settings_service import BenefitSettingService
from thai_payroll.services.state_machine import BatchStateMachine, BatchStatus

logger = logging.getLogger(__name__)

DEFAULT_PROGRESS_INTERVAL = 10
NO_ALLOCATIONS_ERROR = "Employee has no active funding allocations"
CSV_HEADER = ("Employment ID", "Employee", "Allocation", "Error")


class InvalidPayPeriodError(ValueError):
    """Raised for a pay period not in YYYY-MM form."""

    def __init__(self, pay_period: str):
        self.pay_period = pay_period
        super().__init__(f"Pay period must be YYYY-MM, got {pay_period!r}")


class NoMatchingEmploymentsError(Exception):
    """Raised when a batch would contain no employments."""

    def __init__(self, pay_period: str):
        self.pay_period = pay_period
        super().__init__("No employments found matching the filters")


class BatchNotFoundError(Exception):
    def __init__(self, batch_id: int):
        self.batch_id = batch_id
        super().__init__(f"Bulk payroll batch {batch_id} not found")


class NoBatchErrorsError(Exception):
    def __init__(self, batch_id: int):
        self.batch_id = batch_id
        super().__init__("No errors found for this batch")


@dataclass
class BulkFilters:
    """Employment selection criteria; empty lists mean no restriction."""

    subsidiaries: list[str] = field(default_factory=list)
    departments: list[str] = field(default_factory=list)
    grants: list[int] = field(default_factory=list)
    employment_types: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> BulkFilters:
        data = data or {}
        return cls(
            subsidiaries=list(data.get("subsidiaries") or []),
            departments=list(data.get("departments") or []),
            grants=[int(g) for g in data.get("grants") or []],
            employment_types=list(data.get("employment_types") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "subsidiaries": self.subsidiaries,
            "departments": self.departments,
            "grants": self.grants,
            "employment_types": self.employment_types,
        }


def pay_period_date(pay_period: str) -> date:
    """Payday of a 'YYYY-MM' period: the last day of the month."""
    try:
        parsed = datetime.strptime(pay_period, "%Y-%m")
    except (TypeError, ValueError) as e:
        raise InvalidPayPeriodError(pay_period) from e
    return date(parsed.year, parsed.month, monthrange(parsed.year, parsed.month)[1])


def _allocation_active_on(as_of: date):
    return and_(
        FundingAllocation.is_active.is_(True),
        FundingAllocation.start_date <= as_of,
        or_(FundingAllocation.end_date.is_(None), FundingAllocation.end_date >= as_of),
    )


class BulkPayrollService:
    """Computes payroll for every selected employment and allocation.

    Preview is read-only. A batch run stores one Payroll per allocation
    (plus its advance) inside a savepoint, so a failing row leaves nothing
    behind and never stops the batch.
    """

    def __init__(self, session: AsyncSession, progress_interval: int = DEFAULT_PROGRESS_INTERVAL):
        self.session = session
        self.progress_interval = max(progress_interval, 1)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def employment_query(self, filters: BulkFilters, as_of: date):
        """Active employments covering the payday, with filters applied."""
        query = select(Employment).where(
            Employment.is_active.is_(True),
            Employment.start_date <= as_of,
            or_(Employment.end_date.is_(None), Employment.end_date >= as_of),
        )
        if filters.subsidiaries:
            query = query.where(
                Employment.employee.has(Employee.organization.in_(filters.subsidiaries))
            )
        if filters.departments:
            query = query.where(Employment.department.in_(filters.departments))
        if filters.employment_types:
            query = query.where(Employment.employment_type.in_(filters.employment_types))
        if filters.grants:
            query = query.where(
                Employment.funding_allocations.any(
                    and_(
                        _allocation_active_on(as_of),
                        FundingAllocation.grant_item.has(GrantItem.grant_id.in_(filters.grants)),
                    )
                )
            )
        return query.order_by(Employment.id)

    async def load_employments(self, filters: BulkFilters, as_of: date) -> list[Employment]:
        """Selected employments with everything the calculator reads."""
        result = await self.session.execute(
            self.employment_query(filters, as_of).options(
                selectinload(Employment.employee).selectinload(Employee.children),
                selectinload(Employment.employee).selectinload(Employee.employments),
                selectinload(Employment.funding_allocations)
                .selectinload(FundingAllocation.grant_item)
                .selectinload(GrantItem.grant),
            )
        )
        return list(result.scalars().all())

    @staticmethod
    def active_allocations(employment: Employment, as_of: date) -> list[FundingAllocation]:
        return sorted(
            (a for a in employment.funding_allocations if a.is_active_on(as_of)),
            key=lambda a: a.id,
        )

    async def _calculator(self, as_of: date) -> AllocationPayrollCalculator:
        tax_service = await BracketService(self.session).build_tax_service(as_of.year)
        benefits = await BenefitSettingService(self.session).benefit_rules(as_of)
        return AllocationPayrollCalculator(tax_service, benefits)

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    async def preview(
        self, pay_period: str, filters: BulkFilters | None = None, detailed: bool = True
    ) -> dict[str, Any]:
        """Dry run over the selection; data problems become warnings."""
        filters = filters or BulkFilters()
        as_of = pay_period_date(pay_period)
        employments = await self.load_employments(filters, as_of)
        calculator = await self._calculator(as_of)

        warnings: list[str] = []
        employees: list[dict[str, Any]] = []
        total_payrolls = 0
        total_gross = ZERO
        total_net = ZERO
        advances_needed = 0

        for employment in employments:
            employee = employment.employee
            if employee is None:
                warnings.append(f"Employment ID {employment.id} has no linked employee")
                continue

            allocations = self.active_allocations(employment, as_of)
            if not allocations:
                warnings.append(f"Employee {employee.full_name} has no active funding allocations")
                continue

            if employment.pass_probation_date is None and employment.employment_type != "Contract":
                warnings.append(f"Employee {employee.full_name} is missing probation pass date")

            row: dict[str, Any] = {
                "employment_id": employment.id,
                "staff_id": employee.staff_id,
                "name": employee.full_name,
                "organization": employee.organization,
                "department": employment.department or "N/A",
                "position": employment.position or "N/A",
                "employment_type": employment.employment_type,
                "allocations": [],
                "total_gross": ZERO,
                "total_net": ZERO,
                "allocation_count": 0,
                "has_warnings": False,
            }

            for allocation in allocations:
                try:
                    payroll = calculator.calculate_allocation_payroll(employee, allocation, as_of)
                except Exception as e:
                    logger.warning(
                        "Preview calculation failed",
                        extra={"employment_id": employment.id, "allocation_id": allocation.id},
                    )
                    warnings.append(
                        f"Error calculating payroll for {employee.full_name} "
                        f"(Allocation ID: {allocation.id}): {e}"
                    )
                    row["has_warnings"] = True
                    continue

                total_payrolls += 1
                total_gross += payroll.gross_salary
                total_net += payroll.net_salary
                if payroll.needs_advance:
                    advances_needed += 1

                row["allocations"].append(_preview_allocation(payroll, allocation))
                row["total_gross"] += payroll.gross_salary
                row["total_net"] += payroll.net_salary
                row["allocation_count"] += 1

            employees.append(row)

        data: dict[str, Any] = {
            "summary": {
                "total_employees": len(employments),
                "total_payrolls": total_payrolls,
                "total_gross_salary": round_to_satang(total_gross),
                "total_net_salary": round_to_satang(total_net),
                "advances_needed": advances_needed,
            },
            "warnings": warnings,
            "pay_period": pay_period,
            "filters_applied": filters.to_dict(),
            "detailed": detailed,
        }
        if detailed:
            data["employees"] = employees
            data["employee_count"] = len(employees)
        return data

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    async def create_batch(
        self, pay_period: str, filters: BulkFilters | None = None, created_by: str | None = None
    ) -> BulkPayrollBatch:
        """Store a pending batch for the current selection."""
        filters = filters or BulkFilters()
        as_of = pay_period_date(pay_period)
        employments = await self.load_employments(filters, as_of)
        if not employments:
            raise NoMatchingEmploymentsError(pay_period)

        total_payrolls = sum(
            max(len(self.active_allocations(e, as_of)), 1) for e in employments
        )
        batch = BulkPayrollBatch(
            pay_period=pay_period,
            filters=filters.to_dict(),
            total_employees=len(employments),
            total_payrolls=total_payrolls,
            status=BatchStatus.PENDING.value,
            errors=[],
            created_by=created_by,
        )
        self.session.add(batch)
        await self.session.flush()
        logger.info(
            "Created bulk payroll batch",
            extra={"batch_id": batch.id, "pay_period": pay_period, "employments": len(employments)},
        )
        return batch

    async def get_batch(self, batch_id: int) -> BulkPayrollBatch:
        batch = await self.session.get(BulkPayrollBatch, batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    async def run_batch(self, batch_id: int) -> BulkPayrollBatch:
        """Process a pending batch to completion.

        Row failures are recorded on the batch; any other failure marks the
        batch failed and is re-raised.
        """
        batch = await self.get_batch(batch_id)
        self._transition(batch, BatchStatus.PROCESSING)
        await self.session.commit()
        logger.info("Starting bulk payroll batch", extra={"batch_id": batch_id})

        try:
            await self._process(batch)
        except Exception as e:
            logger.exception("Fatal error in bulk payroll batch", extra={"batch_id": batch_id})
            await self.session.rollback()
            await self.session.refresh(batch)
            self._transition(batch, BatchStatus.FAILED)
            batch.errors = [{"error": f"Fatal error: {e}"}]
            batch.current_employee = None
            batch.current_allocation = None
            await self.session.commit()
            raise

        logger.info(
            "Completed bulk payroll batch",
            extra={
                "batch_id": batch_id,
                "successful": batch.successful_payrolls,
                "failed": batch.failed_payrolls,
            },
        )
        return batch

    async def _process(self, batch: BulkPayrollBatch) -> None:
        as_of = pay_period_date(batch.pay_period)
        employments = await self.load_employments(BulkFilters.from_dict(batch.filters), as_of)
        calculator = await self._calculator(as_of)
        advances = AdvanceService(self.session)

        batch.total_employees = len(employments)
        batch.total_payrolls = sum(
            max(len(self.active_allocations(e, as_of)), 1) for e in employments
        )
        errors: list[dict[str, Any]] = []
        processed = successful = failed = advances_created = 0
        since_progress = 0

        for employment in employments:
            employee = employment.employee
            employee_name = employee.full_name if employee else "Unknown"
            allocations = self.active_allocations(employment, as_of) if employee else []

            if employee is None or not allocations:
                message = (
                    "Employment has no linked employee" if employee is None else NO_ALLOCATIONS_ERROR
                )
                errors.append(_error_row(employment.id, employee_name, "N/A", message))
                logger.warning(
                    "Bulk payroll row skipped",
                    extra={"batch_id": batch.id, "employment_id": employment.id, "reason": message},
                )
                failed += 1
                processed += 1
                since_progress += 1
            else:
                for allocation in allocations:
                    label = allocation.label
                    try:
                        async with self.session.begin_nested():
                            result = calculator.calculate_allocation_payroll(
                                employee, allocation, as_of
                            )
                            payroll = _payroll_from_result(result, batch.id)
                            self.session.add(payroll)
                            await self.session.flush()
                            advance = await advances.create_advance_if_needed(
                                payroll, employee, allocation, batch.created_by
                            )
                            await self.session.flush()
                    except Exception as e:
                        logger.warning(
                            "Bulk payroll row failed",
                            extra={
                                "batch_id": batch.id,
                                "employment_id": employment.id,
                                "allocation_id": allocation.id,
                                "error": str(e),
                            },
                        )
                        errors.append(_error_row(employment.id, employee_name, label, str(e)))
                        failed += 1
                    else:
                        successful += 1
                        if advance is not None:
                            advances_created += 1

                    processed += 1
                    since_progress += 1
                    batch.current_employee = employee_name
                    batch.current_allocation = label

            if since_progress >= self.progress_interval:
                self._record_progress(batch, processed, successful, failed, advances_created, errors)
                await self.session.commit()
                since_progress = 0

        self._record_progress(batch, processed, successful, failed, advances_created, errors)
        batch.current_employee = None
        batch.current_allocation = None
        batch.summary = {
            "total_employees": batch.total_employees,
            "total_payrolls": batch.total_payrolls,
            "successful": successful,
            "failed": failed,
            "advances_created": advances_created,
            "completed_at": datetime.now().isoformat(timespec="seconds"),
        }
        self._transition(batch, BatchStatus.COMPLETED)
        await self.session.commit()

    @staticmethod
    def _record_progress(
        batch: BulkPayrollBatch,
        processed: int,
        successful: int,
        failed: int,
        advances_created: int,
        errors: list[dict[str, Any]],
    ) -> None:
        batch.processed_payrolls = processed
        batch.successful_payrolls = successful
        batch.failed_payrolls = failed
        batch.advances_created = advances_created
        # New list so the JSON column is flagged dirty
        batch.errors = list(errors)

    @staticmethod
    def _transition(batch: BulkPayrollBatch, to_status: BatchStatus) -> None:
        BatchStateMachine.validate_transition(batch.status, to_status)
        batch.status = to_status.value

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @staticmethod
    def status_snapshot(batch: BulkPayrollBatch) -> dict[str, Any]:
        return {
            "batch_id": batch.id,
            "pay_period": batch.pay_period,
            "status": batch.status,
            "processed": batch.processed_payrolls,
            "total": batch.total_payrolls,
            "progress_percentage": batch.progress_percentage,
            "current_employee": batch.current_employee,
            "current_allocation": batch.current_allocation,
            "stats": {
                "successful": batch.successful_payrolls,
                "failed": batch.failed_payrolls,
                "advances_created": batch.advances_created,
            },
            "has_errors": batch.has_errors,
            "error_count": batch.error_count,
            "summary": batch.summary,
            "created_at": batch.created_at,
            "updated_at": batch.updated_at,
        }

    @staticmethod
    def errors_csv(batch: BulkPayrollBatch) -> str:
        """Batch errors as CSV with every value quoted."""
        if not batch.has_errors:
            raise NoBatchErrorsError(batch.id)

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for error in batch.errors or []:
            writer.writerow(
                [
                    error.get("employment_id") if error.get("employment_id") is not None else "N/A",
                    error.get("employee") or "Unknown",
                    error.get("allocation") or "N/A",
                    error.get("error") or "Unknown error",
                ]
            )
        return buffer.getvalue()


async def run_batch_in_background(
    batch_id: int,
    session_factory: async_sessionmaker[AsyncSession],
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
) -> None:
    """Entry point for BackgroundTasks: runs a batch in its own session."""
    async with session_factory() as session:
        try:
            await BulkPayrollService(session, progress_interval).run_batch(batch_id)
        except Exception:
            logger.exception("Bulk payroll batch %s failed", batch_id)


def _error_row(employment_id: int, employee: str, allocation: str, error: str) -> dict[str, Any]:
    return {
        "employment_id": employment_id,
        "employee": employee,
        "allocation": allocation,
        "error": error,
    }


def _payroll_from_result(result: AllocationPayroll, batch_id: int | None) -> Payroll:
    values = result.calculations()
    return Payroll(
        employment_id=result.employment_id,
        funding_allocation_id=result.allocation_id,
        bulk_payroll_batch_id=batch_id,
        pay_period_date=result.pay_period_date,
        gross_salary=values["gross_salary"],
        gross_salary_by_fte=values["gross_salary_by_fte"],
        compensation_refund=values["compensation_refund"],
        thirteenth_month_salary=values["thirteenth_month_salary"],
        pvd=values["pvd"],
        saving_fund=values["saving_fund"],
        employer_social_security=values["employer_social_security"],
        employee_social_security=values["employee_social_security"],
        employer_health_welfare=values["employer_health_welfare"],
        employee_health_welfare=values["employee_health_welfare"],
        income_tax=values["income_tax"],
        net_salary=values["net_salary"],
        total_salary=values["total_salary"],
        total_pvd_saving_fund=values["total_pvd_saving_fund"],
        salary_bonus=values["salary_bonus"],
        total_income=values["total_income"],
        total_deduction=values["total_deduction"],
        employer_contribution=values["employer_contribution"],
    )


def _preview_allocation(payroll: AllocationPayroll, allocation: FundingAllocation) -> dict[str, Any]:
    grant = allocation.grant
    return {
        "allocation_id": allocation.id,
        "grant_name": grant.name if grant else "N/A",
        "grant_code": grant.code if grant else "N/A",
        "grant_organization": grant.organization if grant else "N/A",
        "fte": payroll.fte_percentage,
        "allocation_type": allocation.allocation_type,
        "label": payroll.funding_label,
        "gross_salary": payroll.gross_salary,
        "gross_salary_by_fte": payroll.gross_salary_by_fte,
        "deductions": {
            "tax": payroll.income_tax,
            "employee_ss": payroll.employee_social_security,
            "employee_hw": payroll.employee_health_welfare,
            "pvd": payroll.pvd,
            "saving_fund": payroll.saving_fund,
            "total": payroll.total_deduction,
        },
        "contributions": {
            "employer_ss": payroll.employer_social_security,
            "employer_hw": payroll.employer_health_welfare,
            "total": payroll.employer_contribution,
        },
        "income_additions": {
            "thirteenth_month": payroll.thirteenth_month_salary,
            "compensation_refund": payroll.compensation_refund,
            "salary_bonus": payroll.salary_bonus,
        },
        "total_salary": payroll.total_salary,
        "total_income": payroll.total_income,
        "net_salary": payroll.net_salary,
        "needs_advance": payroll.needs_advance,
        "advance_from": payroll.advance_from,
        "advance_to": payroll.advance_to,
    }
