"""Derive the tax profile and service periods from employee records."""

from __future__ import annotations

from calendar import monthrange
from datetime import date, timedelta
from typing import Any

from thai_payroll.calculators.types import EmployeeTaxProfile


def build_tax_profile(employee: Any, as_of: date) -> EmployeeTaxProfile:
    """Snapshot of the employee facts that drive allowances.

    Age is taken at the end of the tax year containing as_of. Requires the
    employee's children to be loaded.
    """
    year_end = date(as_of.year, 12, 31)
    return EmployeeTaxProfile(
        has_spouse=bool(employee.has_spouse),
        children_birth_dates=tuple(child.date_of_birth for child in employee.children),
        eligible_parents_count=employee.eligible_parents_count or 0,
        employee_status=employee.status,
        age=employee.age_on(year_end),
    )


def month_bounds(day: date) -> tuple[date, date]:
    """First and last day of the month containing a date."""
    return day.replace(day=1), day.replace(day=monthrange(day.year, day.month)[1])


def whole_months_between(start: date, end: date) -> int:
    """Completed calendar months from start to end (0 when end < start)."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(months, 0)


def working_days_between(start: date, end: date) -> int:
    """Weekdays from start to end, both inclusive."""
    if end < start:
        return 0
    total_days = (end - start).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    days = full_weeks * 5
    for offset in range(remainder):
        if (start + timedelta(days=full_weeks * 7 + offset)).weekday() < 5:
            days += 1
    return days


def months_working_in_year(start_date: date, as_of: date) -> int:
    """Months of the tax year the employee is employed, used to annualize."""
    if start_date.year != as_of.year:
        return 12
    return 12 - start_date.month + 1
