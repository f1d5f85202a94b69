"""Inter-subsidiary advance detection.

An advance is owed when a grant of one subsidiary funds payroll for an
employee whose home subsidiary is another one. Detection is pure; the
advance service persists candidates.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from thai_payroll.calculators.types import round_to_satang


@dataclass
class AdvanceCandidate:
    """An advance that should exist for one payroll row."""

    from_subsidiary: str
    to_subsidiary: str
    via_grant_id: int | None
    via_grant_code: str | None
    project_grant_code: str | None
    amount: Decimal
    advance_date: date
    staff_id: str
    payroll_id: int | None = None

    @property
    def notes(self) -> str:
        return f"Auto-generated for {self.staff_id} payroll"

    def to_dict(self) -> dict[str, Any]:
        return {
            "payroll_id": self.payroll_id,
            "staff_id": self.staff_id,
            "from_subsidiary": self.from_subsidiary,
            "to_subsidiary": self.to_subsidiary,
            "via_grant_id": self.via_grant_id,
            "via_grant_code": self.via_grant_code,
            "project_grant_code": self.project_grant_code,
            "amount": self.amount,
            "advance_date": self.advance_date.isoformat(),
            "notes": self.notes,
        }


def funding_organization(allocation: Any) -> str | None:
    """Subsidiary owning the grant behind an allocation."""
    grant = allocation.grant
    return grant.organization if grant is not None else None


def needs_advance(employee: Any, allocation: Any) -> bool:
    """True when the allocation is funded by another subsidiary."""
    funder = funding_organization(allocation)
    if funder is None or employee is None:
        return False
    return funder != employee.organization


def build_advance_candidate(
    employee: Any,
    allocation: Any,
    amount: Decimal,
    advance_date: date,
    hub_grant: Any = None,
    payroll_id: int | None = None,
) -> AdvanceCandidate | None:
    """Describe the advance for a payroll row, or None when not needed.

    The funding subsidiary's hub grant carries the advance; the project
    grant is used when no hub grant exists.
    """
    if not needs_advance(employee, allocation):
        return None

    project_grant = allocation.grant
    via = hub_grant if hub_grant is not None else project_grant
    return AdvanceCandidate(
        from_subsidiary=project_grant.organization,
        to_subsidiary=employee.organization,
        via_grant_id=via.id,
        via_grant_code=via.code,
        project_grant_code=project_grant.code,
        amount=round_to_satang(amount),
        advance_date=advance_date,
        staff_id=employee.staff_id,
        payroll_id=payroll_id,
    )
