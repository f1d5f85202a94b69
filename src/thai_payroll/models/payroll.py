"""Payroll, advance and bulk batch models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, CheckConstraint, Date, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from thai_payroll.models.base import AuditMixin, Base, TimestampMixin

if TYPE_CHECKING:
    from thai_payroll.models.employee import Employment
    from thai_payroll.models.funding import FundingAllocation, Grant


class Payroll(Base, TimestampMixin):
    """Stored payroll result for one allocation in one pay period."""

    __tablename__ = "payrolls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("employments.id", ondelete="CASCADE"), nullable=False
    )
    funding_allocation_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("employee_funding_allocations.id", ondelete="SET NULL"),
        nullable=True,
    )
    bulk_payroll_batch_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("bulk_payroll_batches.id", ondelete="SET NULL"),
        nullable=True,
    )
    pay_period_date: Mapped[date] = mapped_column(Date, nullable=False)

    gross_salary: Mapped[Decimal] = mapped_column(nullable=False)
    gross_salary_by_fte: Mapped[Decimal] = mapped_column(nullable=False)
    compensation_refund: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    thirteenth_month_salary: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    pvd: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    saving_fund: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    employer_social_security: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    employee_social_security: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    employer_health_welfare: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    employee_health_welfare: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    income_tax: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_salary: Mapped[Decimal] = mapped_column(nullable=False)
    total_salary: Mapped[Decimal] = mapped_column(nullable=False)
    total_pvd_saving_fund: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    salary_bonus: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_income: Mapped[Decimal] = mapped_column(nullable=False)
    total_deduction: Mapped[Decimal] = mapped_column(nullable=False)
    employer_contribution: Mapped[Decimal] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    employment: Mapped[Employment] = relationship(back_populates="payrolls")
    funding_allocation: Mapped[FundingAllocation | None] = relationship()
    advance: Mapped[InterSubsidiaryAdvance | None] = relationship(
        back_populates="payroll", uselist=False
    )


class InterSubsidiaryAdvance(Base, TimestampMixin, AuditMixin):
    """Receivable between subsidiaries for payroll funded across them."""

    __tablename__ = "inter_subsidiary_advances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # One advance per payroll row
    payroll_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("payrolls.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    from_subsidiary: Mapped[str] = mapped_column(String(20), nullable=False)
    to_subsidiary: Mapped[str] = mapped_column(String(20), nullable=False)
    via_grant_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("grants.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    advance_date: Mapped[date] = mapped_column(Date, nullable=False)
    settlement_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "from_subsidiary <> to_subsidiary", name="advance_distinct_subsidiaries"
        ),
    )

    # Relationships
    payroll: Mapped[Payroll | None] = relationship(back_populates="advance")
    via_grant: Mapped[Grant | None] = relationship()

    @property
    def is_settled(self) -> bool:
        """Check if the advance has been settled."""
        return self.settlement_date is not None

    def days_outstanding(self, as_of: date) -> int:
        """Days between advance date and settlement (or as_of when pending)."""
        end = self.settlement_date or as_of
        return (end - self.advance_date).days


class BulkPayrollBatch(Base, TimestampMixin):
    """One bulk payroll run and its progress counters."""

    __tablename__ = "bulk_payroll_batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pay_period: Mapped[str] = mapped_column(String(7), nullable=False)
    filters: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    total_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_payrolls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    processed_payrolls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_payrolls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_payrolls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    advances_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    summary: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    current_employee: Mapped[str | None] = mapped_column(String(200), nullable=True)
    current_allocation: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="bulk_payroll_batch_status_check",
        ),
    )

    @property
    def progress_percentage(self) -> float:
        """Processed share of total payrolls, 0..100."""
        if not self.total_payrolls:
            return 0.0
        return round(self.processed_payrolls / self.total_payrolls * 100, 2)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def error_count(self) -> int:
        return len(self.errors or [])
