"""Employee and employment models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from thai_payroll.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from thai_payroll.models.funding import FundingAllocation
    from thai_payroll.models.payroll import Payroll


class EmployeeStatus:
    """Residency status values that drive fund and welfare rules."""

    LOCAL_ID = "Local ID"
    LOCAL_NON_ID = "Local non ID"
    NON_THAI_ID = "Non-Thai ID"
    EXPAT = "Expat"


class Employee(Base, TimestampMixin):
    """Employee record with the demographics used for tax allowances."""

    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    staff_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    first_name_en: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name_en: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Home subsidiary (administrative owner of the employee)
    organization: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=EmployeeStatus.LOCAL_ID
    )
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    tax_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    has_spouse: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    eligible_parents_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    __table_args__ = (
        CheckConstraint(
            "eligible_parents_count >= 0", name="employee_parents_nonnegative"
        ),
    )

    # Relationships
    children: Mapped[list[EmployeeChild]] = relationship(
        back_populates="employee",
        cascade="all, delete-orphan",
        order_by="EmployeeChild.date_of_birth",
    )
    employments: Mapped[list[Employment]] = relationship(back_populates="employee")
    funding_allocations: Mapped[list[FundingAllocation]] = relationship(
        back_populates="employee"
    )

    @property
    def full_name(self) -> str:
        """Get full name."""
        return " ".join(p for p in (self.first_name_en, self.last_name_en) if p)

    def age_on(self, as_of: date) -> int | None:
        """Age in whole years on a date, None when birth date is unknown."""
        if self.date_of_birth is None:
            return None
        dob = self.date_of_birth
        had_birthday = (as_of.month, as_of.day) >= (dob.month, dob.day)
        return as_of.year - dob.year - (0 if had_birthday else 1)

    def employment_on(self, as_of: date) -> Employment | None:
        """Return the active employment whose date range covers a date."""
        for employment in self.employments:
            if employment.is_active and employment.is_active_on(as_of):
                return employment
        return None


class EmployeeChild(Base):
    """Child of an employee, counted for child allowances."""

    __tablename__ = "employee_children"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)

    employee: Mapped[Employee] = relationship(back_populates="children")


class Employment(Base, TimestampMixin):
    """Employment contract of an employee."""

    __tablename__ = "employments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("employees.id", ondelete="SET NULL"), nullable=True
    )
    employment_type: Mapped[str] = mapped_column(
        String(30), nullable=False, default="Full-time"
    )
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    position: Mapped[str | None] = mapped_column(String(100), nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    pass_probation_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    probation_salary: Mapped[Decimal | None] = mapped_column(nullable=True)
    pass_probation_salary: Mapped[Decimal] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="employment_dates_check",
        ),
    )

    # Relationships
    employee: Mapped[Employee | None] = relationship(back_populates="employments")
    funding_allocations: Mapped[list[FundingAllocation]] = relationship(
        back_populates="employment"
    )
    payrolls: Mapped[list[Payroll]] = relationship(back_populates="employment")

    def is_active_on(self, check_date: date) -> bool:
        """Check if employment covers a specific date."""
        if check_date < self.start_date:
            return False
        if self.end_date and check_date > self.end_date:
            return False
        return True
