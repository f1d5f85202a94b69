"""Grant and funding allocation models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from thai_payroll.models.base import AuditMixin, Base, TimestampMixin

if TYPE_CHECKING:
    from thai_payroll.models.employee import Employee, Employment


class Grant(Base, TimestampMixin):
    """Grant owned by one subsidiary.

    Each subsidiary keeps one hub grant that carries advances lent to
    other subsidiaries.
    """

    __tablename__ = "grants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    organization: Mapped[str] = mapped_column(String(20), nullable=False)
    is_hub: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    items: Mapped[list[GrantItem]] = relationship(back_populates="grant")


class GrantItem(Base, TimestampMixin):
    """Budgeted position on a grant with a fixed number of slots."""

    __tablename__ = "grant_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    grant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("grants.id", ondelete="CASCADE"), nullable=False
    )
    grant_position: Mapped[str | None] = mapped_column(String(150), nullable=True)
    # 0 or NULL means no capacity limit
    grant_position_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    grant: Mapped[Grant] = relationship(back_populates="items")
    allocations: Mapped[list[FundingAllocation]] = relationship(
        back_populates="grant_item"
    )


class AllocationType:
    """Funding allocation source kinds."""

    GRANT = "grant"
    ORG_FUNDED = "org_funded"


class FundingAllocation(Base, TimestampMixin, AuditMixin):
    """Share of an employment funded by one grant position."""

    __tablename__ = "employee_funding_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False
    )
    employment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("employments.id", ondelete="CASCADE"), nullable=False
    )
    grant_item_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("grant_items.id", ondelete="SET NULL"), nullable=True
    )
    allocation_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AllocationType.GRANT
    )
    # Fraction 0..1 stored from the 0..100 percentage input
    level_of_effort: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    allocated_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "level_of_effort > 0 AND level_of_effort <= 1",
            name="allocation_effort_range",
        ),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="funding_allocations")
    employment: Mapped[Employment] = relationship(back_populates="funding_allocations")
    grant_item: Mapped[GrantItem | None] = relationship(back_populates="allocations")

    @property
    def grant(self) -> Grant | None:
        """Grant funding this allocation, if resolvable."""
        if self.grant_item is None:
            return None
        return self.grant_item.grant

    @property
    def label(self) -> str:
        """Human label, e.g. 'GR-001 - Research Assistant (60%)'."""
        grant = self.grant
        code = grant.code if grant else "Unknown grant"
        position = (
            self.grant_item.grant_position
            if self.grant_item and self.grant_item.grant_position
            else "N/A"
        )
        pct = (self.level_of_effort * 100).normalize()
        return f"{code} - {position} ({pct:f}%)"

    def is_active_on(self, check_date: date) -> bool:
        """Check if allocation covers a specific date."""
        if not self.is_active or check_date < self.start_date:
            return False
        if self.end_date and check_date > self.end_date:
            return False
        return True
