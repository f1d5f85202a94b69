"""Tax bracket model."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from thai_payroll.models.base import AuditMixin, Base, TimestampMixin


class TaxBracket(Base, TimestampMixin, AuditMixin):
    """Progressive rate band for one effective year."""

    __tablename__ = "tax_brackets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    min_income: Mapped[Decimal] = mapped_column(nullable=False)
    # NULL = unbounded top bracket
    max_income: Mapped[Decimal | None] = mapped_column(nullable=True)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    bracket_order: Mapped[int] = mapped_column(Integer, nullable=False)
    effective_year: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint(
            "effective_year", "bracket_order", name="tax_bracket_year_order_unique"
        ),
        CheckConstraint("tax_rate >= 0 AND tax_rate <= 100", name="tax_bracket_rate_range"),
        CheckConstraint(
            "max_income IS NULL OR max_income > min_income",
            name="tax_bracket_range_check",
        ),
    )

    @property
    def income_range(self) -> str:
        """Display range, e.g. '฿150,000 - ฿300,000'."""
        low = f"฿{self.min_income:,.0f}"
        if self.max_income is None:
            return f"{low} and above"
        return f"{low} - ฿{self.max_income:,.0f}"

    @property
    def formatted_rate(self) -> str:
        """Display rate, e.g. '5%'."""
        return f"{Decimal(self.tax_rate).normalize():f}%"
