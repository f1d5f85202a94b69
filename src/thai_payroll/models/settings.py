"""Stored overrides for tax and benefit rule values."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from thai_payroll.models.base import AuditMixin, Base, TimestampMixin


class TaxSettingType:
    """Kinds of tax setting."""

    DEDUCTION = "DEDUCTION"
    RATE = "RATE"
    LIMIT = "LIMIT"
    ALLOWANCE = "ALLOWANCE"

    ALL = (DEDUCTION, RATE, LIMIT, ALLOWANCE)


class TaxSetting(Base, TimestampMixin, AuditMixin):
    """One keyed tax value for an effective year.

    Only selected rows take part in calculations.
    """

    __tablename__ = "tax_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    setting_key: Mapped[str] = mapped_column(String(50), nullable=False)
    setting_value: Mapped[Decimal] = mapped_column(nullable=False)
    setting_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    effective_year: Mapped[int] = mapped_column(Integer, nullable=False)
    is_selected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("setting_key", "effective_year", name="tax_setting_key_year_unique"),
    )


class BenefitSettingType:
    """Kinds of benefit setting."""

    PERCENTAGE = "percentage"
    BOOLEAN = "boolean"
    NUMERIC = "numeric"

    ALL = (PERCENTAGE, BOOLEAN, NUMERIC)


class BenefitSetting(Base, TimestampMixin, AuditMixin):
    """Organisation benefit policy value, e.g. ``pvd_percentage``."""

    __tablename__ = "benefit_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    setting_key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    setting_value: Mapped[Decimal] = mapped_column(nullable=False)
    setting_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def is_effective_on(self, as_of: date) -> bool:
        return self.is_active and (self.effective_date is None or self.effective_date <= as_of)
