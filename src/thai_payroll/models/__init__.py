"""SQLAlchemy ORM models."""

from thai_payroll.models.base import Base, TimestampMixin
from thai_payroll.models.employee import Employee, EmployeeChild, EmployeeStatus, Employment
from thai_payroll.models.funding import AllocationType, FundingAllocation, Grant, GrantItem
from thai_payroll.models.payroll import BulkPayrollBatch, InterSubsidiaryAdvance, Payroll
from thai_payroll.models.settings import (
    BenefitSetting,
    BenefitSettingType,
    TaxSetting,
    TaxSettingType,
)
from thai_payroll.models.tax import TaxBracket

__all__ = [
    "AllocationType",
    "Base",
    "BenefitSetting",
    "BenefitSettingType",
    "BulkPayrollBatch",
    "Employee",
    "EmployeeChild",
    "EmployeeStatus",
    "Employment",
    "FundingAllocation",
    "Grant",
    "GrantItem",
    "InterSubsidiaryAdvance",
    "Payroll",
    "TaxBracket",
    "TaxSetting",
    "TaxSettingType",
    "TimestampMixin",
]
