"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Common
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: Any
    code: str | None = None


class Envelope(BaseModel):
    """Standard success wrapper."""

    success: bool = True
    message: str | None = None
    data: Any = None


# ============================================================================
# Tax calculation schemas
# ============================================================================


class IncomeLineIn(BaseModel):
    """Additional income or deduction line."""

    type: str = Field(min_length=1, max_length=50)
    amount: Decimal = Field(ge=0)
    description: str | None = Field(default=None, max_length=255)


class PayrollTaxRequest(BaseModel):
    """Schema for calculating one employee's monthly payroll tax."""

    employee_id: int = Field(gt=0)
    gross_salary: Decimal = Field(ge=0)
    tax_year: int | None = Field(default=None, ge=2000, le=2100)
    months_working: int = Field(default=12, ge=1, le=12)
    additional_income: list[IncomeLineIn] = Field(default_factory=list)
    additional_deductions: list[IncomeLineIn] = Field(default_factory=list)


class IncomeTaxRequest(BaseModel):
    """Schema for progressive tax on an annual taxable income."""

    taxable_income: Decimal = Field(ge=0)
    tax_year: int | None = Field(default=None, ge=2000, le=2100)


class MonthlyPayrollIn(BaseModel):
    """One month of income and withheld tax."""

    month: int | None = Field(default=None, ge=1, le=12)
    total_income: Decimal = Field(ge=0)
    income_tax: Decimal = Field(ge=0)


class AnnualSummaryRequest(BaseModel):
    """Schema for reconciling a year of withholding.

    When monthly_payrolls is omitted the stored payrolls of the year are used.
    """

    employee_id: int = Field(gt=0)
    tax_year: int | None = Field(default=None, ge=2000, le=2100)
    monthly_payrolls: list[MonthlyPayrollIn] | None = None


# ============================================================================
# Tax bracket schemas
# ============================================================================


class TaxBracketBase(BaseModel):
    """Fields shared by bracket create and update."""

    min_income: Decimal = Field(ge=0)
    max_income: Decimal | None = Field(default=None, ge=0)
    tax_rate: Decimal = Field(ge=0, le=100)
    bracket_order: int = Field(ge=1)
    effective_year: int = Field(ge=2000, le=2100)
    description: str | None = Field(default=None, max_length=255)
    is_active: bool = True

    @field_validator("max_income")
    @classmethod
    def max_above_min(cls, v: Decimal | None, info) -> Decimal | None:
        low = info.data.get("min_income")
        if v is not None and low is not None and v <= low:
            raise ValueError("max_income must be greater than min_income")
        return v


class TaxBracketCreate(TaxBracketBase):
    """Schema for creating a tax bracket."""


class TaxBracketUpdate(BaseModel):
    """Schema for partially updating a tax bracket."""

    min_income: Decimal | None = Field(default=None, ge=0)
    max_income: Decimal | None = Field(default=None, ge=0)
    tax_rate: Decimal | None = Field(default=None, ge=0, le=100)
    bracket_order: int | None = Field(default=None, ge=1)
    effective_year: int | None = Field(default=None, ge=2000, le=2100)
    description: str | None = Field(default=None, max_length=255)
    is_active: bool | None = None


class TaxBracketResponse(BaseModel):
    """Schema for tax bracket response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    min_income: Decimal
    max_income: Decimal | None = None
    tax_rate: Decimal
    bracket_order: int
    effective_year: int
    description: str | None = None
    is_active: bool
    income_range: str
    formatted_rate: str
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TaxBracketListResponse(BaseModel):
    """Schema for listing tax brackets."""

    items: list[TaxBracketResponse]
    total: int
    page: int
    per_page: int


# ============================================================================
# Tax and benefit setting schemas
# ============================================================================

TAX_SETTING_TYPE_PATTERN = "^(DEDUCTION|RATE|LIMIT|ALLOWANCE)$"
BENEFIT_SETTING_TYPE_PATTERN = "^(percentage|boolean|numeric)$"


class TaxSettingCreate(BaseModel):
    """Schema for creating a tax setting."""

    setting_key: str = Field(max_length=50)
    setting_value: Decimal = Field(ge=0)
    setting_type: str = Field(pattern=TAX_SETTING_TYPE_PATTERN)
    description: str | None = Field(default=None, max_length=255)
    effective_year: int = Field(ge=2000, le=2100)
    is_selected: bool = True


class TaxSettingUpdate(BaseModel):
    """Schema for partially updating a tax setting."""

    setting_value: Decimal | None = Field(default=None, ge=0)
    setting_type: str | None = Field(default=None, pattern=TAX_SETTING_TYPE_PATTERN)
    description: str | None = Field(default=None, max_length=255)
    is_selected: bool | None = None


class TaxSettingResponse(BaseModel):
    """Schema for tax setting response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    setting_key: str
    setting_value: Decimal
    setting_type: str
    description: str | None = None
    effective_year: int
    is_selected: bool
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TaxSettingBulkItem(BaseModel):
    setting_key: str = Field(max_length=50)
    setting_value: Decimal = Field(ge=0)
    setting_type: str = Field(pattern=TAX_SETTING_TYPE_PATTERN)
    description: str | None = Field(default=None, max_length=255)


class TaxSettingBulkUpdate(BaseModel):
    """Insert or overwrite several settings of one year."""

    effective_year: int = Field(ge=2000, le=2100)
    settings: list[TaxSettingBulkItem] = Field(min_length=1)


class BenefitSettingCreate(BaseModel):
    """Schema for creating a benefit setting."""

    setting_key: str = Field(max_length=100)
    setting_value: Decimal
    setting_type: str = Field(pattern=BENEFIT_SETTING_TYPE_PATTERN)
    description: str | None = Field(default=None, max_length=255)
    effective_date: date | None = None
    is_active: bool = True


class BenefitSettingUpdate(BaseModel):
    """Schema for partially updating a benefit setting."""

    setting_value: Decimal | None = None
    setting_type: str | None = Field(default=None, pattern=BENEFIT_SETTING_TYPE_PATTERN)
    description: str | None = Field(default=None, max_length=255)
    effective_date: date | None = None
    is_active: bool | None = None


class BenefitSettingResponse(BaseModel):
    """Schema for benefit setting response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    setting_key: str
    setting_value: Decimal
    setting_type: str
    description: str | None = None
    effective_date: date | None = None
    is_active: bool
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ============================================================================
# Bulk payroll schemas
# ============================================================================


class BulkFiltersIn(BaseModel):
    """Employment selection filters."""

    subsidiaries: list[str] = Field(default_factory=list)
    departments: list[str] = Field(default_factory=list)
    grants: list[int] = Field(default_factory=list)
    employment_types: list[str] = Field(default_factory=list)


class BulkPreviewRequest(BaseModel):
    """Schema for a bulk payroll preview."""

    pay_period: str = Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    detailed: bool = True
    filters: BulkFiltersIn | None = None


class BulkCreateRequest(BaseModel):
    """Schema for creating a bulk payroll batch."""

    pay_period: str = Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    filters: BulkFiltersIn | None = None


# ============================================================================
# Advance schemas
# ============================================================================


class AutoCreateAdvancesRequest(BaseModel):
    """Schema for auto-creating advances of a pay date."""

    payroll_period_date: date
    dry_run: bool = False


class BulkSettleRequest(BaseModel):
    """Schema for settling several advances."""

    advance_ids: list[int] = Field(min_length=1)
    settlement_date: date
    notes: str | None = Field(default=None, max_length=500)


# ============================================================================
# Funding allocation schemas
# ============================================================================


class AllocationIn(BaseModel):
    """One allocation; level_of_effort is a percentage."""

    grant_item_id: int = Field(gt=0)
    level_of_effort: Decimal = Field(gt=0, le=100)
    allocated_amount: Decimal | None = Field(default=None, ge=0)
    allocation_type: str = Field(default="grant", pattern=r"^(grant|org_funded)$")


class AllocationSetBase(BaseModel):
    """Allocation set with a shared validity period."""

    start_date: date
    end_date: date | None = None
    allocations: list[AllocationIn] = Field(min_length=1)

    @field_validator("end_date")
    @classmethod
    def end_after_start(cls, v: date | None, info) -> date | None:
        start = info.data.get("start_date")
        if v is not None and start is not None and v < start:
            raise ValueError("end_date must be on or after start_date")
        return v


class AllocationCreateRequest(AllocationSetBase):
    """Schema for creating the allocations of an employment."""

    employee_id: int = Field(gt=0)
    employment_id: int = Field(gt=0)


class AllocationReplaceRequest(AllocationSetBase):
    """Schema for replacing the allocations of an employment."""
