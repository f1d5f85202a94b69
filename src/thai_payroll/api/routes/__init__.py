"""API routes."""

from thai_payroll.api.routes.advances import router as advances_router
from thai_payroll.api.routes.benefit_settings import router as benefit_settings_router
from thai_payroll.api.routes.bulk_payroll import router as bulk_payroll_router
from thai_payroll.api.routes.funding_allocations import router as funding_allocations_router
from thai_payroll.api.routes.health import router as health_router
from thai_payroll.api.routes.tax_brackets import router as tax_brackets_router
from thai_payroll.api.routes.tax_calculations import router as tax_calculations_router
from thai_payroll.api.routes.tax_settings import router as tax_settings_router

__all__ = [
    "advances_router",
    "benefit_settings_router",
    "bulk_payroll_router",
    "funding_allocations_router",
    "health_router",
    "tax_brackets_router",
    "tax_calculations_router",
    "tax_settings_router",
]
