"""Thai payroll services."""

from thai_payroll.services.advance_service import AdvanceService, NoAdvancesToSettleError
from thai_payroll.services.bracket_service import BracketService
from thai_payroll.services.bulk_payroll_service import BulkFilters, BulkPayrollService
from thai_payroll.services.funding_allocation_service import (
    AllocationEffortError,
    FundingAllocationService,
    GrantCapacityError,
)
from thai_payroll.services.settings_service import BenefitSettingService, TaxSettingService
from thai_payroll.services.state_machine import BatchStateMachine, BatchStatus, InvalidTransitionError

__all__ = [
    "AdvanceService",
    "AllocationEffortError",
    "BatchStateMachine",
    "BatchStatus",
    "BenefitSettingService",
    "BracketService",
    "BulkFilters",
    "BulkPayrollService",
    "FundingAllocationService",
    "GrantCapacityError",
    "InvalidTransitionError",
    "NoAdvancesToSettleError",
    "TaxSettingService",
]
