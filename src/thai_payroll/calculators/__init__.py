"""Thai income tax and payroll calculators."""

from thai_payroll.calculators.advance_detector import (
    AdvanceCandidate,
    build_advance_candidate,
    needs_advance,
)
from thai_payroll.calculators.allocation_payroll import (
    AllocationPayroll,
    AllocationPayrollCalculator,
    NoActiveEmploymentError,
)
from thai_payroll.calculators.allowances import DeductionCalculator, InvalidCalculationInputError
from thai_payroll.calculators.progressive_tax import (
    NoBracketsConfiguredError,
    ProgressiveTaxCalculator,
)
from thai_payroll.calculators.rules import BenefitRules, TaxYearRules, get_tax_rules
from thai_payroll.calculators.social_security import SocialSecurityCalculator
from thai_payroll.calculators.tax_service import PayrollTaxService
from thai_payroll.calculators.types import EmployeeTaxProfile, PayrollCalculationResult, TaxBand

__all__ = [
    "AdvanceCandidate",
    "AllocationPayroll",
    "AllocationPayrollCalculator",
    "BenefitRules",
    "DeductionCalculator",
    "EmployeeTaxProfile",
    "InvalidCalculationInputError",
    "NoActiveEmploymentError",
    "NoBracketsConfiguredError",
    "PayrollCalculationResult",
    "PayrollTaxService",
    "ProgressiveTaxCalculator",
    "SocialSecurityCalculator",
    "TaxBand",
    "TaxYearRules",
    "build_advance_candidate",
    "get_tax_rules",
    "needs_advance",
]
