"""
Receipt Validators Module.

Consistency checks on an extracted receipt:
    - Registration number format (T followed by 13 digits)
    - Consumption tax rates (8% reduced, 10% standard)
    - Tax arithmetic within a rounding tolerance

Validation never blocks routing. Failures become warnings on the
result so a reviewer can see them.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from config import get_config
from tiered_extraction.models.extraction_result import ExtractionResult, TaxBreakdown
from tiered_extraction.utils.logger import get_logger

logger = get_logger(__name__)

REGISTRATION_NUMBER = re.compile(r'^T\d{13}$')


@dataclass
class ValidationResult:
    """Errors and warnings found on a receipt."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> List[str]:
        return self.errors + self.warnings


def validate_registration_number(value: Optional[str]) -> bool:
    """
    Check a qualified-invoice registration number.

    Example:
        >>> validate_registration_number("T1234567890123")
        True
        >>> validate_registration_number("T12345")
        False
    """
    if not value:
        return False
    return bool(REGISTRATION_NUMBER.match(value))


class ReceiptValidator:
    """
    Validates extracted receipt data.

    Example:
        >>> validator = ReceiptValidator()
        >>> report = validator.validate(result)
        >>> report.is_valid
        True
    """

    def __init__(self) -> None:
        """Initialize the validator with configuration."""
        self.valid_tax_rates: Sequence[float] = get_config(
            "postprocessing.validation.valid_tax_rates", [8, 10]
        )
        self.tolerance: float = get_config("postprocessing.validation.tolerance", 1)

    def validate_tax_rates(self, breakdown: Sequence[TaxBreakdown]) -> Tuple[bool, str]:
        """Check that every rate is a valid consumption tax rate."""
        for entry in breakdown:
            if entry.tax_rate not in self.valid_tax_rates:
                rates = ', '.join(f"{rate}%" for rate in self.valid_tax_rates)
                return False, f"Invalid tax rate: {entry.tax_rate}%. Must be one of {rates}"
        return True, "Valid tax rates"

    def validate_tax_calculation(self, result: ExtractionResult) -> Tuple[bool, str]:
        """
        Check that the summed tax equals total minus subtotal.

        Skipped when either side of the comparison is missing.
        """
        if not result.tax_breakdown or not result.subtotal_excluding_tax:
            return True, "Tax calculation not checked"
        expected = result.total_amount - result.subtotal_excluding_tax
        difference = abs(result.total_tax - expected)
        if difference > self.tolerance:
            return False, (
                f"Tax calculation mismatch: expected {expected:g}, got {result.total_tax:g}"
            )
        return True, "Valid tax calculation"

    def validate_breakdown_totals(self, result: ExtractionResult) -> Tuple[bool, str]:
        """Check that per-rate totals add up to the receipt total."""
        totals = [entry.total for entry in result.tax_breakdown if entry.total]
        if not totals:
            return True, "Breakdown totals not checked"
        difference = abs(sum(totals) - result.total_amount)
        if difference > self.tolerance:
            return False, (
                f"Total amount mismatch: expected {result.total_amount:g}, got {sum(totals):g}"
            )
        return True, "Valid breakdown totals"

    def validate(self, result: ExtractionResult) -> ValidationResult:
        """
        Run all checks against a result.

        Args:
            result: Result to validate.

        Returns:
            ValidationResult with errors and warnings.
        """
        report = ValidationResult()

        if result.registration_number:
            if not validate_registration_number(result.registration_number):
                report.errors.append(
                    "Invalid registration number format. Must be T followed by 13 digits"
                )
        else:
            report.warnings.append("Registration number not found on receipt")

        valid, message = self.validate_tax_rates(result.tax_breakdown)
        if not valid:
            report.errors.append(message)

        for check in (self.validate_tax_calculation, self.validate_breakdown_totals):
            valid, message = check(result)
            if not valid:
                report.warnings.append(message)

        if report.messages:
            logger.debug(f"Validation issues: {report.messages}")
        return report
