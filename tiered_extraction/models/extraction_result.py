"""
Extraction Result Data Classes.

This module defines the canonical result shape every engine adapter
returns, regardless of whether the engine produced OCR lines or JSON.

Overall confidence is never stored. It is recomputed from the per-field
confidence map with fixed weights, so two results with the same map
always report the same overall score.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import date
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

# Weights for the overall confidence score. Registration number and total
# are what the tax return depends on; category can be fixed by the user.
CONFIDENCE_WEIGHTS: Mapping[str, float] = MappingProxyType({
    'issuer_name': 1.0,
    'registration_number': 2.0,
    'transaction_date': 1.5,
    'total_amount': 2.0,
    'tax_breakdown': 1.5,
    'category': 0.5,
})

DEFAULT_CATEGORY = "未分類"
DEFAULT_PAYMENT_METHOD = "unknown"


def compute_overall_confidence(field_confidence: Mapping[str, float]) -> float:
    """
    Weighted mean of the field confidences the engine could estimate.

    Fields absent from the map do not contribute to either the sum or the
    total weight. Unknown keys are ignored.

    Args:
        field_confidence: Mapping of canonical field name to [0, 1].

    Returns:
        Overall confidence in [0, 1]; 0.0 when no weighted field is present.

    Example:
        >>> compute_overall_confidence({'total_amount': 1.0, 'category': 0.0})
        0.8
    """
    weighted_sum = 0.0
    total_weight = 0.0
    for field_name, weight in CONFIDENCE_WEIGHTS.items():
        if field_name in field_confidence:
            weighted_sum += field_confidence[field_name] * weight
            total_weight += weight
    if total_weight == 0:
        return 0.0
    return weighted_sum / total_weight


@dataclass(frozen=True)
class TaxBreakdown:
    """Amounts for one consumption-tax rate on a receipt."""

    tax_rate: float
    subtotal: float = 0.0
    tax_amount: float = 0.0
    total: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            'tax_rate': self.tax_rate,
            'subtotal': self.subtotal,
            'tax_amount': self.tax_amount,
            'total': self.total,
        }


@dataclass(frozen=True)
class ExtractionResult:
    """
    Canonical output of one engine adapter call.

    Every field is populated; fields the engine found nothing for carry
    their default. ``field_confidence`` only has entries for fields the
    engine could estimate.

    Attributes:
        issuer_name: Name of the business that issued the receipt
        registration_number: Qualified-invoice registration number (T + 13 digits)
        transaction_date: Date of the transaction
        description: Short description of what was bought
        subtotal_excluding_tax: Amount before consumption tax
        tax_breakdown: Amounts per tax rate
        total_amount: Tax-inclusive total
        category: Suggested expense category
        category_confidence: Engine's confidence in the category
        payment_method: cash, credit_card, ... or unknown
        field_confidence: Read-only per-field confidence map
        warnings: Human-readable issues noticed during extraction
        raw_trace: Raw engine output, for diagnostics only
        engine: Name of the tier that produced this result

    Example:
        >>> result = ExtractionResult(issuer_name="Acme", total_amount=1500.0,
        ...                           field_confidence={'total_amount': 0.9})
        >>> result.overall_confidence
        0.9
    """
    issuer_name: str = ""
    registration_number: Optional[str] = None
    transaction_date: Optional[date] = None
    description: str = ""
    subtotal_excluding_tax: float = 0.0
    tax_breakdown: Tuple[TaxBreakdown, ...] = ()
    total_amount: float = 0.0
    category: str = DEFAULT_CATEGORY
    category_confidence: float = 0.0
    payment_method: str = DEFAULT_PAYMENT_METHOD

    field_confidence: Mapping[str, float] = field(default_factory=dict)
    warnings: Tuple[str, ...] = ()
    raw_trace: Optional[str] = None
    engine: Optional[str] = None

    def __post_init__(self):
        """Freeze the mutable containers handed in by the caller."""
        object.__setattr__(
            self, 'field_confidence', MappingProxyType(dict(self.field_confidence))
        )
        object.__setattr__(self, 'tax_breakdown', tuple(self.tax_breakdown))
        object.__setattr__(self, 'warnings', tuple(self.warnings))

    @property
    def overall_confidence(self) -> float:
        """Weighted overall confidence derived from field_confidence."""
        return compute_overall_confidence(self.field_confidence)

    @property
    def total_tax(self) -> float:
        """Sum of tax amounts across all rates."""
        return sum(entry.tax_amount for entry in self.tax_breakdown)

    def with_warnings(self, *warnings: str) -> 'ExtractionResult':
        """Return a copy with extra warnings appended."""
        return replace(self, warnings=self.warnings + tuple(warnings))

    @classmethod
    def empty(cls, engine: Optional[str] = None, warning: Optional[str] = None) -> 'ExtractionResult':
        """
        Build the default result used when no engine produced anything.

        Args:
            engine: Tier to attribute the result to.
            warning: Explanation shown to the reviewer.

        Returns:
            ExtractionResult with default fields and overall confidence 0.
        """
        warnings = (warning,) if warning else ()
        return cls(engine=engine, warnings=warnings)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary format.

        Returns:
            Dictionary representation of the extraction result.
        """
        return {
            'issuer_name': self.issuer_name,
            'registration_number': self.registration_number,
            'transaction_date': self.transaction_date.isoformat() if self.transaction_date else None,
            'description': self.description,
            'subtotal_excluding_tax': self.subtotal_excluding_tax,
            'tax_breakdown': [entry.to_dict() for entry in self.tax_breakdown],
            'total_amount': self.total_amount,
            'category': self.category,
            'category_confidence': self.category_confidence,
            'payment_method': self.payment_method,
            'field_confidence': dict(self.field_confidence),
            'overall_confidence': self.overall_confidence,
            'warnings': list(self.warnings),
            'engine': self.engine,
        }

    def to_json(self, indent: int = 2) -> str:
        """
        Convert to JSON string.

        Args:
            indent: JSON indentation level.

        Returns:
            JSON string representation.
        """
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def __repr__(self) -> str:
        return (
            f"ExtractionResult("
            f"issuer={self.issuer_name!r}, "
            f"total={self.total_amount}, "
            f"date={self.transaction_date}, "
            f"confidence={self.overall_confidence:.2f}, "
            f"engine={self.engine})"
        )
