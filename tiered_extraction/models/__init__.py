"""
Data Model Module for the Tiered Extraction System.

    - ExtractionRequest: one document submitted for extraction
    - ExtractionResult: canonical output shared by every engine
    - EngineTier / RoutingDecision: routing configuration and trace
"""

from .request import ExtractionRequest
from .extraction_result import (
    ExtractionResult,
    TaxBreakdown,
    CONFIDENCE_WEIGHTS,
    DEFAULT_CATEGORY,
    compute_overall_confidence,
)
from .routing import EngineTier, RoutingDecision, TierAttempt

__all__ = [
    'ExtractionRequest',
    'ExtractionResult',
    'TaxBreakdown',
    'CONFIDENCE_WEIGHTS',
    'DEFAULT_CATEGORY',
    'compute_overall_confidence',
    'EngineTier',
    'RoutingDecision',
    'TierAttempt',
]
