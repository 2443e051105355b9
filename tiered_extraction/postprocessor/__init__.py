"""
Post-Processing Module for the Tiered Extraction System.

This module provides functionality for:
    - Date and amount normalization
    - Garbled OCR text detection
    - Receipt consistency validation
"""

from .normalizers import DateNormalizer, AmountNormalizer
from .quality import GarbledTextDetector
from .validators import ReceiptValidator, ValidationResult, validate_registration_number

__all__ = [
    'DateNormalizer',
    'AmountNormalizer',
    'GarbledTextDetector',
    'ReceiptValidator',
    'ValidationResult',
    'validate_registration_number',
]
