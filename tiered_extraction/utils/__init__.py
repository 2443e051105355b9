"""
Utility Module for the Tiered Extraction System.

This module provides common utilities used across all other modules:
    - Logging configuration
    - Exception hierarchy
    - Common helpers
"""

from .logger import setup_logger, setup_logger_from_config, get_logger
from .helpers import strip_code_fences, encode_base64, env_value, guess_media_type

__all__ = [
    'setup_logger',
    'setup_logger_from_config',
    'get_logger',
    'strip_code_fences',
    'encode_base64',
    'env_value',
    'guess_media_type',
]
