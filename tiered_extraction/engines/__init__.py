"""
Engine Adapter Module for the Tiered Extraction System.

This module provides:
    - EngineAdapter: the one interface every tier is called through
    - StructuredModelAdapter / LineOCRAdapter: the two adapter variants
    - Backends for Tesseract, PaddleOCR, Qwen-VL, Gemini and Claude
    - JSON salvage for cut-off model output

Usage:
    from tiered_extraction.engines import build_adapters

    adapters = build_adapters(tiers)
    result = await adapters["paddle-ocr"].extract(request)
"""

from .base import AdapterKind, EngineAdapter, EngineBackend, InvokeConfig, OCRLine
from .structured_adapter import StructuredModelAdapter
from .line_ocr_adapter import LineOCRAdapter
from .json_salvage import is_truncation_error, parse_structured_output, salvage_json
from .registry import build_adapter, build_adapters

__all__ = [
    'AdapterKind',
    'EngineAdapter',
    'EngineBackend',
    'InvokeConfig',
    'OCRLine',
    'StructuredModelAdapter',
    'LineOCRAdapter',
    'is_truncation_error',
    'parse_structured_output',
    'salvage_json',
    'build_adapter',
    'build_adapters',
]
