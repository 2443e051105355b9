"""
Tiered Receipt Extraction System.

Extracts structured fields from photographed Japanese receipts by
trying the cheapest configured engine first and escalating to stronger
(and more expensive) engines only when the result is not good enough.

Modules:
    - models: Request, result and routing data classes
    - engines: Engine adapters and backends
    - routing: Acceptance policy and strategy router
    - concurrency: Bounded worker pool for batches
    - postprocessor: Normalizers, garbled-text detection, validation
    - pipeline: Public entry point
"""

__version__ = "1.0.0"

from .models import ExtractionRequest, ExtractionResult, RoutingDecision
from .pipeline import ExtractionPipeline

__all__ = [
    'ExtractionRequest',
    'ExtractionResult',
    'RoutingDecision',
    'ExtractionPipeline',
]
