"""
Concurrency Module for the Tiered Extraction System.
"""

from .controller import BatchOptions, process_batches, process_concurrently

__all__ = [
    'BatchOptions',
    'process_batches',
    'process_concurrently',
]
