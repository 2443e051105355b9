"""
Strategy Routing Module for the Tiered Extraction System.
"""

from .router import AcceptancePolicy, RouterConfig, StrategyRouter, EXHAUSTION_POLICIES, MUST_HAVE_FIELDS

__all__ = [
    'AcceptancePolicy',
    'RouterConfig',
    'StrategyRouter',
    'EXHAUSTION_POLICIES',
    'MUST_HAVE_FIELDS',
]
