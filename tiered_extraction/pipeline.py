"""
Extraction Pipeline.

Public entry point tying together the adapters, the strategy router and
the concurrency controller.

Usage:
    from tiered_extraction import ExtractionPipeline

    pipeline = ExtractionPipeline.from_config()
    result = await pipeline.extract_one(request)
    results = await pipeline.extract_batch(requests)
"""

from typing import List, Mapping, Optional, Sequence, Tuple

from config import get_config
from tiered_extraction.concurrency import BatchOptions, process_concurrently
from tiered_extraction.engines import EngineAdapter, build_adapters
from tiered_extraction.models import ExtractionRequest, ExtractionResult, RoutingDecision
from tiered_extraction.routing import RouterConfig, StrategyRouter
from tiered_extraction.utils.logger import get_logger

logger = get_logger(__name__)


class ExtractionPipeline:
    """
    Receipt extraction over the configured tiers.

    Attributes:
        router: StrategyRouter doing the per-request work

    Example:
        >>> pipeline = ExtractionPipeline.from_config(forced_tier="claude-sonnet")
        >>> result, decision = await pipeline.extract_with_decision(request)
        >>> print(decision.tier, result.total_amount)
    """

    def __init__(self, router: StrategyRouter) -> None:
        self.router = router

    @classmethod
    def from_config(
        cls,
        adapters: Optional[Mapping[str, EngineAdapter]] = None,
        **overrides,
    ) -> 'ExtractionPipeline':
        """
        Build the pipeline from settings.yaml.

        Args:
            adapters: Adapters per tier name; built from the tier list
                when omitted.
            **overrides: RouterConfig fields overriding settings
                (``forced_tier``, ``exhaustion_policy``, ...).

        Returns:
            ExtractionPipeline instance.
        """
        config = RouterConfig.from_settings(**overrides)
        if adapters is None:
            adapters = build_adapters(config.active_tiers)
        logger.info(
            f"Pipeline ready with tiers: {[tier.name for tier in config.active_tiers]} "
            f"(threshold {config.confidence_threshold:.0%})"
        )
        return cls(StrategyRouter(config, adapters))

    async def extract_with_decision(self, request: ExtractionRequest) -> Tuple[ExtractionResult, RoutingDecision]:
        """Extract one document and report which tier produced it and why."""
        return await self.router.extract(request)

    async def extract_one(self, request: ExtractionRequest) -> ExtractionResult:
        """Extract one document."""
        result, _ = await self.router.extract(request)
        return result

    async def extract_batch_with_decisions(
        self,
        requests: Sequence[ExtractionRequest],
        options: Optional[BatchOptions] = None,
    ) -> List[Optional[Tuple[ExtractionResult, RoutingDecision]]]:
        """
        Extract many documents concurrently, keeping routing decisions.

        Returns:
            One entry per request in submission order; None marks a
            request that raised (only possible with the ``raise``
            exhaustion policy).
        """
        options = options or self.default_batch_options()
        return await process_concurrently(
            requests,
            lambda request, index: self.router.extract(request),
            options,
        )

    async def extract_batch(
        self,
        requests: Sequence[ExtractionRequest],
        options: Optional[BatchOptions] = None,
    ) -> List[Optional[ExtractionResult]]:
        """
        Extract many documents concurrently.

        Args:
            requests: Documents to extract.
            options: BatchOptions; settings.yaml ``batch`` values when omitted.

        Returns:
            One result per request in submission order; None marks a
            failed request.
        """
        outcomes = await self.extract_batch_with_decisions(requests, options)
        return [outcome[0] if outcome is not None else None for outcome in outcomes]

    @staticmethod
    def default_batch_options() -> BatchOptions:
        """BatchOptions from the ``batch`` section of settings.yaml."""
        return BatchOptions(
            concurrency=int(get_config("batch.concurrency", 3)),
            stagger_delay=float(get_config("batch.stagger_delay", 0.0)),
            stop_on_error=bool(get_config("batch.stop_on_error", False)),
        )
