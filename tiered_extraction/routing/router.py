"""
Strategy Router.

Implements "try cheap, verify, escalate" across the configured tiers.
Each tier gets a fresh adapter call; its result is checked by the
acceptance policy and either returned or the next tier is tried.

Adapter failures never escape the router. An unavailable engine is
skipped without being counted as a quality rejection; any other failure,
engine error or not, is recorded and escalated like a rejection.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from config import get_config
from tiered_extraction.engines.base import EngineAdapter
from tiered_extraction.models import (
    EngineTier,
    ExtractionRequest,
    ExtractionResult,
    RoutingDecision,
    TierAttempt,
)
from tiered_extraction.models.routing import DEFAULT_TOKEN_LADDER
from tiered_extraction.postprocessor import GarbledTextDetector
from tiered_extraction.utils.exceptions import (
    AllTiersRejectedError,
    ConfigurationError,
    EngineError,
    UnavailableError,
    UnsupportedInputError,
)
from tiered_extraction.utils.logger import get_logger

logger = get_logger(__name__)

EXHAUSTION_POLICIES = ('return_last', 'raise')
MUST_HAVE_FIELDS = ('transaction_date', 'total_amount', 'issuer_name')


@dataclass(frozen=True)
class RouterConfig:
    """
    Everything the router's behaviour depends on.

    Attributes:
        tiers: Tiers in escalation order, cheapest first
        confidence_threshold: Minimum overall confidence to accept
        must_have_fields: Fields whose absence alone rejects a result
        exhaustion_policy: ``return_last`` or ``raise``
        forced_tier: Restrict routing to this single tier
    """
    tiers: Tuple[EngineTier, ...]
    confidence_threshold: float = 0.85
    must_have_fields: Tuple[str, ...] = MUST_HAVE_FIELDS
    exhaustion_policy: str = 'return_last'
    forced_tier: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'tiers', tuple(self.tiers))
        object.__setattr__(self, 'must_have_fields', tuple(self.must_have_fields))
        self.validate()

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: On an inconsistent configuration.
        """
        if not self.tiers:
            raise ConfigurationError("routing.tiers", "at least one tier is required")
        names = [tier.name for tier in self.tiers]
        if len(set(names)) != len(names):
            raise ConfigurationError("routing.tiers", f"duplicate tier names in {names}")
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ConfigurationError(
                "routing.confidence_threshold", f"{self.confidence_threshold} is not in [0, 1]"
            )
        if self.exhaustion_policy not in EXHAUSTION_POLICIES:
            raise ConfigurationError(
                "routing.exhaustion_policy",
                f"'{self.exhaustion_policy}' is not one of {EXHAUSTION_POLICIES}"
            )
        unknown = set(self.must_have_fields) - set(MUST_HAVE_FIELDS)
        if unknown:
            raise ConfigurationError("routing.must_have_fields", f"unknown fields {sorted(unknown)}")
        if self.forced_tier is not None and self.forced_tier not in names:
            raise ConfigurationError("routing.forced_tier", f"no tier named '{self.forced_tier}'")

    @property
    def active_tiers(self) -> Tuple[EngineTier, ...]:
        """Tiers the router will actually try, in order."""
        if self.forced_tier is None:
            return self.tiers
        return tuple(tier for tier in self.tiers if tier.name == self.forced_tier)

    @classmethod
    def from_settings(cls, **overrides) -> 'RouterConfig':
        """
        Build the router configuration from settings.yaml.

        Args:
            **overrides: Field values taking precedence over settings
                (e.g. ``forced_tier`` from the command line).

        Returns:
            RouterConfig instance.
        """
        ladder = tuple(get_config("engines.token_ladder", DEFAULT_TOKEN_LADDER))
        tiers = tuple(
            EngineTier.from_dict(entry, default_ladder=ladder)
            for entry in get_config("routing.tiers", [])
        )
        values = {
            'tiers': tiers,
            'confidence_threshold': float(get_config("routing.confidence_threshold", 0.85)),
            'must_have_fields': tuple(get_config("routing.must_have_fields", MUST_HAVE_FIELDS)),
            'exhaustion_policy': get_config("routing.exhaustion_policy", 'return_last'),
            'forced_tier': get_config("routing.forced_tier"),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


class AcceptancePolicy:
    """
    Decides whether a tier's result is good enough to return.

    Checks, in order, stopping at the first failure:
        1. overall confidence reaches the threshold
        2. must-have fields are present and valid
        3. the issuer name is not garbled OCR output

    Example:
        >>> policy = AcceptancePolicy(0.85)
        >>> policy.evaluate(result, "paddle-ocr") is None
        True
    """

    def __init__(self, threshold: float, must_have_fields=MUST_HAVE_FIELDS) -> None:
        self.threshold = threshold
        self.must_have_fields = tuple(must_have_fields)
        self.garbled_detector = GarbledTextDetector()

    def missing_fields(self, result: ExtractionResult) -> List[str]:
        """Must-have fields that are absent or invalid."""
        checks = {
            'transaction_date': result.transaction_date is not None,
            'total_amount': result.total_amount > 0,
            'issuer_name': bool(result.issuer_name and result.issuer_name.strip()),
        }
        return [name for name in self.must_have_fields if not checks[name]]

    def evaluate(self, result: ExtractionResult, tier_name: str) -> Optional[str]:
        """
        Check a result against the policy.

        Returns:
            The rejection reason, or None when the result is accepted.
        """
        confidence = result.overall_confidence
        if confidence < self.threshold:
            return (
                f"confidence below threshold at {tier_name} "
                f"({confidence:.0%} < {self.threshold:.0%})"
            )

        missing = self.missing_fields(result)
        if missing:
            return f"missing or invalid fields at {tier_name}: {', '.join(missing)}"

        if self.garbled_detector.is_garbled(result.issuer_name):
            return f"garbled issuer name at {tier_name}"

        return None


class StrategyRouter:
    """
    Routes one request through the tiers until a result is accepted.

    Attributes:
        config: RouterConfig in effect
        adapters: Adapter per tier name

    Example:
        >>> router = StrategyRouter(RouterConfig.from_settings(), build_adapters(tiers))
        >>> result, decision = await router.extract(request)
        >>> decision.tier
        'gemini-2.5-flash-lite'
    """

    def __init__(self, config: RouterConfig, adapters: Mapping[str, EngineAdapter]) -> None:
        missing = [tier.name for tier in config.active_tiers if tier.name not in adapters]
        if missing:
            raise ConfigurationError("routing.tiers", f"no adapter for tiers {missing}")
        self.config = config
        self.adapters: Dict[str, EngineAdapter] = dict(adapters)
        self.policy = AcceptancePolicy(config.confidence_threshold, config.must_have_fields)

    async def extract(self, request: ExtractionRequest) -> Tuple[ExtractionResult, RoutingDecision]:
        """
        Extract one document, escalating across tiers as needed.

        Args:
            request: The document to extract.

        Returns:
            Tuple of (result, decision). With the default policy this never
            raises; an unaccepted result has ``decision.accepted`` False.

        Raises:
            AllTiersRejectedError: If no tier was accepted and the
                exhaustion policy is ``raise``.
        """
        attempts: List[TierAttempt] = []
        cost = 0.0
        last_result: Optional[ExtractionResult] = None
        last_result_tier: Optional[str] = None
        last_tier: Optional[str] = None

        for tier in self.config.active_tiers:
            adapter = self.adapters[tier.name]
            last_tier = tier.name

            try:
                result = await adapter.extract(request)
            except UnavailableError as e:
                reason = f"{tier.name} unavailable: {e.details.get('reason') or e.message}"
                attempts.append(TierAttempt(tier.name, 'unavailable', reason))
                logger.info(f"[{request.request_id}] {reason}, skipping")
                continue
            except UnsupportedInputError as e:
                reason = f"unsupported input at {tier.name}: {e.message}"
                attempts.append(TierAttempt(tier.name, 'unsupported', reason))
                logger.warning(f"[{request.request_id}] {reason}")
                continue
            except EngineError as e:
                cost += tier.cost_per_call
                reason = f"{type(e).__name__} at {tier.name}: {e}"
                attempts.append(TierAttempt(tier.name, 'error', reason))
                logger.warning(f"[{request.request_id}] {reason}")
                continue
            except Exception as e:
                cost += tier.cost_per_call
                reason = f"unexpected {type(e).__name__} at {tier.name}: {e}"
                attempts.append(TierAttempt(tier.name, 'error', reason))
                logger.exception(f"[{request.request_id}] {reason}")
                continue

            cost += tier.cost_per_call
            last_result = result
            last_result_tier = tier.name
            rejection = self.policy.evaluate(result, tier.name)

            if rejection is None:
                reason = (
                    f"accepted at {tier.name} "
                    f"(confidence {result.overall_confidence:.0%})"
                )
                attempts.append(TierAttempt(tier.name, 'accepted', reason))
                decision = self._decision(tier.name, attempts, cost, accepted=True)
                logger.info(f"[{request.request_id}] {decision.reason}")
                return result, decision

            attempts.append(TierAttempt(tier.name, 'rejected', rejection))
            logger.info(f"[{request.request_id}] {rejection}, escalating")

        if last_result is None:
            summary = "no tier produced a result"
            last_result = ExtractionResult.empty(engine=last_tier, warning=summary)
            last_result_tier = last_tier
        else:
            summary = "all tiers rejected; returning last result for review"
        decision = self._decision(last_result_tier, attempts, cost, accepted=False, summary=summary)
        logger.warning(f"[{request.request_id}] {decision.reason}")

        if self.config.exhaustion_policy == 'raise':
            raise AllTiersRejectedError(decision, last_result)
        return last_result, decision

    @staticmethod
    def _decision(tier: str, attempts: List[TierAttempt], cost: float, accepted: bool,
                  summary: Optional[str] = None) -> RoutingDecision:
        reasons = [attempt.reason for attempt in attempts]
        if summary:
            reasons.append(summary)
        return RoutingDecision(
            tier=tier,
            reason="; ".join(reasons),
            estimated_cost=cost,
            accepted=accepted,
            attempts=tuple(attempts),
        )
