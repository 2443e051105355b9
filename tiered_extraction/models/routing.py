"""
Routing Data Classes.

EngineTier is static configuration describing one extraction capability.
RoutingDecision records which tier produced a result and why; it is
attached for observability and never changes what the caller receives.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

QUALITY_CLASSES = ('low', 'medium', 'high')

DEFAULT_TOKEN_LADDER: Tuple[int, ...] = (2048, 4096, 8192)


@dataclass(frozen=True)
class EngineTier:
    """
    One configured extraction capability.

    Attributes:
        name: Unique tier name used in decisions and logs
        engine: Backend kind (tesseract, paddle, qwen, gemini, claude)
        model: Model identifier for model-backed engines
        cost_per_call: Estimated USD per image, for reporting only
        quality: low, medium or high
        token_ladder: Ascending output budgets for JSON-producing engines
    """
    name: str
    engine: str
    model: Optional[str] = None
    cost_per_call: float = 0.0
    quality: str = 'medium'
    token_ladder: Tuple[int, ...] = DEFAULT_TOKEN_LADDER

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_ladder: Tuple[int, ...] = DEFAULT_TOKEN_LADDER) -> 'EngineTier':
        """
        Create an EngineTier from a settings.yaml entry.

        Args:
            data: Mapping with at least ``name`` and ``engine``.
            default_ladder: Ladder used when the entry has none.

        Returns:
            EngineTier instance.
        """
        ladder = data.get('token_ladder') or default_ladder
        return cls(
            name=str(data['name']),
            engine=str(data['engine']),
            model=data.get('model'),
            cost_per_call=float(data.get('cost_per_call', 0.0)),
            quality=str(data.get('quality', 'medium')),
            token_ladder=tuple(sorted(int(budget) for budget in ladder)),
        )


@dataclass(frozen=True)
class TierAttempt:
    """Outcome of invoking one tier for one request."""

    tier: str
    outcome: str  # accepted, rejected, unavailable, unsupported, error
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {'tier': self.tier, 'outcome': self.outcome, 'reason': self.reason}


@dataclass(frozen=True)
class RoutingDecision:
    """
    Why the router returned the result it returned.

    Attributes:
        tier: The single tier that produced the returned result
        reason: Escalation history and final outcome
        estimated_cost: Sum of cost estimates of the tiers actually invoked
        accepted: False when tiers were exhausted without acceptance
        attempts: Every tier tried, in order
    """
    tier: str
    reason: str
    estimated_cost: float = 0.0
    accepted: bool = True
    attempts: Tuple[TierAttempt, ...] = field(default_factory=tuple)

    @property
    def escalated(self) -> bool:
        """True when more than one tier was consulted."""
        return len(self.attempts) > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tier': self.tier,
            'reason': self.reason,
            'estimated_cost': self.estimated_cost,
            'accepted': self.accepted,
            'attempts': [attempt.to_dict() for attempt in self.attempts],
        }
