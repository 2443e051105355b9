"""
Adapter Registry.

Maps a configured tier's ``engine`` name to its backend and adapter
variant. Line-OCR engines get a LineOCRAdapter, everything else a
StructuredModelAdapter.
"""

from typing import Callable, Dict, Iterable, Optional

from tiered_extraction.models import EngineTier
from tiered_extraction.utils.exceptions import ConfigurationError
from tiered_extraction.utils.logger import get_logger
from .base import AdapterKind, EngineAdapter, EngineBackend
from .claude_backend import ClaudeBackend
from .gemini_backend import GeminiBackend
from .line_ocr_adapter import LineOCRAdapter
from .paddle_backend import PaddleOCRBackend
from .qwen_backend import QwenVLBackend
from .structured_adapter import StructuredModelAdapter
from .tesseract_backend import TesseractBackend

logger = get_logger(__name__)


def _with_model(factory: Callable[..., EngineBackend]) -> Callable[[Optional[str]], EngineBackend]:
    def build(model: Optional[str]) -> EngineBackend:
        return factory(model) if model else factory()
    return build


# engine name -> (adapter kind, backend factory taking the tier's model)
ENGINES: Dict[str, tuple] = {
    'tesseract': (AdapterKind.LINE_OCR, lambda model: TesseractBackend()),
    'paddle': (AdapterKind.LINE_OCR, lambda model: PaddleOCRBackend()),
    'qwen': (AdapterKind.STRUCTURED, _with_model(QwenVLBackend)),
    'gemini': (AdapterKind.STRUCTURED, _with_model(GeminiBackend)),
    'claude': (AdapterKind.STRUCTURED, _with_model(ClaudeBackend)),
}

ADAPTERS = {
    AdapterKind.STRUCTURED: StructuredModelAdapter,
    AdapterKind.LINE_OCR: LineOCRAdapter,
}


def build_adapter(tier: EngineTier) -> EngineAdapter:
    """
    Create the adapter for one tier.

    Backends do not touch credentials until first use, so building an
    adapter for an unconfigured engine succeeds; the engine reports
    itself unavailable when invoked.

    Raises:
        ConfigurationError: If the tier names an unknown engine.
    """
    if tier.engine not in ENGINES:
        raise ConfigurationError(
            f"routing.tiers[{tier.name}].engine",
            f"unknown engine '{tier.engine}', expected one of {sorted(ENGINES)}"
        )
    kind, backend_factory = ENGINES[tier.engine]
    adapter = ADAPTERS[kind](tier, backend_factory(tier.model))
    logger.debug(f"Built {adapter!r}")
    return adapter


def build_adapters(tiers: Iterable[EngineTier]) -> Dict[str, EngineAdapter]:
    """Create adapters for every tier, keyed by tier name."""
    return {tier.name: build_adapter(tier) for tier in tiers}
