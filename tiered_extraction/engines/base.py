"""
Engine Adapter Interface.

Every engine tier is wrapped by an adapter exposing one coroutine,
``extract(request) -> ExtractionResult``. There are exactly two kinds of
adapter, distinguished by the shape of what their backend returns:

    - STRUCTURED: the backend returns JSON text (vision language models)
    - LINE_OCR: the backend returns recognised text lines with confidence

Backends are the thin capability primitives underneath. They know how to
call one remote or local engine and nothing about receipts.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, FrozenSet, List, NamedTuple, Optional

from tiered_extraction.models import EngineTier, ExtractionRequest, ExtractionResult
from tiered_extraction.utils.exceptions import UnsupportedInputError
from tiered_extraction.utils.logger import get_logger

logger = get_logger(__name__)

IMAGE_MEDIA_TYPES: FrozenSet[str] = frozenset({
    'image/jpeg',
    'image/png',
    'image/webp',
    'image/gif',
})


class AdapterKind(str, Enum):
    """Shape of the raw output an adapter consumes."""

    STRUCTURED = "structured"
    LINE_OCR = "line_ocr"


@dataclass(frozen=True)
class InvokeConfig:
    """Per-call generation settings passed to a backend."""

    max_output_tokens: int = 2048
    temperature: float = 0.1


class OCRLine(NamedTuple):
    """One recognised text line."""

    text: str
    confidence: float


class EngineBackend(ABC):
    """
    Capability primitive for one engine.

    Subclasses raise UnavailableError when credentials, endpoints or
    binaries are missing, and RemoteError when the engine reports a
    failure.
    """

    name: str = "backend"
    supported_media_types: FrozenSet[str] = IMAGE_MEDIA_TYPES

    @abstractmethod
    async def invoke(self, data: bytes, media_type: str, config: InvokeConfig) -> Any:
        """
        Send one document to the engine.

        Returns:
            JSON text for structured backends, a list of OCRLine for
            line-OCR backends.
        """


class EngineAdapter(ABC):
    """
    Adapter turning one backend's raw output into an ExtractionResult.

    Attributes:
        tier: The configured tier this adapter serves
        backend: The capability primitive it calls
        kind: Which of the two adapter variants this is
    """

    kind: AdapterKind

    def __init__(self, tier: EngineTier, backend: EngineBackend) -> None:
        self.tier = tier
        self.backend = backend

    @property
    def name(self) -> str:
        return self.tier.name

    def validate_request(self, request: ExtractionRequest) -> None:
        """
        Reject requests that cannot be sent to the backend at all.

        Raises:
            UnsupportedInputError: On empty data or an unsupported media type.
        """
        supported = self.backend.supported_media_types
        if not request.data:
            raise UnsupportedInputError(
                self.name, request.media_type, sorted(supported),
                reason=f"Empty document submitted to {self.name}"
            )
        if request.media_type not in supported:
            raise UnsupportedInputError(self.name, request.media_type, sorted(supported))

    async def extract(self, request: ExtractionRequest) -> ExtractionResult:
        """
        Extract receipt fields from one document.

        Args:
            request: The document to extract from.

        Returns:
            ExtractionResult attributed to this adapter's tier.

        Raises:
            UnsupportedInputError: Before any backend call, for bad input.
            UnavailableError: If the backend is not configured.
            MalformedOutputError: If structured output stays unparseable.
            RemoteError: If the backend reports a failure.
        """
        self.validate_request(request)
        logger.debug(f"[{self.name}] extracting {request!r}")
        return await self._extract(request)

    @abstractmethod
    async def _extract(self, request: ExtractionRequest) -> ExtractionResult:
        """Variant-specific extraction after input validation."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(tier={self.name}, backend={self.backend.name})"


def low_confidence_warnings(field_confidence, threshold: float) -> List[str]:
    """Warnings for the fields a reviewer must double-check."""
    warnings = []
    labels = (
        ('registration_number', 'Registration number'),
        ('total_amount', 'Total amount'),
    )
    for field_name, label in labels:
        confidence: Optional[float] = field_confidence.get(field_name)
        if confidence is not None and confidence < threshold:
            warnings.append(f"{label} has low confidence ({confidence:.0%})")
    return warnings
