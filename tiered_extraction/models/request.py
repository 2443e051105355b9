"""
Extraction Request Data Class.

One request per photographed document. Requests are immutable and are
consumed once by the router.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ExtractionRequest:
    """
    A single document submitted for extraction.

    Attributes:
        data: Raw document bytes (already compressed/converted by the caller)
        media_type: Declared media type, e.g. "image/jpeg"
        request_id: Opaque identifier, generated when not supplied
        source_name: Optional file name, used only in logs and CLI output

    Example:
        >>> request = ExtractionRequest(data=jpeg_bytes, media_type="image/jpeg")
    """
    data: bytes
    media_type: str
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    source_name: Optional[str] = None

    @property
    def size(self) -> int:
        """Document size in bytes."""
        return len(self.data or b"")

    def __repr__(self) -> str:
        return (
            f"ExtractionRequest(id={self.request_id}, "
            f"media_type={self.media_type}, size={self.size})"
        )
