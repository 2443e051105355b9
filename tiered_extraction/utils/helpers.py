"""
Helper Utilities Module.

This module provides common utility functions used throughout the
extraction system. Functions here should be generic and reusable
across the engine, routing and CLI layers.

Functions:
    - strip_code_fences: Remove markdown fences around model output
    - encode_base64: Encode document bytes for remote APIs
    - env_value: Read a non-blank environment variable
    - guess_media_type: Map a file path to a media type
    - generate_timestamp: Generate formatted timestamps
"""

import base64
import mimetypes
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

_FENCE_OPEN = re.compile(r'^```(?:json|JSON)?\s*\n?')
_FENCE_CLOSE = re.compile(r'\n?```\s*$')

# mimetypes has no entry for HEIC on most platforms
_EXTRA_MEDIA_TYPES = {
    '.heic': 'image/heic',
    '.heif': 'image/heif',
    '.webp': 'image/webp',
}


def strip_code_fences(text: str) -> str:
    """
    Remove a surrounding markdown code fence from model output.

    Vision models asked for JSON frequently wrap it in ```json ... ```.

    Args:
        text: Raw model output.

    Returns:
        The text without leading/trailing fences, stripped.

    Example:
        >>> strip_code_fences('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
    """
    if not text:
        return ""
    cleaned = text.strip()
    if cleaned.startswith('```'):
        cleaned = _FENCE_OPEN.sub('', cleaned, count=1)
        cleaned = _FENCE_CLOSE.sub('', cleaned, count=1)
    return cleaned.strip()


def encode_base64(data: bytes) -> str:
    """Encode raw document bytes as an ASCII base64 string."""
    return base64.b64encode(data).decode('ascii')


def env_value(name: Optional[str]) -> Optional[str]:
    """
    Read an environment variable, treating blank values as unset.

    Args:
        name: Variable name. None returns None.

    Returns:
        The stripped value or None.
    """
    if not name:
        return None
    value = os.environ.get(name, '').strip()
    return value or None


def guess_media_type(filepath: Union[str, Path]) -> Optional[str]:
    """
    Guess a document's media type from its file extension.

    Args:
        filepath: Path to the file.

    Returns:
        Media type such as "image/jpeg", or None if unknown.

    Example:
        >>> guess_media_type("receipt.JPG")
        'image/jpeg'
    """
    suffix = Path(filepath).suffix.lower()
    if suffix in _EXTRA_MEDIA_TYPES:
        return _EXTRA_MEDIA_TYPES[suffix]
    media_type, _ = mimetypes.guess_type(f"file{suffix}")
    return media_type


def generate_timestamp(format_str: str = "%Y%m%d_%H%M%S") -> str:
    """
    Generate a formatted timestamp string.

    Args:
        format_str: strftime format string.

    Returns:
        Formatted timestamp string.
    """
    return datetime.now().strftime(format_str)
