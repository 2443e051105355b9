"""
Garbled Text Detection Module.

Cheap OCR engines fail in a recognisable way on faded thermal paper:
runs of unrelated symbols, long digit strings where a name was expected,
or text made only of punctuation. Both the line-OCR adapter and the
router's acceptance policy use these signatures.
"""

import re
from typing import List, Optional, Pattern

from tiered_extraction.utils.logger import get_logger

logger = get_logger(__name__)

# Hiragana, katakana and common CJK ideographs
_JAPANESE = r'぀-ゟ゠-ヿ一-龯'


class GarbledTextDetector:
    """
    Pattern-matches text against garbled-OCR signatures.

    Signatures:
        - three or more consecutive characters outside Japanese, ASCII and
          common receipt punctuation
        - ten or more characters made only of digits and spaces
        - text containing no word characters at all

    Example:
        >>> detector = GarbledTextDetector()
        >>> detector.is_garbled("セブン-イレブン 渋谷店")
        False
        >>> detector.is_garbled("¶¤§‡†")
        True
    """

    SIGNATURES: List[Pattern] = [
        re.compile(
            rf'[^{_JAPANESE} -~a-zA-Z0-9ー\-・。、()（）「」\s]{{3,}}'
        ),
        re.compile(r'^[\d\s]{10,}$'),
        re.compile(rf'^[^\w{_JAPANESE}]+$'),
    ]

    def match(self, text: Optional[str]) -> Optional[str]:
        """
        Return the first signature pattern the text matches.

        Args:
            text: Extracted text; empty text is never garbled.

        Returns:
            The matching pattern string, or None.
        """
        if not text or not text.strip():
            return None
        for signature in self.SIGNATURES:
            if signature.search(text):
                return signature.pattern
        return None

    def is_garbled(self, text: Optional[str]) -> bool:
        """Check whether text looks like failed OCR output."""
        matched = self.match(text)
        if matched:
            logger.debug(f"Garbled text detected: {text!r}")
        return matched is not None
