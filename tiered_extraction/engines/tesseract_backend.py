"""
Tesseract OCR Backend.

Local line OCR using Tesseract (pytesseract). Free and offline, but weak
on faded thermal receipts, so it normally sits at the bottom of the tier
list.

Requirements:
    - Tesseract OCR installed on the system, with the jpn language pack
    - pytesseract Python package
"""

import asyncio
import io
from typing import Any, Dict, List, Tuple

import pytesseract
from PIL import Image, UnidentifiedImageError

from config import get_config
from tiered_extraction.utils.exceptions import RemoteError, UnavailableError
from tiered_extraction.utils.logger import get_logger
from .base import EngineBackend, InvokeConfig, OCRLine

logger = get_logger(__name__)


class TesseractBackend(EngineBackend):
    """
    Tesseract OCR backend returning text lines.

    Words reported by Tesseract are grouped by (block, paragraph, line)
    and a line's confidence is the mean of its word confidences, scaled
    to [0, 1].

    Attributes:
        language: Tesseract language code (e.g., "jpn+eng")
        psm: Page Segmentation Mode (1-13)
        oem: OCR Engine Mode (0-3)

    Example:
        >>> backend = TesseractBackend()
        >>> lines = await backend.invoke(jpeg_bytes, "image/jpeg", InvokeConfig())
    """

    name = "tesseract"
    supported_media_types = frozenset({
        'image/jpeg', 'image/png', 'image/webp', 'image/gif', 'image/bmp', 'image/tiff',
    })

    def __init__(self) -> None:
        """Initialize the Tesseract backend with configuration."""
        self.language = get_config("engines.tesseract.lang", "jpn+eng")
        self.psm = get_config("engines.tesseract.psm", 6)
        self.oem = get_config("engines.tesseract.oem", 3)
        self.extra_config = get_config("engines.tesseract.config", "")
        self._checked = False

        logger.debug(
            f"TesseractBackend initialized (lang={self.language}, "
            f"psm={self.psm}, oem={self.oem})"
        )

    def _check_available(self) -> None:
        """
        Check that the Tesseract binary can be run.

        Raises:
            UnavailableError: If Tesseract is not installed or not in PATH.
        """
        if self._checked:
            return
        try:
            version = pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            raise UnavailableError(self.name, f"Tesseract OCR not installed or not in PATH: {e}")
        logger.info(f"Tesseract version: {version}")
        self._checked = True

    def _build_config(self) -> str:
        """
        Build Tesseract configuration string.

        Returns:
            Configuration string for Tesseract.
        """
        config_parts = [
            f"--psm {self.psm}",
            f"--oem {self.oem}"
        ]

        if self.extra_config:
            config_parts.append(self.extra_config)

        return ' '.join(config_parts)

    async def invoke(self, data: bytes, media_type: str, config: InvokeConfig) -> List[OCRLine]:
        return await asyncio.to_thread(self._recognise, data)

    def _recognise(self, data: bytes) -> List[OCRLine]:
        self._check_available()
        try:
            image = Image.open(io.BytesIO(data))
            if image.mode != 'RGB':
                image = image.convert('RGB')

            output = pytesseract.image_to_data(
                image,
                lang=self.language,
                config=self._build_config(),
                output_type=pytesseract.Output.DICT
            )
        except (UnidentifiedImageError, pytesseract.TesseractError, OSError) as e:
            logger.error(f"OCR processing failed: {e}")
            raise RemoteError(self.name, str(e))

        lines = self._group_into_lines(output)
        logger.info(f"OCR completed: {len(lines)} lines")
        return lines

    @staticmethod
    def _group_into_lines(output: Dict[str, List[Any]]) -> List[OCRLine]:
        """
        Group Tesseract words into lines in reading order.

        Args:
            output: Dictionary output from image_to_data.

        Returns:
            List of OCRLine.
        """
        groups: Dict[Tuple[int, int, int], List[Tuple[int, str, float]]] = {}

        for i, text in enumerate(output['text']):
            if not text or not text.strip():
                continue
            conf = float(output['conf'][i])
            if conf < 0:
                continue  # Tesseract returns -1 for non-word elements
            key = (output['block_num'][i], output['par_num'][i], output['line_num'][i])
            groups.setdefault(key, []).append((output['left'][i], text.strip(), conf))

        lines = []
        for key in sorted(groups):
            words = sorted(groups[key])
            # jpn output is split per character; rejoin without spaces
            joiner = '' if all(len(word) == 1 for _, word, _ in words) else ' '
            text = joiner.join(word for _, word, _ in words)
            confidence = sum(conf for _, _, conf in words) / len(words) / 100.0
            lines.append(OCRLine(text=text, confidence=round(confidence, 4)))

        return lines
