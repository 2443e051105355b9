"""
Line OCR Adapter.

Wraps backends that return recognised text lines with a per-line
confidence (PaddleOCR serving, local Tesseract). Receipt fields are
pulled out of the lines with regex heuristics; each field's confidence is
the confidence of the line it was found on.

The issuer name is checked against garbled-OCR signatures. A garbled
issuer does not fail the extraction, it only drops that field's
confidence so the router escalates.
"""

import re
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from config import get_config
from tiered_extraction.models import ExtractionRequest, ExtractionResult, TaxBreakdown
from tiered_extraction.postprocessor import AmountNormalizer, GarbledTextDetector, ReceiptValidator
from tiered_extraction.utils.logger import get_logger
from .base import AdapterKind, EngineAdapter, EngineBackend, InvokeConfig, OCRLine, low_confidence_warnings

logger = get_logger(__name__)

UNKNOWN_LINE_CONFIDENCE = 0.5
TAX_CONFIDENCE = 0.7
ISSUER_MIN_CONFIDENCE = 0.8
GARBLED_CONFIDENCE = 0.1

REGISTRATION_PATTERN = re.compile(r'T[\s-]?(?:\d[\s-]?){13}')

DATE_PATTERNS = [
    re.compile(r'(\d{4})年(\d{1,2})月(\d{1,2})日'),
    re.compile(r'(\d{4})/(\d{1,2})/(\d{1,2})'),
    re.compile(r'(\d{4})-(\d{1,2})-(\d{1,2})'),
]

# Checked in order; the first label found wins
TOTAL_PATTERNS = [
    re.compile(r'合計[\s:：]*[¥￥]?\s*([\d,]+)'),
    re.compile(r'TOTAL[\s:：]*[¥￥]?\s*([\d,]+)', re.IGNORECASE),
    re.compile(r'税込[\s:：]*[¥￥]?\s*([\d,]+)'),
    re.compile(r'小計[\s:：]*[¥￥]?\s*([\d,]+)'),
]

TAX_PATTERNS = {
    10: re.compile(r'10%\s*[対象消費税]*[\s:：]*[¥￥]?\s*([\d,]+)'),
    8: re.compile(r'8%\s*[対象消費税]*[\s:：]*[¥￥]?\s*([\d,]+)'),
}

DESCRIPTION = "Line OCR extraction (needs review)"


def _scale_confidence(value: Optional[float]) -> float:
    """Line confidence in [0, 1]; -1.0 when unknown."""
    if value is None or value < 0:
        return -1.0
    value = float(value)
    # Some OCR servers report percentages
    if value > 1.0:
        value /= 100.0
    return min(value, 1.0)


class LineOCRAdapter(EngineAdapter):
    """
    Adapter for text-line OCR engines.

    Example:
        >>> adapter = LineOCRAdapter(tier, PaddleOCRBackend())
        >>> result = await adapter.extract(request)
        >>> result.field_confidence['total_amount']
        0.97
    """

    kind = AdapterKind.LINE_OCR

    def __init__(self, tier, backend: EngineBackend) -> None:
        super().__init__(tier, backend)
        self.low_confidence = get_config("postprocessing.validation.low_confidence", 0.8)
        self.amount_normalizer = AmountNormalizer()
        self.garbled_detector = GarbledTextDetector()
        self.validator = ReceiptValidator()

    async def _extract(self, request: ExtractionRequest) -> ExtractionResult:
        lines = await self.backend.invoke(request.data, request.media_type, InvokeConfig())
        logger.debug(f"[{self.name}] {len(lines)} lines recognised")
        return self.build_result(lines)

    def build_result(self, lines: Sequence[OCRLine]) -> ExtractionResult:
        """
        Apply the receipt heuristics to recognised lines.

        Args:
            lines: Lines in reading order.

        Returns:
            ExtractionResult attributed to this tier.
        """
        lines = [OCRLine(str(line.text).strip(), _scale_confidence(line.confidence)) for line in lines]
        lines = [line for line in lines if line.text]
        warnings: List[str] = []
        field_confidence: Dict[str, float] = {}

        issuer, confidence = self._find_issuer(lines)
        field_confidence['issuer_name'] = confidence
        if issuer and self.garbled_detector.is_garbled(issuer):
            field_confidence['issuer_name'] = GARBLED_CONFIDENCE
            warnings.append(f"Issuer name looks garbled: {issuer!r}")

        registration_number, field_confidence['registration_number'] = self._find_registration_number(lines)
        transaction_date, field_confidence['transaction_date'] = self._find_date(lines)
        total_amount, field_confidence['total_amount'] = self._find_total(lines)

        tax_breakdown = self._find_taxes(lines)
        field_confidence['tax_breakdown'] = TAX_CONFIDENCE if tax_breakdown else 0.0
        total_tax = sum(entry.tax_amount for entry in tax_breakdown)
        subtotal = total_amount - total_tax if total_amount else 0.0

        result = ExtractionResult(
            issuer_name=issuer,
            registration_number=registration_number,
            transaction_date=transaction_date,
            description=DESCRIPTION,
            subtotal_excluding_tax=subtotal,
            tax_breakdown=tax_breakdown,
            total_amount=total_amount,
            field_confidence=field_confidence,
            raw_trace='\n'.join(line.text for line in lines),
            engine=self.name,
        )

        warnings.extend(low_confidence_warnings(field_confidence, self.low_confidence))
        warnings.extend(self.validator.validate(result).messages)
        return result.with_warnings(*warnings)

    def _find_issuer(self, lines: Sequence[OCRLine]) -> Tuple[str, float]:
        for line in lines:
            if line.confidence > ISSUER_MIN_CONFIDENCE:
                return line.text, line.confidence
        return "", 0.0

    def _find_registration_number(self, lines: Sequence[OCRLine]) -> Tuple[Optional[str], float]:
        for line in lines:
            match = REGISTRATION_PATTERN.search(line.text)
            if match:
                number = re.sub(r'[\s-]', '', match.group(0))
                return number, self._line_confidence(line)
        return None, 0.0

    def _find_date(self, lines: Sequence[OCRLine]) -> Tuple[Optional[date], float]:
        for line in lines:
            for pattern in DATE_PATTERNS:
                match = pattern.search(line.text)
                if not match:
                    continue
                year, month, day = (int(part) for part in match.groups())
                try:
                    return date(year, month, day), self._line_confidence(line)
                except ValueError:
                    logger.debug(f"[{self.name}] invalid date on line: {line.text!r}")
        return None, 0.0

    def _find_total(self, lines: Sequence[OCRLine]) -> Tuple[float, float]:
        for pattern in TOTAL_PATTERNS:
            for line in lines:
                match = pattern.search(line.text)
                if not match:
                    continue
                amount = self.amount_normalizer.to_float(match.group(1))
                if amount:
                    return amount, self._line_confidence(line)
        return 0.0, 0.0

    def _find_taxes(self, lines: Sequence[OCRLine]) -> List[TaxBreakdown]:
        breakdown = []
        for rate, pattern in TAX_PATTERNS.items():
            for line in lines:
                match = pattern.search(line.text)
                if not match:
                    continue
                amount = self.amount_normalizer.to_float(match.group(1))
                if amount is not None:
                    breakdown.append(TaxBreakdown(tax_rate=float(rate), tax_amount=amount))
                    break
        return breakdown

    @staticmethod
    def _line_confidence(line: OCRLine) -> float:
        if line.confidence is None or line.confidence < 0:
            return UNKNOWN_LINE_CONFIDENCE
        return line.confidence
