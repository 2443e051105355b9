"""
Structured Model Adapter.

Wraps backends whose raw output is JSON text (Gemini, Claude, Qwen-VL).
The adapter owns everything between "bytes in" and "ExtractionResult
out": the output-size ladder, salvage of broken JSON, and mapping the
model's camelCase keys onto the canonical result.

Pipeline:
    1. Invoke with the smallest budget of the tier's token ladder
    2. Parse strictly; on a cut-off, retry with the next budget
    3. At the top of the ladder (or on other parse failures) salvage once
    4. Normalize dates, amounts and tax entries
    5. Attach low-confidence and validation warnings
"""

import json
from typing import Any, Dict, List, Mapping, Optional

from config import get_config
from tiered_extraction.models import EngineTier, ExtractionRequest, ExtractionResult, TaxBreakdown
from tiered_extraction.models.extraction_result import DEFAULT_CATEGORY, DEFAULT_PAYMENT_METHOD
from tiered_extraction.postprocessor import AmountNormalizer, DateNormalizer, ReceiptValidator
from tiered_extraction.utils.exceptions import MalformedOutputError
from tiered_extraction.utils.helpers import strip_code_fences
from tiered_extraction.utils.logger import get_logger
from .base import AdapterKind, EngineAdapter, EngineBackend, InvokeConfig, low_confidence_warnings
from .json_salvage import is_truncation_error, parse_structured_output
from .prompts import PAYMENT_METHODS

logger = get_logger(__name__)

# Model output key -> canonical confidence key
CONFIDENCE_KEYS = {
    'issuerName': 'issuer_name',
    'tNumber': 'registration_number',
    'transactionDate': 'transaction_date',
    'totalAmount': 'total_amount',
    'taxBreakdown': 'tax_breakdown',
    'category': 'category',
}

SALVAGE_WARNING = "Output was cut off and repaired; some fields may be missing"


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    """First non-null value among the given keys."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _as_confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return min(max(float(value), 0.0), 1.0)


class StructuredModelAdapter(EngineAdapter):
    """
    Adapter for JSON-producing vision models.

    Example:
        >>> adapter = StructuredModelAdapter(tier, GeminiBackend("gemini-2.5-flash"))
        >>> result = await adapter.extract(request)
    """

    kind = AdapterKind.STRUCTURED

    def __init__(self, tier: EngineTier, backend: EngineBackend) -> None:
        super().__init__(tier, backend)
        self.temperature = get_config("engines.temperature", 0.1)
        self.low_confidence = get_config("postprocessing.validation.low_confidence", 0.8)
        self.date_normalizer = DateNormalizer()
        self.amount_normalizer = AmountNormalizer()
        self.validator = ReceiptValidator()

    async def _extract(self, request: ExtractionRequest) -> ExtractionResult:
        ladder = self.tier.token_ladder
        for step, budget in enumerate(ladder):
            config = InvokeConfig(max_output_tokens=budget, temperature=self.temperature)
            raw = await self.backend.invoke(request.data, request.media_type, config)
            raw = raw or ""
            cleaned = strip_code_fences(raw)

            try:
                data = json.loads(cleaned)
                salvaged = False
            except json.JSONDecodeError as e:
                if is_truncation_error(e, cleaned) and step + 1 < len(ladder):
                    logger.info(
                        f"[{self.name}] output cut off at {budget} tokens, "
                        f"retrying with {ladder[step + 1]}"
                    )
                    continue
                data, salvaged = parse_structured_output(raw, self.name)

            return self.build_result(data, raw, salvaged)

        raise MalformedOutputError(self.name, "", "empty token ladder")

    def build_result(self, data: Any, raw: str = "", salvaged: bool = False) -> ExtractionResult:
        """
        Map parsed model output onto an ExtractionResult.

        Args:
            data: Parsed JSON; must be an object.
            raw: Raw text, kept as the diagnostic trace.
            salvaged: Whether the text needed repair before parsing.

        Returns:
            ExtractionResult attributed to this tier.

        Raises:
            MalformedOutputError: If the parsed value is not a JSON object.
        """
        if isinstance(data, list) and len(data) == 1:
            data = data[0]
        if not isinstance(data, dict):
            raise MalformedOutputError(self.name, raw, "expected a JSON object")

        warnings: List[str] = []
        field_confidence = self._parse_confidence(data)

        tax_breakdown = []
        entries = _pick(data, 'taxBreakdown', 'tax_breakdown') or []
        if not isinstance(entries, list):
            warnings.append(f"Discarded tax breakdown that is not a list: {entries!r}")
            entries = []
        for entry in entries:
            parsed = self._parse_tax_entry(entry)
            if parsed is None:
                warnings.append(f"Discarded incomplete tax entry: {entry!r}")
                continue
            tax_breakdown.append(parsed)

        category = _pick(data, 'suggestedCategory', 'category')
        category_confidence = _as_confidence(
            _pick(data, 'categoryConfidence', 'category_confidence')
        )
        if category_confidence is None:
            category_confidence = field_confidence.get('category', 0.0)

        payment_method = _pick(data, 'paymentMethod', 'payment_method')
        if payment_method not in PAYMENT_METHODS:
            payment_method = DEFAULT_PAYMENT_METHOD

        issuer = _pick(data, 'issuerName', 'issuer_name')
        description = _pick(data, 'description')
        result = ExtractionResult(
            issuer_name=str(issuer).strip() if issuer else "",
            registration_number=self._parse_registration_number(
                _pick(data, 'tNumber', 'registrationNumber', 'registration_number')
            ),
            transaction_date=self.date_normalizer.parse(
                _pick(data, 'transactionDate', 'transaction_date')
            ),
            description=str(description).strip() if description else "",
            subtotal_excluding_tax=self.amount_normalizer.to_float(
                _pick(data, 'subtotalExcludingTax', 'subtotal_excluding_tax')
            ) or 0.0,
            tax_breakdown=tax_breakdown,
            total_amount=self.amount_normalizer.to_float(
                _pick(data, 'totalAmount', 'total_amount')
            ) or 0.0,
            category=str(category).strip() if category else DEFAULT_CATEGORY,
            category_confidence=category_confidence,
            payment_method=payment_method,
            field_confidence=field_confidence,
            raw_trace=raw,
            engine=self.name,
        )

        warnings.extend(low_confidence_warnings(field_confidence, self.low_confidence))
        warnings.extend(self.validator.validate(result).messages)
        if salvaged:
            warnings.append(SALVAGE_WARNING)

        logger.debug(f"[{self.name}] {result!r}")
        return result.with_warnings(*warnings)

    def _parse_confidence(self, data: Mapping[str, Any]) -> Dict[str, float]:
        raw_confidence = data.get('confidence')
        if not isinstance(raw_confidence, dict):
            return {}
        field_confidence = {}
        for key, canonical in CONFIDENCE_KEYS.items():
            value = _as_confidence(_pick(raw_confidence, key, canonical))
            if value is not None:
                field_confidence[canonical] = value
        return field_confidence

    def _parse_tax_entry(self, entry: Any) -> Optional[TaxBreakdown]:
        """Tax entry with both rate and tax amount, or None."""
        if not isinstance(entry, dict):
            return None
        rate = self.amount_normalizer.to_float(_pick(entry, 'taxRate', 'tax_rate', 'rate'))
        tax_amount = self.amount_normalizer.to_float(_pick(entry, 'taxAmount', 'tax_amount'))
        if rate is None or tax_amount is None:
            return None
        # 0.1 and 10 both mean the standard rate
        if 0 < rate < 1:
            rate = round(rate * 100, 2)
        return TaxBreakdown(
            tax_rate=rate,
            subtotal=self.amount_normalizer.to_float(entry.get('subtotal')) or 0.0,
            tax_amount=tax_amount,
            total=self.amount_normalizer.to_float(entry.get('total')) or 0.0,
        )

    @staticmethod
    def _parse_registration_number(value: Any) -> Optional[str]:
        if not value:
            return None
        cleaned = ''.join(str(value).split()).replace('-', '').upper()
        return cleaned or None
