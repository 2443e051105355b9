"""Tests for the line OCR adapter heuristics."""

import asyncio
from datetime import date

import pytest

from tiered_extraction.engines import AdapterKind, LineOCRAdapter, OCRLine
from tiered_extraction.utils.exceptions import UnavailableError, UnsupportedInputError

from conftest import FakeBackend, make_request, make_tier

RECEIPT_LINES = [
    OCRLine("ローソン 新宿店", 0.95),
    OCRLine("登録番号 T1234567890123", 0.92),
    OCRLine("2026年1月15日 12:34", 0.90),
    OCRLine("小計 ¥1,000", 0.93),
    OCRLine("10%対象 ¥100", 0.88),
    OCRLine("合計 ¥1,100", 0.97),
]


@pytest.fixture
def adapter():
    return LineOCRAdapter(make_tier("paddle-ocr", engine="paddle"), FakeBackend(RECEIPT_LINES))


class TestHeuristics:
    def test_receipt_fields(self, adapter):
        result = asyncio.run(adapter.extract(make_request()))

        assert adapter.kind is AdapterKind.LINE_OCR
        assert result.engine == "paddle-ocr"
        assert result.issuer_name == "ローソン 新宿店"
        assert result.registration_number == "T1234567890123"
        assert result.transaction_date == date(2026, 1, 15)
        assert result.total_amount == 1100.0
        assert [(entry.tax_rate, entry.tax_amount) for entry in result.tax_breakdown] == [(10.0, 100.0)]
        assert result.subtotal_excluding_tax == 1000.0
        assert result.warnings == ()

    def test_field_confidence_from_matching_lines(self, adapter):
        result = adapter.build_result(RECEIPT_LINES)

        assert result.field_confidence['issuer_name'] == pytest.approx(0.95)
        assert result.field_confidence['registration_number'] == pytest.approx(0.92)
        assert result.field_confidence['transaction_date'] == pytest.approx(0.90)
        assert result.field_confidence['total_amount'] == pytest.approx(0.97)
        assert result.field_confidence['tax_breakdown'] == pytest.approx(0.7)
        assert 'category' not in result.field_confidence
        # (0.95 + 0.92 * 2 + 0.90 * 1.5 + 0.97 * 2 + 0.7 * 1.5) / 8
        assert result.overall_confidence == pytest.approx(7.13 / 8)

    def test_alternative_formats(self, adapter):
        result = adapter.build_result([
            OCRLine("FamilyMart", 0.85),
            OCRLine("T-1234-5678-9012-3", 0.9),
            OCRLine("2025/12/31", 0.8),
            OCRLine("TOTAL ￥2,480", 0.9),
            OCRLine("8% 消費税 ¥80", 0.75),
        ])

        assert result.registration_number == "T1234567890123"
        assert result.transaction_date == date(2025, 12, 31)
        assert result.total_amount == 2480.0
        assert [(entry.tax_rate, entry.tax_amount) for entry in result.tax_breakdown] == [(8.0, 80.0)]

    def test_total_preferred_over_subtotal(self, adapter):
        result = adapter.build_result([
            OCRLine("小計 1,000", 0.9),
            OCRLine("合計 1,080", 0.6),
        ])
        assert result.total_amount == 1080.0
        assert result.field_confidence['total_amount'] == pytest.approx(0.6)
        assert "Total amount has low confidence (60%)" in result.warnings

    def test_issuer_is_first_confident_line(self, adapter):
        result = adapter.build_result([
            OCRLine("~~", 0.3),
            OCRLine("まいばすけっと", 0.86),
        ])
        assert result.issuer_name == "まいばすけっと"

    def test_searched_but_not_found_fields_are_zero(self, adapter):
        result = adapter.build_result([OCRLine("ありがとうございました", 0.9)])

        assert result.total_amount == 0.0
        assert result.registration_number is None
        assert result.field_confidence['total_amount'] == 0.0
        assert result.field_confidence['registration_number'] == 0.0
        assert result.field_confidence['transaction_date'] == 0.0
        assert result.field_confidence['tax_breakdown'] == 0.0

    def test_unknown_line_confidence(self, adapter):
        result = adapter.build_result([OCRLine("合計 ¥500", None)])
        assert result.total_amount == 500.0
        assert result.field_confidence['total_amount'] == pytest.approx(0.5)

    def test_percentage_confidence_scaled(self, adapter):
        result = adapter.build_result([OCRLine("Acme Store", 97.0), OCRLine("合計 ¥1,500", 95.0)])

        assert result.field_confidence['issuer_name'] == pytest.approx(0.97)
        assert result.field_confidence['total_amount'] == pytest.approx(0.95)
        assert all(0.0 <= value <= 1.0 for value in result.field_confidence.values())
        assert result.overall_confidence <= 1.0

    def test_confidence_clamped_to_one(self, adapter):
        result = adapter.build_result([OCRLine("合計 ¥500", 1.02)])
        assert result.field_confidence['total_amount'] == 1.0


class TestGarbledIssuer:
    @pytest.mark.parametrize("issuer", ["¶¤§‡†", "12345678901234", "***---***"])
    def test_garbled_issuer_drops_confidence(self, adapter, issuer):
        result = adapter.build_result([OCRLine(issuer, 0.95), OCRLine("合計 ¥1,100", 0.97)])

        assert result.issuer_name == issuer
        assert result.field_confidence['issuer_name'] == pytest.approx(0.1)
        assert any("garbled" in warning for warning in result.warnings)
        assert result.total_amount == 1100.0

    def test_clean_issuer_untouched(self, adapter):
        result = adapter.build_result([OCRLine("セブン-イレブン 渋谷店", 0.95)])
        assert result.field_confidence['issuer_name'] == pytest.approx(0.95)
        assert not any("garbled" in warning for warning in result.warnings)


class TestFailures:
    def test_empty_document(self, adapter):
        with pytest.raises(UnsupportedInputError):
            asyncio.run(adapter.extract(make_request(data=b"")))
        assert adapter.backend.calls == 0

    def test_backend_unavailable(self):
        backend = FakeBackend(UnavailableError("paddle", "PADDLE_OCR_ENDPOINT is not set"))
        adapter = LineOCRAdapter(make_tier("paddle-ocr", engine="paddle"), backend)
        with pytest.raises(UnavailableError):
            asyncio.run(adapter.extract(make_request()))
