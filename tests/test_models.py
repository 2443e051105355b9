"""Tests for result, request and routing data classes."""

import json
from datetime import date

import pytest

from tiered_extraction.models import (
    EngineTier,
    ExtractionRequest,
    ExtractionResult,
    RoutingDecision,
    TaxBreakdown,
    TierAttempt,
    compute_overall_confidence,
)

from conftest import make_result


class TestOverallConfidence:
    def test_weighted_mean_over_present_fields(self):
        confidence = {
            'issuer_name': 1.0,
            'registration_number': 0.5,
        }
        # (1.0 * 1.0 + 0.5 * 2.0) / 3.0
        assert compute_overall_confidence(confidence) == pytest.approx(2.0 / 3.0)

    def test_empty_map_is_zero(self):
        assert compute_overall_confidence({}) == 0.0

    def test_unknown_keys_ignored(self):
        assert compute_overall_confidence({'payment_method': 1.0}) == 0.0
        assert compute_overall_confidence({'total_amount': 0.9, 'bogus': 0.0}) == pytest.approx(0.9)

    def test_recomputation_is_deterministic(self):
        confidence = {
            'issuer_name': 0.91,
            'registration_number': 0.37,
            'transaction_date': 0.88,
            'total_amount': 0.99,
            'tax_breakdown': 0.7,
            'category': 0.15,
        }
        first = compute_overall_confidence(confidence)
        second = compute_overall_confidence(dict(reversed(list(confidence.items()))))
        assert first == second

    def test_result_derives_overall_from_map(self):
        result = make_result(confidence=0.6)
        assert result.overall_confidence == pytest.approx(0.6)


class TestExtractionResult:
    def test_defaults(self):
        result = ExtractionResult()
        assert result.issuer_name == ""
        assert result.registration_number is None
        assert result.category == "未分類"
        assert result.payment_method == "unknown"
        assert result.tax_breakdown == ()
        assert result.overall_confidence == 0.0

    def test_containers_are_frozen(self):
        confidence = {'total_amount': 0.9}
        result = ExtractionResult(field_confidence=confidence, warnings=["a"])
        confidence['total_amount'] = 0.1
        assert result.field_confidence['total_amount'] == 0.9
        with pytest.raises(TypeError):
            result.field_confidence['total_amount'] = 0.2
        assert result.warnings == ("a",)

    def test_with_warnings_returns_copy(self):
        result = make_result()
        updated = result.with_warnings("check total")
        assert updated.warnings == ("check total",)
        assert result.warnings == ()
        assert updated.total_amount == result.total_amount

    def test_total_tax(self):
        result = ExtractionResult(tax_breakdown=[
            TaxBreakdown(tax_rate=10, tax_amount=100),
            TaxBreakdown(tax_rate=8, tax_amount=40),
        ])
        assert result.total_tax == 140

    def test_empty_result(self):
        result = ExtractionResult.empty(engine="claude-sonnet", warning="no tier produced a result")
        assert result.engine == "claude-sonnet"
        assert result.overall_confidence == 0.0
        assert result.warnings == ("no tier produced a result",)

    def test_to_json_keeps_japanese(self):
        result = make_result(transaction_date=date(2026, 3, 1))
        payload = json.loads(result.to_json())
        assert payload['issuer_name'] == "セブン-イレブン 渋谷店"
        assert payload['transaction_date'] == "2026-03-01"
        assert "セブン" in result.to_json()


class TestRequest:
    def test_generated_ids_are_unique(self):
        first = ExtractionRequest(data=b"x", media_type="image/jpeg")
        second = ExtractionRequest(data=b"x", media_type="image/jpeg")
        assert first.request_id != second.request_id
        assert first.size == 1


class TestRouting:
    def test_tier_from_dict_sorts_ladder(self):
        tier = EngineTier.from_dict({
            'name': 'gemini-2.5-flash',
            'engine': 'gemini',
            'model': 'gemini-2.5-flash',
            'cost_per_call': '0.0016',
            'token_ladder': [8192, 2048, 4096],
        })
        assert tier.token_ladder == (2048, 4096, 8192)
        assert tier.cost_per_call == pytest.approx(0.0016)

    def test_tier_from_dict_default_ladder(self):
        tier = EngineTier.from_dict({'name': 'paddle-ocr', 'engine': 'paddle'}, default_ladder=(1024,))
        assert tier.token_ladder == (1024,)
        assert tier.model is None

    def test_decision_escalated(self):
        decision = RoutingDecision(
            tier="B",
            reason="confidence below threshold at A (60% < 85%); accepted at B",
            attempts=(TierAttempt("A", "rejected", "x"), TierAttempt("B", "accepted", "y")),
        )
        assert decision.escalated
        assert decision.to_dict()['attempts'][0] == {'tier': 'A', 'outcome': 'rejected', 'reason': 'x'}
