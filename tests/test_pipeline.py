"""End-to-end tests of the pipeline over faked and unconfigured engines."""

import asyncio

import pytest

from tiered_extraction import ExtractionPipeline
from tiered_extraction.concurrency import BatchOptions
from tiered_extraction.utils.exceptions import RemoteError

from conftest import FakeAdapter, make_request, make_result

FORCED = "gemini-2.5-flash"

ENGINE_ENV = [
    'PADDLE_OCR_ENDPOINT',
    'GEMINI_API_KEY',
    'ANTHROPIC_API_KEY',
    'CLAUDE_MODEL',
    'QWEN_VL_API_KEY',
    'QWEN_VL_ENDPOINT',
    'QWEN_VL_MODEL',
    'DEEPINFRA_API_KEY',
    'FIREWORKS_API_KEY',
    'TOGETHER_API_KEY',
]


def _fail_fifth(request):
    if request.source_name == "receipt-4.jpg":
        return RemoteError(FORCED, "internal error", status_code=500)
    return make_result(0.95, engine=FORCED)


@pytest.fixture
def requests_batch():
    return [make_request(name=f"receipt-{index}.jpg") for index in range(10)]


class TestBatch:
    def test_one_failure_among_ten_strict(self, requests_batch):
        adapter = FakeAdapter(FORCED, _fail_fifth, delay=0.005)
        pipeline = ExtractionPipeline.from_config(
            adapters={FORCED: adapter}, forced_tier=FORCED, exhaustion_policy='raise',
        )
        progress = []
        options = BatchOptions(concurrency=3, on_progress=lambda done, total: progress.append((done, total)))

        results = asyncio.run(pipeline.extract_batch(requests_batch, options))

        assert len(results) == 10
        assert results[4] is None
        assert sum(result is not None for result in results) == 9
        assert all(result.engine == FORCED for result in results if result is not None)
        assert len(progress) == 10
        assert progress[-1] == (10, 10)

    def test_one_failure_among_ten_returns_empty_result(self, requests_batch):
        adapter = FakeAdapter(FORCED, _fail_fifth)
        pipeline = ExtractionPipeline.from_config(adapters={FORCED: adapter}, forced_tier=FORCED)

        outcomes = asyncio.run(pipeline.extract_batch_with_decisions(requests_batch, BatchOptions(concurrency=3)))

        assert all(outcome is not None for outcome in outcomes)
        result, decision = outcomes[4]
        assert result.overall_confidence == 0.0
        assert not decision.accepted
        assert "RemoteError at gemini-2.5-flash" in decision.reason
        assert all(decision.accepted for index, (_, decision) in enumerate(outcomes) if index != 4)

    def test_results_match_requests(self, requests_batch):
        adapter = FakeAdapter(
            FORCED,
            lambda request: make_result(0.95, engine=FORCED, issuer_name=request.source_name),
        )
        pipeline = ExtractionPipeline.from_config(adapters={FORCED: adapter}, forced_tier=FORCED)

        results = asyncio.run(pipeline.extract_batch(requests_batch, BatchOptions(concurrency=4)))
        assert [result.issuer_name for result in results] == [request.source_name for request in requests_batch]

    def test_default_batch_options_from_settings(self):
        options = ExtractionPipeline.default_batch_options()
        assert options.concurrency == 3
        assert options.stagger_delay == pytest.approx(0.2)
        assert options.stop_on_error is False


class TestSingleRequest:
    def test_escalates_across_configured_tiers(self, request_jpeg):
        adapters = {
            "paddle-ocr": FakeAdapter("paddle-ocr", make_result(0.4, engine="paddle-ocr")),
            "gemini-2.5-flash-lite": FakeAdapter("gemini-2.5-flash-lite", make_result(0.9, engine="gemini-2.5-flash-lite")),
            "qwen-vl": FakeAdapter("qwen-vl", make_result(0.99)),
            "gemini-2.5-flash": FakeAdapter("gemini-2.5-flash", make_result(0.99)),
            "claude-sonnet": FakeAdapter("claude-sonnet", make_result(0.99)),
        }
        pipeline = ExtractionPipeline.from_config(adapters=adapters)

        result, decision = asyncio.run(pipeline.extract_with_decision(request_jpeg))

        assert decision.tier == "gemini-2.5-flash-lite"
        assert result.engine == "gemini-2.5-flash-lite"
        assert decision.estimated_cost == pytest.approx(0.0005)
        assert adapters["qwen-vl"].calls == 0

    def test_unconfigured_engines_yield_empty_result(self, monkeypatch, request_jpeg):
        for name in ENGINE_ENV:
            monkeypatch.delenv(name, raising=False)
        pipeline = ExtractionPipeline.from_config()

        result, decision = asyncio.run(pipeline.extract_with_decision(request_jpeg))

        assert result.overall_confidence == 0.0
        assert result.engine == "claude-sonnet"
        assert not decision.accepted
        assert decision.estimated_cost == 0.0
        assert "paddle-ocr unavailable" in decision.reason
        assert [attempt.outcome for attempt in decision.attempts] == ['unavailable'] * 5

    def test_extract_one(self, request_jpeg):
        adapter = FakeAdapter(FORCED, make_result(0.95, engine=FORCED))
        pipeline = ExtractionPipeline.from_config(adapters={FORCED: adapter}, forced_tier=FORCED)
        result = asyncio.run(pipeline.extract_one(request_jpeg))
        assert result.engine == FORCED
