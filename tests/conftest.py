"""Shared fixtures and fakes for the extraction tests."""

import asyncio
import time
from datetime import date
from typing import Any, List, Optional, Sequence

import pytest

from config import ConfigurationManager
from tiered_extraction.engines.base import EngineBackend, InvokeConfig
from tiered_extraction.models import EngineTier, ExtractionRequest, ExtractionResult

ALL_FIELDS = (
    'issuer_name',
    'registration_number',
    'transaction_date',
    'total_amount',
    'tax_breakdown',
    'category',
)

# Smallest valid JPEG header; backends are faked so content is never decoded
JPEG_BYTES = b'\xff\xd8\xff\xe0' + b'\x00' * 16


@pytest.fixture(autouse=True)
def fresh_config():
    """Each test reads settings.yaml from scratch."""
    ConfigurationManager.reset()
    yield
    ConfigurationManager.reset()


def make_result(confidence: float = 0.95, engine: str = "A", **fields: Any) -> ExtractionResult:
    """A complete result whose overall confidence equals ``confidence``."""
    values = {
        'issuer_name': "セブン-イレブン 渋谷店",
        'registration_number': "T1234567890123",
        'transaction_date': date(2026, 1, 15),
        'total_amount': 1100.0,
        'subtotal_excluding_tax': 1000.0,
        'field_confidence': {name: confidence for name in ALL_FIELDS},
        'engine': engine,
    }
    values.update(fields)
    return ExtractionResult(**values)


def make_request(name: str = "receipt.jpg", data: bytes = JPEG_BYTES,
                 media_type: str = "image/jpeg") -> ExtractionRequest:
    return ExtractionRequest(data=data, media_type=media_type, source_name=name)


def make_tier(name: str, engine: str = "gemini", cost: float = 0.0,
              ladder: Sequence[int] = (2048, 4096, 8192)) -> EngineTier:
    return EngineTier(name=name, engine=engine, cost_per_call=cost, token_ladder=tuple(ladder))


class FakeBackend(EngineBackend):
    """
    Backend replaying canned responses.

    Each response is returned (or raised, for exceptions) in order; the
    last one repeats.
    """

    name = "fake"

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.configs: List[InvokeConfig] = []

    @property
    def calls(self) -> int:
        return len(self.configs)

    async def invoke(self, data: bytes, media_type: str, config: InvokeConfig) -> Any:
        self.configs.append(config)
        response = self.responses[min(len(self.configs), len(self.responses)) - 1]
        if isinstance(response, BaseException):
            raise response
        return response


class FakeAdapter:
    """
    Adapter stand-in for router and pipeline tests.

    ``outcome`` is an ExtractionResult, an exception to raise, or a
    callable taking the request and returning either.
    """

    def __init__(self, name: str, outcome: Any, delay: float = 0.0) -> None:
        self.name = name
        self.outcome = outcome
        self.delay = delay
        self.calls = 0
        self.requests: List[ExtractionRequest] = []

    async def extract(self, request: ExtractionRequest) -> ExtractionResult:
        self.calls += 1
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcome(request) if callable(self.outcome) else self.outcome
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class IntervalRecorder:
    """Records (start, end) intervals of concurrent operations."""

    def __init__(self) -> None:
        self.intervals: List[tuple] = []
        self.starts: dict = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def operation(self, delay: float = 0.01, fail_on: Optional[set] = None):
        fail_on = fail_on or set()

        async def run(item: Any, index: int) -> Any:
            start = time.monotonic()
            self.starts[index] = start
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                await asyncio.sleep(delay)
                if index in fail_on:
                    raise RuntimeError(f"item {index} failed")
                return item
            finally:
                self.in_flight -= 1
                self.intervals.append((start, time.monotonic()))

        return run

    def max_overlap(self) -> int:
        events = []
        for start, end in self.intervals:
            events.append((start, 1))
            events.append((end, -1))
        # ends sort before starts at the same instant
        events.sort(key=lambda event: (event[0], event[1]))
        current = peak = 0
        for _, change in events:
            current += change
            peak = max(peak, current)
        return peak


@pytest.fixture
def request_jpeg() -> ExtractionRequest:
    return make_request()


@pytest.fixture
def recorder() -> IntervalRecorder:
    return IntervalRecorder()
