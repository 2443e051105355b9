"""Tests for engine backends and the adapter registry, without network access."""

import asyncio
from types import SimpleNamespace

import pytest
import pytesseract
import requests
from google.api_core import exceptions as google_exceptions

from tiered_extraction.engines import LineOCRAdapter, StructuredModelAdapter, build_adapter, build_adapters
from tiered_extraction.engines.base import InvokeConfig, OCRLine
from tiered_extraction.engines.claude_backend import ClaudeBackend
from tiered_extraction.engines.gemini_backend import GeminiBackend
from tiered_extraction.engines.paddle_backend import PaddleOCRBackend
from tiered_extraction.engines.qwen_backend import QwenProvider, QwenVLBackend, detect_provider
from tiered_extraction.engines.tesseract_backend import TesseractBackend
from tiered_extraction.models import EngineTier
from tiered_extraction.utils.exceptions import ConfigurationError, RemoteError, UnavailableError

from conftest import JPEG_BYTES

ENDPOINT = "http://ocr.local:8866/predict/ocr_system"


@pytest.fixture
def clean_env(monkeypatch):
    for name in [
        'PADDLE_OCR_ENDPOINT', 'GEMINI_API_KEY', 'ANTHROPIC_API_KEY', 'CLAUDE_MODEL',
        'QWEN_VL_API_KEY', 'QWEN_VL_ENDPOINT', 'QWEN_VL_MODEL',
        'DEEPINFRA_API_KEY', 'FIREWORKS_API_KEY', 'TOGETHER_API_KEY',
    ]:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def _invoke(backend, config=None):
    return asyncio.run(backend.invoke(JPEG_BYTES, "image/jpeg", config or InvokeConfig()))


def _response(status_code, content):
    response = requests.Response()
    response.status_code = status_code
    response._content = content
    response.url = ENDPOINT
    return response


class TestPaddleBackend:
    def test_unavailable_without_endpoint(self, clean_env):
        with pytest.raises(UnavailableError):
            _invoke(PaddleOCRBackend())

    def test_endpoint_from_environment(self, clean_env):
        clean_env.setenv('PADDLE_OCR_ENDPOINT', ENDPOINT)
        assert PaddleOCRBackend().endpoint == ENDPOINT

    def test_lines_parsed(self, monkeypatch):
        backend = PaddleOCRBackend(endpoint=ENDPOINT)
        sent = {}

        def post(session, url, json=None, timeout=None):
            sent.update(url=url, json=json)
            return _response(200, '{"results": [[{"text": "合計 ¥1,100", "confidence": 0.97}]]}'.encode())

        monkeypatch.setattr(requests.Session, "post", post)
        lines = _invoke(backend)

        assert lines == [OCRLine("合計 ¥1,100", 0.97)]
        assert sent["url"] == ENDPOINT
        assert sent["json"]["lang"] == "japan"
        assert len(sent["json"]["images"]) == 1

    def test_throttling_is_remote_error(self, monkeypatch):
        backend = PaddleOCRBackend(endpoint=ENDPOINT)
        monkeypatch.setattr(requests.Session, "post", lambda *args, **kwargs: _response(429, b'busy'))

        with pytest.raises(RemoteError) as excinfo:
            _invoke(backend)
        assert excinfo.value.status_code == 429

    def test_unreachable_server_is_unavailable(self, monkeypatch):
        backend = PaddleOCRBackend(endpoint=ENDPOINT)

        def post(*args, **kwargs):
            raise requests.ConnectionError("connection refused")

        monkeypatch.setattr(requests.Session, "post", post)
        with pytest.raises(UnavailableError):
            _invoke(backend)

    def test_invalid_json_is_remote_error(self, monkeypatch):
        backend = PaddleOCRBackend(endpoint=ENDPOINT)
        monkeypatch.setattr(requests.Session, "post", lambda *args, **kwargs: _response(200, b'<html>'))
        with pytest.raises(RemoteError):
            _invoke(backend)

    def test_non_object_body_is_remote_error(self, monkeypatch):
        backend = PaddleOCRBackend(endpoint=ENDPOINT)
        monkeypatch.setattr(requests.Session, "post", lambda *args, **kwargs: _response(200, b'[["a", 0.9]]'))
        with pytest.raises(RemoteError):
            _invoke(backend)

    def test_parse_lines_skips_empty_and_marks_unknown_confidence(self):
        lines = PaddleOCRBackend._parse_lines({"results": [[
            {"text": "ローソン", "confidence": 0.9},
            {"text": ""},
            "noise",
            {"text": "合計 500"},
        ]]})
        assert lines == [OCRLine("ローソン", 0.9), OCRLine("合計 500", -1.0)]

    def test_parse_lines_empty_body(self):
        assert PaddleOCRBackend._parse_lines({}) == []


class TestQwenProvider:
    def test_none_without_keys(self, clean_env):
        assert detect_provider() is None

    def test_first_configured_provider_wins(self, clean_env):
        clean_env.setenv('TOGETHER_API_KEY', 'together-key')
        clean_env.setenv('FIREWORKS_API_KEY', 'fireworks-key')
        provider = detect_provider()

        assert provider.name == "fireworks"
        assert provider.api_key == "fireworks-key"
        assert provider.base_url == "https://api.fireworks.ai/inference/v1"
        assert provider.model == "accounts/fireworks/models/qwen2-vl-72b-instruct"

    def test_model_overrides(self, clean_env):
        clean_env.setenv('DEEPINFRA_API_KEY', 'key')
        clean_env.setenv('QWEN_VL_MODEL', 'Qwen/Qwen2-VL-7B-Instruct')
        assert detect_provider().model == 'Qwen/Qwen2-VL-7B-Instruct'
        assert detect_provider('Qwen/Qwen2.5-VL-32B-Instruct').model == 'Qwen/Qwen2.5-VL-32B-Instruct'

    def test_custom_endpoint(self, clean_env):
        clean_env.setenv('QWEN_VL_API_KEY', 'key')
        clean_env.setenv('QWEN_VL_ENDPOINT', 'https://llm.example.com/v1/chat/completions')
        clean_env.setenv('QWEN_VL_MODEL', 'qwen2.5-vl')

        assert detect_provider() == QwenProvider("custom", "https://llm.example.com/v1", "key", "qwen2.5-vl")

    def test_custom_endpoint_of_known_provider(self, clean_env):
        clean_env.setenv('QWEN_VL_API_KEY', 'key')
        clean_env.setenv('QWEN_VL_ENDPOINT', 'https://api.together.xyz/v1')
        provider = detect_provider()

        assert provider.name == "together"
        assert provider.model == "Qwen/Qwen2.5-VL-72B-Instruct"

    def test_custom_endpoint_needs_model(self, clean_env):
        clean_env.setenv('QWEN_VL_API_KEY', 'key')
        clean_env.setenv('QWEN_VL_ENDPOINT', 'https://llm.example.com/v1')
        assert detect_provider() is None


class TestQwenBackend:
    def test_unavailable_without_provider(self, clean_env):
        with pytest.raises(UnavailableError):
            _invoke(QwenVLBackend())

    def test_chat_completion_request(self):
        calls = []

        async def create(**kwargs):
            calls.append(kwargs)
            message = SimpleNamespace(content='{"totalAmount": 1100}')
            return SimpleNamespace(choices=[SimpleNamespace(message=message)])

        backend = QwenVLBackend()
        backend._provider = QwenProvider("deepinfra", "https://api.deepinfra.com/v1/openai", "key", "qwen")
        backend._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

        text = _invoke(backend, InvokeConfig(max_output_tokens=4096))

        assert text == '{"totalAmount": 1100}'
        assert calls[0]["max_tokens"] == 4096
        assert calls[0]["model"] == "qwen"
        image_part = calls[0]["messages"][0]["content"][0]
        assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")


class TestGeminiBackend:
    def test_unavailable_without_key(self, clean_env):
        with pytest.raises(UnavailableError):
            _invoke(GeminiBackend())

    def test_quota_error_is_remote_error(self):
        async def generate_content_async(*args, **kwargs):
            raise google_exceptions.ResourceExhausted("quota exceeded")

        backend = GeminiBackend("gemini-2.5-flash-lite")
        backend._model = SimpleNamespace(generate_content_async=generate_content_async)

        with pytest.raises(RemoteError) as excinfo:
            _invoke(backend)
        assert excinfo.value.status_code == 429

    def test_returns_response_text(self):
        calls = []

        async def generate_content_async(contents, generation_config=None):
            calls.append((contents, generation_config))
            return SimpleNamespace(text='{"issuerName": "Acme"}')

        backend = GeminiBackend()
        backend._model = SimpleNamespace(generate_content_async=generate_content_async)

        assert _invoke(backend, InvokeConfig(max_output_tokens=8192)) == '{"issuerName": "Acme"}'
        contents, _ = calls[0]
        assert contents[1] == {"mime_type": "image/jpeg", "data": JPEG_BYTES}


class TestClaudeBackend:
    def test_unavailable_without_key(self, clean_env):
        with pytest.raises(UnavailableError):
            _invoke(ClaudeBackend())

    def test_model_from_environment(self, clean_env):
        clean_env.setenv('CLAUDE_MODEL', 'claude-3-5-haiku-latest')
        assert ClaudeBackend().model_name == 'claude-3-5-haiku-latest'
        clean_env.delenv('CLAUDE_MODEL')
        assert ClaudeBackend("claude-opus").model_name == "claude-opus"

    def test_joins_text_blocks(self):
        calls = []

        async def create(**kwargs):
            calls.append(kwargs)
            return SimpleNamespace(content=[
                SimpleNamespace(type="text", text='{"totalAmount": '),
                SimpleNamespace(type="tool_use", text=None),
                SimpleNamespace(type="text", text='1100}'),
            ])

        backend = ClaudeBackend()
        backend._client = SimpleNamespace(messages=SimpleNamespace(create=create))

        assert _invoke(backend) == '{"totalAmount": 1100}'
        assert calls[0]["messages"][0]["content"][0]["source"]["media_type"] == "image/jpeg"


class TestTesseractBackend:
    def test_groups_words_into_lines(self):
        output = {
            'text': ['', '計', '合', 'TOTAL', '1100', ' '],
            'conf': ['-1', '80', '90', '95', '85', '-1'],
            'block_num': [1, 1, 1, 1, 1, 1],
            'par_num': [1, 1, 1, 1, 1, 1],
            'line_num': [1, 1, 1, 2, 2, 2],
            'left': [0, 20, 0, 0, 60, 90],
        }
        assert TesseractBackend._group_into_lines(output) == [
            OCRLine("合計", 0.85),
            OCRLine("TOTAL 1100", 0.9),
        ]

    def test_missing_binary_is_unavailable(self, monkeypatch):
        def missing():
            raise pytesseract.TesseractNotFoundError()

        monkeypatch.setattr(pytesseract, "get_tesseract_version", missing)
        with pytest.raises(UnavailableError):
            TesseractBackend()._check_available()

    def test_build_config(self):
        assert TesseractBackend()._build_config() == "--psm 6 --oem 3"


class TestRegistry:
    def test_adapter_kinds(self):
        ocr = build_adapter(EngineTier(name="local", engine="tesseract"))
        vlm = build_adapter(EngineTier(name="lite", engine="gemini", model="gemini-2.5-flash-lite"))

        assert isinstance(ocr, LineOCRAdapter)
        assert isinstance(vlm, StructuredModelAdapter)
        assert vlm.backend.model_name == "gemini-2.5-flash-lite"
        assert vlm.name == "lite"

    def test_unknown_engine(self):
        with pytest.raises(ConfigurationError):
            build_adapter(EngineTier(name="x", engine="textract"))

    def test_build_adapters_keyed_by_tier(self):
        tiers = [EngineTier(name="paddle-ocr", engine="paddle"), EngineTier(name="claude", engine="claude")]
        adapters = build_adapters(tiers)
        assert list(adapters) == ["paddle-ocr", "claude"]
