"""
PaddleOCR Backend.

Calls a PaddleOCR serving endpoint (``paddlehub serving start``) over
HTTP. PaddleOCR reads Japanese far better than Tesseract and costs
nothing beyond hosting, which makes it a good first tier.
"""

import asyncio
from typing import Any, Dict, List, Optional

import requests

from config import get_config
from tiered_extraction.utils.exceptions import RemoteError, UnavailableError
from tiered_extraction.utils.helpers import encode_base64, env_value
from tiered_extraction.utils.logger import get_logger
from .base import EngineBackend, InvokeConfig, OCRLine

logger = get_logger(__name__)


class PaddleOCRBackend(EngineBackend):
    """
    HTTP client for a PaddleOCR server.

    Request body: ``{"images": [<base64>], "lang": "japan"}``.
    Response body: ``{"results": [[{"text": ..., "confidence": ...}, ...]]}``.
    """

    name = "paddle"

    def __init__(self, endpoint: Optional[str] = None, timeout: Optional[int] = None) -> None:
        self.endpoint = endpoint or env_value(
            get_config("engines.paddle.endpoint_env", "PADDLE_OCR_ENDPOINT")
        )
        self.lang = get_config("engines.paddle.lang", "japan")
        self.timeout = timeout or get_config("engines.paddle.timeout", 60)

    async def invoke(self, data: bytes, media_type: str, config: InvokeConfig) -> List[OCRLine]:
        if not self.endpoint:
            raise UnavailableError(self.name, "PADDLE_OCR_ENDPOINT is not set")
        payload = {"images": [encode_base64(data)], "lang": self.lang}
        body = await asyncio.to_thread(self._post, payload)
        return self._parse_lines(body)

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            # Calls run on worker threads, so each gets its own session
            with requests.Session() as session:
                response = session.post(self.endpoint, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            message = exc.response.text if exc.response is not None else str(exc)
            raise RemoteError(self.name, message, status_code=status_code) from exc
        except requests.ConnectionError as exc:
            raise UnavailableError(self.name, f"cannot reach {self.endpoint}: {exc}") from exc
        except requests.RequestException as exc:
            raise RemoteError(self.name, str(exc)) from exc

        try:
            body = response.json() if response.content else {}
        except ValueError as exc:
            raise RemoteError(self.name, f"invalid JSON from server: {exc}") from exc
        if not isinstance(body, dict):
            raise RemoteError(self.name, f"unexpected response body: {type(body).__name__}")
        return body

    @staticmethod
    def _parse_lines(body: Dict[str, Any]) -> List[OCRLine]:
        results = body.get("results") or [[]]
        lines = []
        for entry in results[0] or []:
            if not isinstance(entry, dict) or not entry.get("text"):
                continue
            confidence = entry.get("confidence")
            lines.append(OCRLine(
                text=str(entry["text"]),
                confidence=float(confidence) if confidence is not None else -1.0,
            ))
        return lines
