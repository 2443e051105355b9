"""
Gemini Backend.

Google Gemini vision models through the google-generativeai SDK. The
same backend serves every Gemini tier; only the model name differs.
"""

from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from config import get_config
from tiered_extraction.utils.exceptions import RemoteError, UnavailableError
from tiered_extraction.utils.helpers import env_value
from tiered_extraction.utils.logger import get_logger
from .base import IMAGE_MEDIA_TYPES, EngineBackend, InvokeConfig
from .prompts import RECEIPT_EXTRACTION_PROMPT

logger = get_logger(__name__)


class GeminiBackend(EngineBackend):
    """
    Gemini via ``GenerativeModel.generate_content_async``.

    Example:
        >>> backend = GeminiBackend("gemini-2.5-flash-lite")
        >>> text = await backend.invoke(jpeg_bytes, "image/jpeg", InvokeConfig())
    """

    name = "gemini"
    supported_media_types = IMAGE_MEDIA_TYPES | {'image/heic', 'image/heif'}

    def __init__(self, model: str = "gemini-2.5-flash") -> None:
        self.model_name = model
        self.top_p = get_config("engines.gemini.top_p", 0.95)
        self.top_k = get_config("engines.gemini.top_k", 40)
        self._model: Optional[genai.GenerativeModel] = None

    def _configure_gemini(self) -> genai.GenerativeModel:
        """Configure the Gemini API on first use."""
        if self._model is None:
            api_key = env_value(get_config("engines.gemini.api_key_env", "GEMINI_API_KEY"))
            if not api_key:
                raise UnavailableError(self.name, "GEMINI_API_KEY not found in environment")
            genai.configure(api_key=api_key)
            self._model = genai.GenerativeModel(self.model_name)
            logger.info(f"Gemini API configured ({self.model_name})")
        return self._model

    async def invoke(self, data: bytes, media_type: str, config: InvokeConfig) -> str:
        model = self._configure_gemini()
        generation_config = genai.GenerationConfig(
            max_output_tokens=config.max_output_tokens,
            temperature=config.temperature,
            top_p=self.top_p,
            top_k=self.top_k,
            response_mime_type="application/json",
        )
        try:
            response = await model.generate_content_async(
                [RECEIPT_EXTRACTION_PROMPT, {"mime_type": media_type, "data": data}],
                generation_config=generation_config,
            )
        except google_exceptions.GoogleAPICallError as e:
            raise RemoteError(self.name, e.message, status_code=e.code) from e

        try:
            return response.text
        except ValueError:
            # No text part: the budget ran out before any output, or the
            # response was blocked
            logger.debug(f"Gemini returned no text (feedback: {response.prompt_feedback})")
            return ""
