"""
Qwen-VL Backend.

Qwen2.5-VL is served by several OpenAI-compatible hosts (DeepInfra,
Fireworks, Together). The first provider with an API key in the
environment is used; QWEN_VL_ENDPOINT / QWEN_VL_API_KEY select any
other compatible host.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from config import get_config
from tiered_extraction.utils.exceptions import RemoteError, UnavailableError
from tiered_extraction.utils.helpers import encode_base64, env_value
from tiered_extraction.utils.logger import get_logger
from .base import EngineBackend, InvokeConfig
from .prompts import RECEIPT_EXTRACTION_PROMPT

logger = get_logger(__name__)


@dataclass(frozen=True)
class QwenProvider:
    """Resolved provider: where to send requests and with which key."""

    name: str
    base_url: str
    api_key: str
    model: str


def detect_provider(model: Optional[str] = None) -> Optional[QwenProvider]:
    """
    Pick the provider to use from environment variables.

    Args:
        model: Model override; otherwise QWEN_VL_MODEL or the provider default.

    Returns:
        QwenProvider, or None when no key is configured.
    """
    model = model or env_value(get_config("engines.qwen.model_env", "QWEN_VL_MODEL"))
    endpoint = env_value(get_config("engines.qwen.endpoint_env", "QWEN_VL_ENDPOINT"))
    if endpoint:
        endpoint = endpoint.rstrip('/')
        if endpoint.endswith('/chat/completions'):
            endpoint = endpoint[:-len('/chat/completions')]

    providers: List[Dict[str, Any]] = get_config("engines.qwen.providers", [])
    for provider in providers:
        api_key = env_value(provider.get("api_key_env"))
        if api_key:
            return QwenProvider(
                name=provider["name"],
                base_url=endpoint or provider["base_url"],
                api_key=api_key,
                model=model or provider["model"],
            )

    api_key = env_value(get_config("engines.qwen.api_key_env", "QWEN_VL_API_KEY"))
    if api_key and endpoint:
        for provider in providers:
            if provider["name"] in endpoint:
                return QwenProvider(provider["name"], endpoint, api_key, model or provider["model"])
        if model:
            return QwenProvider("custom", endpoint, api_key, model)
    return None


class QwenVLBackend(EngineBackend):
    """
    Qwen-VL via an OpenAI-compatible chat completions API.

    Example:
        >>> backend = QwenVLBackend()
        >>> text = await backend.invoke(jpeg_bytes, "image/jpeg", InvokeConfig(4096))
    """

    name = "qwen"

    def __init__(self, model: Optional[str] = None) -> None:
        self.model_override = model
        self.timeout = get_config("engines.qwen.timeout", 120)
        self._client: Optional[AsyncOpenAI] = None
        self._provider: Optional[QwenProvider] = None

    def _ensure_client(self) -> AsyncOpenAI:
        if self._client is None:
            provider = detect_provider(self.model_override)
            if provider is None:
                raise UnavailableError(
                    self.name,
                    "set DEEPINFRA_API_KEY, FIREWORKS_API_KEY or TOGETHER_API_KEY"
                )
            self._provider = provider
            self._client = AsyncOpenAI(
                api_key=provider.api_key,
                base_url=provider.base_url,
                timeout=self.timeout,
            )
            logger.info(f"Qwen-VL via {provider.name} ({provider.model})")
        return self._client

    async def invoke(self, data: bytes, media_type: str, config: InvokeConfig) -> str:
        client = self._ensure_client()
        image_url = f"data:{media_type};base64,{encode_base64(data)}"
        try:
            response = await client.chat.completions.create(
                model=self._provider.model,
                messages=[{
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": image_url}},
                        {"type": "text", "text": RECEIPT_EXTRACTION_PROMPT},
                    ],
                }],
                max_tokens=config.max_output_tokens,
                temperature=config.temperature,
            )
        except openai.APIStatusError as e:
            raise RemoteError(self.name, f"{self._provider.name}: {e.message}", status_code=e.status_code) from e
        except openai.APIConnectionError as e:
            raise UnavailableError(self.name, f"cannot reach {self._provider.base_url}: {e}") from e
        except openai.APIError as e:
            raise RemoteError(self.name, str(e)) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
