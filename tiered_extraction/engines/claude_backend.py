"""
Claude Backend.

Anthropic Claude vision models through the anthropic SDK. Most expensive
tier, kept last for receipts nothing cheaper could read.
"""

from typing import Optional

import anthropic
from anthropic import AsyncAnthropic

from config import get_config
from tiered_extraction.utils.exceptions import RemoteError, UnavailableError
from tiered_extraction.utils.helpers import encode_base64, env_value
from tiered_extraction.utils.logger import get_logger
from .base import EngineBackend, InvokeConfig
from .prompts import RECEIPT_EXTRACTION_PROMPT

logger = get_logger(__name__)


class ClaudeBackend(EngineBackend):
    """
    Claude via the Messages API with a base64 image block.

    CLAUDE_MODEL overrides the configured model name.
    """

    name = "claude"

    def __init__(self, model: str = "claude-sonnet-4-20250514") -> None:
        self.model_name = env_value(get_config("engines.claude.model_env", "CLAUDE_MODEL")) or model
        self.timeout = get_config("engines.claude.timeout", 120)
        self._client: Optional[AsyncAnthropic] = None

    def _ensure_client(self) -> AsyncAnthropic:
        if self._client is None:
            api_key = env_value(get_config("engines.claude.api_key_env", "ANTHROPIC_API_KEY"))
            if not api_key:
                raise UnavailableError(self.name, "ANTHROPIC_API_KEY not found in environment")
            self._client = AsyncAnthropic(api_key=api_key, timeout=self.timeout)
        return self._client

    async def invoke(self, data: bytes, media_type: str, config: InvokeConfig) -> str:
        client = self._ensure_client()
        try:
            message = await client.messages.create(
                model=self.model_name,
                max_tokens=config.max_output_tokens,
                temperature=config.temperature,
                messages=[{
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": media_type,
                                "data": encode_base64(data),
                            },
                        },
                        {"type": "text", "text": RECEIPT_EXTRACTION_PROMPT},
                    ],
                }],
            )
        except anthropic.APIStatusError as e:
            raise RemoteError(self.name, e.message, status_code=e.status_code) from e
        except anthropic.APIConnectionError as e:
            raise UnavailableError(self.name, f"cannot reach Anthropic API: {e}") from e
        except anthropic.APIError as e:
            raise RemoteError(self.name, str(e)) from e

        return ''.join(block.text for block in message.content if block.type == "text")
