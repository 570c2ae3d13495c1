"""
OpenAIChatClient — Chat Completions over plain HTTP.

Second text-generation provider for hotspot enrichment. Talks to any
OpenAI-compatible /chat/completions endpoint (OPENAI_BASE_URL), so a
self-hosted or alternate model can be swapped in without code changes.

Graceful degradation: if OPENAI_API_KEY is not set the client is disabled
and complete() returns None. HTTP and decode errors are logged and also
return None; the enrichment chain then moves on.
"""

import logging
from typing import Any, Optional

import httpx

from campus_pulse.core.config import settings

logger = logging.getLogger(__name__)


class OpenAIChatClient:
    """Thin async wrapper around POST {base_url}/chat/completions."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = settings.openai_api_key if api_key is None else api_key
        self.model = model or settings.openai_model
        self.base_url = (base_url or settings.openai_base_url).rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self.enabled = bool(self.api_key)

        if not self.enabled:
            logger.info("OPENAI_API_KEY not set — OpenAI text generation disabled.")

    async def chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: int = 360,
        temperature: float = 0.2,
    ) -> Optional[str]:
        """
        Run one chat completion.

        Returns:
            The first choice's message content, or None if not configured,
            on any API error, or when the response has no content.
        """
        if not self.enabled:
            return None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "model": self.model,
                        "messages": messages,
                        "max_tokens": max_tokens,
                        "temperature": temperature,
                    },
                )
                response.raise_for_status()
                data: dict[str, Any] = response.json()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "OpenAI API error: %s — %s",
                    exc.response.status_code,
                    exc.response.text[:200],
                )
                return None
            except Exception as exc:
                logger.error("OpenAI request failed: %s", exc)
                return None

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.warning("OpenAI response had no message content")
            return None
        return content if isinstance(content, str) and content.strip() else None


# Module-level singleton
openai_client = OpenAIChatClient()
