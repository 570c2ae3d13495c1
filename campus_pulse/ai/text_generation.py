"""
text_generation.py — Ordered chain of text-generation providers.

Every provider exposes the same small capability:

    name: str
    enabled: bool
    async complete(system: str, prompt: str, response_key: str) -> str | None

complete() returns None (never raises) when the provider cannot answer.
TextGenerationChain asks each enabled provider in turn and returns the first
non-empty text, so the enrichment code never hardcodes Gemini or OpenAI.

Default order (build_text_generation_chain):
  1. Gemini in REAL mode
  2. OpenAI-compatible chat completions, when OPENAI_API_KEY is set
  3. Gemini in MOCK mode — only when neither of the above is available
"""

import logging
from typing import Optional, Protocol

from campus_pulse.ai.gemini_client import GeminiClient, gemini_client
from campus_pulse.ai.openai_client import OpenAIChatClient, openai_client

logger = logging.getLogger(__name__)


class TextGenerationProvider(Protocol):
    name: str

    @property
    def enabled(self) -> bool: ...

    async def complete(self, system: str, prompt: str, response_key: str = "default") -> Optional[str]: ...


class GeminiTextProvider:
    name = "gemini"

    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    @property
    def enabled(self) -> bool:
        return True

    @property
    def mock_mode(self) -> bool:
        return self.client.mock_mode

    async def complete(self, system: str, prompt: str, response_key: str = "default") -> Optional[str]:
        try:
            text = await self.client.generate(f"{system}\n\n{prompt}", response_key=response_key)
        except Exception as exc:
            logger.warning("Gemini completion failed: %s", exc)
            return None
        return text if text and text.strip() else None


class OpenAITextProvider:
    name = "openai"

    def __init__(self, client: OpenAIChatClient) -> None:
        self.client = client

    @property
    def enabled(self) -> bool:
        return self.client.enabled

    async def complete(self, system: str, prompt: str, response_key: str = "default") -> Optional[str]:
        return await self.client.chat(
            [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ]
        )


class TextGenerationChain:
    """Try providers in order; first non-empty answer wins."""

    def __init__(self, providers: list[TextGenerationProvider]) -> None:
        self.providers = providers

    @property
    def enabled(self) -> bool:
        return any(p.enabled for p in self.providers)

    async def complete(self, system: str, prompt: str, response_key: str = "default") -> Optional[str]:
        for provider in self.providers:
            if not provider.enabled:
                continue
            try:
                text = await provider.complete(system, prompt, response_key=response_key)
            except Exception as exc:
                logger.warning("Text provider %s raised: %s", provider.name, exc)
                continue
            if text:
                logger.debug("Text provider %s answered (%d chars)", provider.name, len(text))
                return text
            logger.info("Text provider %s returned nothing, trying next", provider.name)
        return None


def build_text_generation_chain(
    gemini: GeminiClient = gemini_client,
    openai: OpenAIChatClient = openai_client,
) -> TextGenerationChain:
    providers: list[TextGenerationProvider] = []
    if not gemini.mock_mode:
        providers.append(GeminiTextProvider(gemini))
    if openai.enabled:
        providers.append(OpenAITextProvider(openai))
    if not providers:
        providers.append(GeminiTextProvider(gemini))
    return TextGenerationChain(providers)


def get_text_chain() -> TextGenerationChain:
    """FastAPI dependency — tests override this with fake providers."""
    return build_text_generation_chain()
