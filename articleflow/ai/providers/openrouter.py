"""OpenRouter text generation using the openai SDK."""

from __future__ import annotations

import logging
import os

import openai
from openai import AsyncOpenAI

from articleflow.ai.backoff import retry_with_backoff
from articleflow.ai.providers.base import GenerationProviderError, TextGenerator

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
SYSTEM_PROMPT = "You are an expert content writer. Respond with the article body as clean HTML using h1, h2, h3, p, ul, ol and li tags only."


class OpenRouterTextGenerator(TextGenerator):
  """Chat-completions client for any OpenAI-compatible endpoint."""

  def __init__(self, model: str, api_key: str | None = None, base_url: str | None = None, client: AsyncOpenAI | None = None) -> None:
    self.model = model
    if client is not None:
      self._client = client
      return

    api_key = api_key or os.getenv("OPENROUTER_API_KEY")
    if not api_key:
      raise ValueError("OPENROUTER_API_KEY environment variable is required")

    # OpenRouter uses the OpenAI-compatible API; we add optional attribution headers.
    default_headers = {}
    referer = os.getenv("OPENROUTER_HTTP_REFERER")
    if referer:
      default_headers["HTTP-Referer"] = referer
    title = os.getenv("OPENROUTER_TITLE")
    if title:
      default_headers["X-Title"] = title

    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or DEFAULT_BASE_URL, default_headers=default_headers or None)

  async def _complete(self, prompt: str, max_length: int) -> str:
    response = await self._client.chat.completions.create(model=self.model, messages=[{"role": "system", "content": SYSTEM_PROMPT}, {"role": "user", "content": prompt}], max_tokens=max_length)
    if not response.choices:
      return ""
    return response.choices[0].message.content or ""

  async def generate(self, prompt: str, max_length: int) -> str:
    try:
      content = await retry_with_backoff(self._complete, prompt, max_length)
    except openai.OpenAIError as exc:
      logger.warning("OpenRouter request failed for model=%s: %s", self.model, exc)
      raise GenerationProviderError(f"Text generation failed: {type(exc).__name__}") from exc

    if not content.strip():
      raise GenerationProviderError("Text generation returned an empty response.")

    logger.info("OpenRouter response received model=%s chars=%d", self.model, len(content))
    return content
