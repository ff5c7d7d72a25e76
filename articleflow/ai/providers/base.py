"""Contracts for the external text-generation and web-search collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class GenerationProviderError(RuntimeError):
  """Raised when the text-generation provider fails or returns nothing usable."""


class AugmentationUnavailableError(RuntimeError):
  """Raised when the web-search provider cannot serve a query."""


@dataclass(frozen=True)
class SearchHit:
  """One raw web-search result before validation and ranking."""

  url: str
  title: str
  snippet: str


class TextGenerator(Protocol):
  """Takes a prompt and returns article text, or raises GenerationProviderError."""

  async def generate(self, prompt: str, max_length: int) -> str:
    """Generate text for the prompt, bounded by max_length tokens."""


class SearchProvider(Protocol):
  """Returns raw hits for a query, or raises AugmentationUnavailableError."""

  async def search(self, query: str) -> list[SearchHit]:
    """Run a web search."""
