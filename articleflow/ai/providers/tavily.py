"""Tavily search provider implementation."""

from __future__ import annotations

import logging
from typing import Any

from fastapi.concurrency import run_in_threadpool
from tavily import TavilyClient

from articleflow.ai.providers.base import AugmentationUnavailableError, SearchHit, SearchProvider

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 10


class TavilySearchProvider(SearchProvider):
  """Provider for Tavily search API."""

  def __init__(self, api_key: str | None = None, *, max_results: int = DEFAULT_MAX_RESULTS, client: TavilyClient | None = None) -> None:
    if client is None:
      if not api_key:
        raise ValueError("Tavily API key is required.")
      client = TavilyClient(api_key=api_key)
    self._client = client
    self._max_results = max_results

  @staticmethod
  def _to_hits(response: dict[str, Any]) -> list[SearchHit]:
    hits: list[SearchHit] = []
    for item in response.get("results") or []:
      url = item.get("url")
      if not url:
        continue
      hits.append(SearchHit(url=url, title=item.get("title") or "", snippet=item.get("content") or ""))
    return hits

  async def search(self, query: str) -> list[SearchHit]:
    """Perform a search using Tavily and normalize the results."""
    try:
      # Tavily client is synchronous
      response = await run_in_threadpool(self._client.search, query=query, max_results=self._max_results)
    except Exception as exc:
      logger.error("Tavily search failed for query=%r: %s", query, exc)
      raise AugmentationUnavailableError(f"Web search failed: {type(exc).__name__}") from exc

    hits = self._to_hits(response)
    logger.info("Tavily search performed for query=%r hits=%d", query, len(hits))
    return hits
