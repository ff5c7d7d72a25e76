"""External link discovery with a time-bounded cache."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from urllib.parse import urlparse

from articleflow.ai.providers.base import AugmentationUnavailableError, SearchHit, SearchProvider
from articleflow.jobs.models import LinkResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60
DEFAULT_TOP_N = 5

AUTHORITY_DOMAINS: tuple[str, ...] = ("wikipedia.org", "gov.uk", "edu", "ac.uk", "nature.com", "sciencedirect.com", "scholar.google.com", "who.int", "un.org", "europa.eu")
EXCLUDED_DOMAINS: tuple[str, ...] = ("facebook.com", "twitter.com", "instagram.com", "pinterest.com", "youtube.com", "tiktok.com")
ARTICLE_PATH_MARKERS: tuple[str, ...] = ("/article/", "/research/", "/study/")

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class CacheEntry:
  """Ranked links for one normalized query, stamped with the fetch time."""

  key: str
  results: tuple[LinkResult, ...]
  fetched_at: float


def normalize_key(query: str) -> str:
  """Lowercase, trim, and collapse internal whitespace."""

  return _WHITESPACE.sub(" ", query.strip().lower())


class LinkCache:
  """Map normalized queries to ranked links; stale entries are never served."""

  def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time) -> None:
    self._ttl_seconds = ttl_seconds
    self._clock = clock
    self._entries: dict[str, CacheEntry] = {}
    self._lock = asyncio.Lock()

  normalize_key = staticmethod(normalize_key)

  def _is_fresh(self, entry: CacheEntry) -> bool:
    return self._clock() - entry.fetched_at < self._ttl_seconds

  async def get(self, query: str) -> CacheEntry | None:
    key = normalize_key(query)
    async with self._lock:
      entry = self._entries.get(key)
      if entry is None:
        return None
      if not self._is_fresh(entry):
        # Expired entries are evicted lazily on read.
        del self._entries[key]
        return None
      return entry

  async def put(self, query: str, results: Iterable[LinkResult]) -> CacheEntry:
    key = normalize_key(query)
    entry = CacheEntry(key=key, results=tuple(results), fetched_at=self._clock())
    async with self._lock:
      self._entries[key] = entry
    return entry

  async def invalidate(self, query: str) -> None:
    async with self._lock:
      self._entries.pop(normalize_key(query), None)

  def __len__(self) -> int:
    return len(self._entries)


def _host(url: str) -> str | None:
  try:
    parsed = urlparse(url)
  except ValueError:
    return None
  if parsed.scheme != "https" or not parsed.hostname:
    return None
  return parsed.hostname.lower()


def _relevance(link: LinkResult) -> float:
  score = 0.0
  # Title and snippet have substance.
  if link.title and len(link.title) > 30:
    score += 0.3
  if link.snippet and len(link.snippet) > 100:
    score += 0.4
  # URL structure suggests an article.
  if any(marker in link.url for marker in ARTICLE_PATH_MARKERS):
    score += 0.3
  return round(score, 2)


class ExternalLinkService:
  """Find, validate and rank reference links for a query."""

  def __init__(self, search_provider: SearchProvider | None, cache: LinkCache, *, top_n: int = DEFAULT_TOP_N, excluded_domains: Sequence[str] = EXCLUDED_DOMAINS, authority_domains: Sequence[str] = AUTHORITY_DOMAINS) -> None:
    self._search_provider = search_provider
    self._cache = cache
    self._top_n = top_n
    self._excluded_domains = tuple(excluded_domains)
    self._authority_domains = tuple(authority_domains)

  @property
  def cache(self) -> LinkCache:
    return self._cache

  def validate_links(self, links: Iterable[LinkResult]) -> list[LinkResult]:
    """Keep https links whose host is not an excluded (social media) domain."""

    valid: list[LinkResult] = []
    for link in links:
      host = _host(link.url)
      if host is None:
        continue
      if any(excluded in host for excluded in self._excluded_domains):
        continue
      valid.append(link)
    return valid

  def rank_links(self, links: Iterable[LinkResult]) -> list[LinkResult]:
    """Score authority and relevance, sort by authority * 2 + relevance, keep the top N."""

    scored: list[LinkResult] = []
    for link in links:
      host = _host(link.url) or ""
      authority = 1.0 if any(domain in host for domain in self._authority_domains) else 0.0
      scored.append(replace(link, authority_score=authority, relevance_score=_relevance(link)))
    # sorted() is stable, so ties keep search order.
    scored = sorted(scored, key=lambda link: link.authority_score * 2 + link.relevance_score, reverse=True)
    return scored[: self._top_n]

  async def _fetch(self, query: str) -> list[LinkResult]:
    if self._search_provider is None:
      raise AugmentationUnavailableError("No search provider is configured.")
    try:
      hits: list[SearchHit] = await self._search_provider.search(query)
    except AugmentationUnavailableError:
      raise
    except Exception as exc:
      raise AugmentationUnavailableError(f"Web search failed: {type(exc).__name__}") from exc
    links = [LinkResult(url=hit.url, title=hit.title, snippet=hit.snippet) for hit in hits]
    return self.rank_links(self.validate_links(links))

  async def find_links(self, query: str, force_refresh: bool = False) -> list[LinkResult]:
    """Return ranked links, serving a fresh cache entry unless force_refresh is set.

    Search failures never raise: they are logged and produce an empty list, and
    an existing cache entry is left untouched.
    """

    if not force_refresh:
      entry = await self._cache.get(query)
      if entry is not None:
        logger.debug("Using cached links for query=%r", entry.key)
        return list(entry.results)

    try:
      ranked = await self._fetch(query)
    except AugmentationUnavailableError as exc:
      logger.warning("Link search unavailable for query=%r: %s", query, exc)
      return []

    await self._cache.put(query, ranked)
    return ranked
