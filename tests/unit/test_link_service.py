from __future__ import annotations

import pytest

from articleflow.ai.providers.base import SearchHit
from articleflow.jobs.models import LinkResult
from articleflow.services.links import ExternalLinkService, LinkCache, normalize_key
from tests.fakes import FakeClock, FakeSearchProvider

TTL = 7 * 24 * 60 * 60

HITS = [
  SearchHit(url="https://blog.example.com/post", title="Short", snippet="tiny"),
  SearchHit(url="https://en.wikipedia.org/wiki/Budget_travel", title="Budget travel - a long encyclopedic overview", snippet="x" * 120),
  SearchHit(url="http://insecure.example.com/article/1", title="Plain http is rejected", snippet="nope"),
  SearchHit(url="https://www.facebook.com/travel", title="Social media is excluded", snippet="nope"),
  SearchHit(url="https://journal.example.org/research/cheap-flights", title="Short", snippet="tiny"),
]


def _service(provider: FakeSearchProvider | None, clock: FakeClock | None = None, top_n: int = 5) -> ExternalLinkService:
  cache = LinkCache(TTL, clock=clock or FakeClock())
  return ExternalLinkService(provider, cache, top_n=top_n)


def test_normalize_key() -> None:
  assert normalize_key("  Budget   TRAVEL \n") == "budget travel"


@pytest.mark.anyio
async def test_find_links_validates_and_ranks() -> None:
  service = _service(FakeSearchProvider(HITS))

  links = await service.find_links("budget travel")

  urls = [link.url for link in links]
  assert urls == ["https://en.wikipedia.org/wiki/Budget_travel", "https://journal.example.org/research/cheap-flights", "https://blog.example.com/post"]
  assert links[0].authority_score == 1.0
  assert links[0].relevance_score == 0.7
  assert links[1].relevance_score == 0.3


def test_rank_links_is_stable_and_capped() -> None:
  service = _service(None, top_n=2)
  links = [LinkResult(url=f"https://site{index}.example.com/", title="t", snippet="s") for index in range(4)]

  ranked = service.rank_links(links)

  assert [link.url for link in ranked] == ["https://site0.example.com/", "https://site1.example.com/"]


@pytest.mark.anyio
async def test_cache_hit_within_ttl_skips_search() -> None:
  clock = FakeClock()
  provider = FakeSearchProvider(HITS)
  service = _service(provider, clock)

  first = await service.find_links("Budget Travel")
  clock.advance(TTL - 1)
  second = await service.find_links("budget   travel")

  assert first == second
  assert provider.queries == ["Budget Travel"]


@pytest.mark.anyio
async def test_stale_entry_is_refetched() -> None:
  clock = FakeClock()
  provider = FakeSearchProvider(HITS)
  service = _service(provider, clock)

  await service.find_links("budget travel")
  clock.advance(TTL)
  await service.find_links("budget travel")

  assert len(provider.queries) == 2


@pytest.mark.anyio
async def test_force_refresh_overwrites_entry_only_on_success() -> None:
  provider = FakeSearchProvider(HITS)
  service = _service(provider)
  original = await service.find_links("budget travel")

  provider.fail = True
  assert await service.find_links("budget travel", force_refresh=True) == []
  cached = await service.cache.get("budget travel")
  assert cached is not None and list(cached.results) == original

  provider.fail = False
  provider.hits = [SearchHit(url="https://fresh.example.com/", title="Fresh", snippet="new")]
  refreshed = await service.find_links("budget travel", force_refresh=True)
  assert [link.url for link in refreshed] == ["https://fresh.example.com/"]
  assert list((await service.cache.get("budget travel")).results) == refreshed


@pytest.mark.anyio
async def test_search_failure_returns_empty_and_caches_nothing() -> None:
  service = _service(FakeSearchProvider(fail=True))

  assert await service.find_links("budget travel") == []
  assert len(service.cache) == 0


@pytest.mark.anyio
async def test_missing_provider_returns_empty() -> None:
  service = _service(None)
  assert await service.find_links("budget travel") == []


@pytest.mark.anyio
async def test_invalidate_drops_entry() -> None:
  cache = LinkCache(TTL, clock=FakeClock())
  await cache.put("Budget Travel", [])
  await cache.invalidate("budget travel")
  assert await cache.get("budget travel") is None
