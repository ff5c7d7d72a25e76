from __future__ import annotations

from types import SimpleNamespace

import pytest

from articleflow.ai.backoff import is_rate_limited, retry_with_backoff
from articleflow.ai.prompts import build_article_prompt, build_improvement_prompt, word_distribution
from articleflow.ai.providers.base import AugmentationUnavailableError, GenerationProviderError
from articleflow.ai.providers.openrouter import OpenRouterTextGenerator
from articleflow.ai.providers.tavily import TavilySearchProvider
from articleflow.core.logging import _rotated_name
from articleflow.jobs.models import GenerationRequest, LinkResult


class _FakeCompletions:
  def __init__(self, responses: list) -> None:
    self._responses = responses
    self.calls: list[dict] = []

  async def create(self, **kwargs):
    self.calls.append(kwargs)
    response = self._responses.pop(0)
    if isinstance(response, Exception):
      raise response
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=response))])


def _fake_openai(responses: list) -> SimpleNamespace:
  return SimpleNamespace(chat=SimpleNamespace(completions=_FakeCompletions(responses)))


class _FakeTavily:
  def __init__(self, response=None, error: Exception | None = None) -> None:
    self._response = response
    self._error = error
    self.calls: list[dict] = []

  def search(self, **kwargs):
    self.calls.append(kwargs)
    if self._error is not None:
      raise self._error
    return self._response


@pytest.mark.anyio
async def test_retry_only_on_rate_limits() -> None:
  attempts = {"count": 0}

  async def flaky() -> str:
    attempts["count"] += 1
    if attempts["count"] < 3:
      raise RuntimeError("429 Too Many Requests")
    return "ok"

  assert await retry_with_backoff(flaky, delays=(0, 0)) == "ok"
  assert attempts["count"] == 3

  async def broken() -> str:
    attempts["count"] += 1
    raise RuntimeError("bad request")

  attempts["count"] = 0
  with pytest.raises(RuntimeError):
    await retry_with_backoff(broken, delays=(0, 0))
  assert attempts["count"] == 1


def test_is_rate_limited() -> None:
  assert is_rate_limited(RuntimeError("Quota Exceeded"))
  assert not is_rate_limited(RuntimeError("connection reset"))


@pytest.mark.anyio
async def test_openrouter_generate_returns_content() -> None:
  client = _fake_openai(["<h1>Hi</h1>"])
  generator = OpenRouterTextGenerator("openai/gpt-4o-mini", client=client)

  assert await generator.generate("write", 500) == "<h1>Hi</h1>"
  call = client.chat.completions.calls[0]
  assert call["max_tokens"] == 500
  assert call["messages"][-1] == {"role": "user", "content": "write"}


@pytest.mark.anyio
async def test_openrouter_empty_response_is_a_provider_error() -> None:
  generator = OpenRouterTextGenerator("openai/gpt-4o-mini", client=_fake_openai(["   "]))
  with pytest.raises(GenerationProviderError):
    await generator.generate("write", 500)


def test_openrouter_requires_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
  with pytest.raises(ValueError):
    OpenRouterTextGenerator("openai/gpt-4o-mini")


@pytest.mark.anyio
async def test_tavily_results_are_normalized() -> None:
  client = _FakeTavily({"results": [{"url": "https://a.example.com", "title": "A", "content": "alpha"}, {"title": "no url"}]})
  provider = TavilySearchProvider(client=client, max_results=3)

  hits = await provider.search("budget travel")

  assert [(hit.url, hit.title, hit.snippet) for hit in hits] == [("https://a.example.com", "A", "alpha")]
  assert client.calls == [{"query": "budget travel", "max_results": 3}]


@pytest.mark.anyio
async def test_tavily_failure_is_augmentation_unavailable() -> None:
  provider = TavilySearchProvider(client=_FakeTavily(error=ConnectionError("down")))
  with pytest.raises(AugmentationUnavailableError):
    await provider.search("budget travel")


def test_word_distribution_sums_to_target() -> None:
  distribution = word_distribution(1500)
  assert distribution["introduction"] == 225
  assert sum(distribution.values()) == 1500


def test_article_prompt_mentions_request_details_and_links() -> None:
  request = GenerationRequest(keyword="budget travel", word_count=1000, tone="friendly", call_to_action="Book now", industry="tourism")
  prompt = build_article_prompt(request, [LinkResult(url="https://en.wikipedia.org/wiki/Travel", title="Travel", snippet="About travel")])

  assert '"budget travel"' in prompt
  assert "friendly tone" in prompt
  assert "Book now" in prompt
  assert "tourism" in prompt
  assert "https://en.wikipedia.org/wiki/Travel" in prompt


def test_improvement_prompt_falls_back_to_generic_feedback() -> None:
  prompt = build_improvement_prompt(GenerationRequest(keyword="budget travel"), "<p>draft</p>", (), ())
  assert "Make the article more specific, actionable and current" in prompt
  assert "<p>draft</p>" in prompt


def test_rotated_log_names() -> None:
  assert _rotated_name("/logs/articleflow_1.log.2") == "/logs/articleflow_1.log-2"
  assert _rotated_name("/logs/articleflow_1.log") == "/logs/articleflow_1.log"
