"""Attempt loop that turns one pending job into a finished article."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from articleflow.ai.prompts import build_article_prompt, build_improvement_prompt
from articleflow.ai.providers.base import TextGenerator
from articleflow.config import Settings
from articleflow.jobs.models import JobError, JobRecord, JobResult, LinkResult
from articleflow.jobs.progress import JobCancelledError, JobProgressTracker
from articleflow.jobs.state_machine import InvalidTransitionError, JobStateMachine
from articleflow.services.links import ExternalLinkService
from articleflow.services.quality import QualityReport, count_words
from articleflow.services.quotas import QuotaTracker

T = TypeVar("T")

GENERATION_FAILED_KIND = "GenerationProviderError"
GENERATION_FAILED_MESSAGE = "Article generation failed; please retry later."
GENERATION_TIMEOUT_MESSAGE = "Article generation timed out; please retry later."


class Evaluator(Protocol):
  def evaluate(self, text: str, topic: str, industry_hint: str | None = None) -> QualityReport: ...


class JobTimeoutError(Exception):
  """Raised when the job's overall time budget is spent."""


@dataclass(frozen=True)
class _Draft:
  content: str
  report: QualityReport


class _Budget:
  """Track elapsed time against the overall job budget."""

  def __init__(self, clock: Callable[[], float], total_seconds: float) -> None:
    self._clock = clock
    self._started = clock()
    self._total = total_seconds

  def elapsed(self) -> float:
    return self._clock() - self._started

  def remaining(self) -> float:
    return self._total - self.elapsed()

  async def bound(self, awaitable: Awaitable[T]) -> T:
    remaining = self.remaining()
    if remaining <= 0:
      # Close the coroutine so it is not reported as never awaited.
      close = getattr(awaitable, "close", None)
      if close is not None:
        close()
      raise JobTimeoutError("Job time budget exhausted.")
    try:
      return await asyncio.wait_for(awaitable, timeout=remaining)
    except TimeoutError as exc:
      raise JobTimeoutError("Job time budget exhausted.") from exc


class ArticleJobRunner:
  """Run the generate, evaluate and optionally improve loop for a single job."""

  def __init__(self, *, state_machine: JobStateMachine, text_generator: TextGenerator, link_service: ExternalLinkService | None, quota_tracker: QuotaTracker, evaluator: Evaluator, settings: Settings, clock: Callable[[], float] = time.monotonic) -> None:
    self._state_machine = state_machine
    self._text_generator = text_generator
    self._link_service = link_service
    self._quota_tracker = quota_tracker
    self._evaluator = evaluator
    self._settings = settings
    self._clock = clock
    self._logger = logging.getLogger(__name__)

  async def run(self, job_id: str) -> JobRecord:
    """Execute the job and return its final record; never raises for provider failures."""

    try:
      record = await self._state_machine.transition_to_running(job_id)
    except InvalidTransitionError as exc:
      # Already cancelled or picked up elsewhere; nothing to do.
      self._logger.info("Skipping job %s: status is %s", job_id, exc.current)
      return await self._state_machine.get(job_id)

    budget = _Budget(self._clock, self._settings.job_timeout_seconds)
    tracker = JobProgressTracker(job_id=job_id, state_machine=self._state_machine)
    self._logger.info("Job %s started keyword=%r", job_id, record.request.keyword)

    try:
      return await self._execute(record, tracker, budget)
    except JobCancelledError:
      self._logger.info("Job %s cancelled; stopping without further provider calls.", job_id)
      return await self._state_machine.get(job_id)

  async def _execute(self, record: JobRecord, tracker: JobProgressTracker, budget: _Budget) -> JobRecord:
    request = record.request

    # Research: quota-gated link lookup that never fails the job.
    try:
      links = await budget.bound(self._research(record, tracker))
    except JobTimeoutError:
      return await self._fail(record.job_id, GENERATION_TIMEOUT_MESSAGE)

    # First draft.
    await tracker.check_cancelled()
    await tracker.record_attempt()
    try:
      content = await budget.bound(self._text_generator.generate(build_article_prompt(request, links), self._settings.generation_max_tokens))
    except JobTimeoutError:
      self._logger.warning("Job %s timed out before a draft was produced.", record.job_id)
      return await self._fail(record.job_id, GENERATION_TIMEOUT_MESSAGE)
    except Exception:  # noqa: BLE001
      self._logger.error("Text generation failed for job %s", record.job_id, exc_info=True)
      return await self._fail(record.job_id, GENERATION_FAILED_MESSAGE)
    await tracker.advance("content_generation", message=f"Draft {tracker.attempt} generated.")

    best = _Draft(content=content, report=self._evaluator.evaluate(content, request.keyword, request.industry))
    await tracker.advance("quality_review", message=f"Quality score {best.report.overall_score:.2f}.")

    # One bounded improvement pass when the draft is below the accept threshold.
    if self._should_improve(best.report, tracker.attempt, budget):
      best = await self._improve(record, tracker, budget, best, links)

    if best.report.overall_score < self._settings.min_retry_threshold:
      self._logger.warning("Job %s finalizing below retry threshold score=%.2f", record.job_id, best.report.overall_score)

    result = JobResult(content=best.content, word_count=count_words(best.content), quality_score=best.report.overall_score, dimension_scores=dict(best.report.dimension_scores), links=tuple(links), attempts=tracker.attempt)
    try:
      completed = await self._state_machine.complete(record.job_id, result)
    except InvalidTransitionError:
      return await self._state_machine.get(record.job_id)
    self._logger.info("Job %s completed score=%.2f attempts=%d", record.job_id, result.quality_score, result.attempts)
    return completed

  async def _research(self, record: JobRecord, tracker: JobProgressTracker) -> list[LinkResult]:
    request = record.request
    links: list[LinkResult] = []
    message = "External links disabled."
    if request.enable_external_links and self._link_service is not None:
      await tracker.check_cancelled()
      if await self._quota_tracker.try_consume(record.owner_id):
        links = await self._link_service.find_links(request.keyword, force_refresh=request.force_refresh_links)
        message = f"Found {len(links)} external links."
      else:
        self._logger.warning("Search quota exhausted for owner=%s; job %s continues without links.", record.owner_id, record.job_id)
        message = "Search quota exhausted; continuing without external links."
    await tracker.advance("research", message=message)
    return links

  def _should_improve(self, report: QualityReport, attempts: int, budget: _Budget) -> bool:
    if report.overall_score >= self._settings.quality_threshold:
      return False
    if attempts >= self._settings.max_attempts:
      return False
    return budget.elapsed() < self._settings.quality_budget_seconds

  async def _improve(self, record: JobRecord, tracker: JobProgressTracker, budget: _Budget, draft: _Draft, links: list[LinkResult]) -> _Draft:
    request = record.request
    await tracker.check_cancelled()
    await tracker.record_attempt()
    prompt = build_improvement_prompt(request, draft.content, draft.report.weaknesses, draft.report.missing_elements, links)
    try:
      improved = await budget.bound(self._text_generator.generate(prompt, self._settings.generation_max_tokens))
    except JobTimeoutError:
      self._logger.warning("Job %s improvement pass timed out; keeping the first draft.", record.job_id)
      return draft
    except Exception:  # noqa: BLE001
      self._logger.warning("Improvement pass failed for job %s; keeping the first draft.", record.job_id, exc_info=True)
      await tracker.advance("improvement", message="Improvement pass failed; keeping the first draft.")
      return draft

    candidate = _Draft(content=improved, report=self._evaluator.evaluate(improved, request.keyword, request.industry))
    best = candidate if candidate.report.overall_score > draft.report.overall_score else draft
    await tracker.advance("improvement", message=f"Improved draft scored {candidate.report.overall_score:.2f}.")
    return best

  async def _fail(self, job_id: str, message: str) -> JobRecord:
    try:
      return await self._state_machine.fail(job_id, JobError(kind=GENERATION_FAILED_KIND, message=message))
    except InvalidTransitionError:
      # A concurrent cancel wins; the job stays cancelled.
      return await self._state_machine.get(job_id)
