"""Orchestration facade exposed to the HTTP layer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

from articleflow.ai.providers.base import GenerationProviderError, SearchProvider, TextGenerator
from articleflow.ai.providers.openrouter import OpenRouterTextGenerator
from articleflow.ai.providers.tavily import TavilySearchProvider
from articleflow.config import Settings
from articleflow.jobs.batches import BatchNotFoundError, BatchQueueManager, BatchView, JobRunner
from articleflow.jobs.events import BatchCompleted, BatchProgress, EventBus, Listener, Subscription
from articleflow.jobs.models import GenerationRequest, JobError, JobRecord
from articleflow.jobs.state_machine import InvalidTransitionError, JobNotFoundError, JobStateMachine
from articleflow.jobs.worker import ArticleJobRunner, Evaluator
from articleflow.services.links import ExternalLinkService, LinkCache
from articleflow.services.quality import QualityEvaluator
from articleflow.services.quotas import QuotaTracker
from articleflow.storage.batches_repo import BatchesRepository
from articleflow.storage.factory import build_repositories
from articleflow.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

INTERRUPTED_KIND = "Interrupted"
INTERRUPTED_MESSAGE = "Generation was interrupted by a service restart; please retry."


class GenerationService:
  """Create, track and cancel article jobs and batches for one process."""

  def __init__(self, *, state_machine: JobStateMachine, queue_manager: BatchQueueManager, runner: JobRunner, events: EventBus) -> None:
    self._state_machine = state_machine
    self._queue_manager = queue_manager
    self._runner = runner
    self._events = events
    self._tasks: set[asyncio.Task[JobRecord | None]] = set()

  @property
  def events(self) -> EventBus:
    return self._events

  async def start(self, *, recover: bool = True) -> None:
    """Start the batch pool and pick up work left over from a previous run."""

    if recover:
      await self._recover()
    await self._queue_manager.start()

  async def shutdown(self) -> None:
    await self._queue_manager.shutdown()
    tasks = list(self._tasks)
    for task in tasks:
      task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    self._tasks.clear()

  async def _recover(self) -> None:
    # Jobs left running belong to a dead process and can never finish.
    jobs_repo = self._state_machine.jobs_repo
    for job in await jobs_repo.find_by_status("running"):
      try:
        await self._state_machine.fail(job.job_id, JobError(kind=INTERRUPTED_KIND, message=INTERRUPTED_MESSAGE))
        logger.warning("Marked orphaned job %s as interrupted.", job.job_id)
      except InvalidTransitionError:
        continue

    await self._queue_manager.resume_pending()
    for job in await jobs_repo.find_by_status("pending"):
      if job.batch_id is None:
        self._spawn(job.job_id)

  def _spawn(self, job_id: str) -> asyncio.Task[JobRecord | None]:
    task = asyncio.create_task(self._run_standalone(job_id), name=f"job-{job_id}")
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)
    return task

  async def _run_standalone(self, job_id: str) -> JobRecord | None:
    try:
      return await self._runner.run(job_id)
    except Exception:  # noqa: BLE001
      logger.error("Standalone job %s failed unexpectedly", job_id, exc_info=True)
      try:
        record = await self._state_machine.get(job_id)
        if record.status == "running":
          return await self._state_machine.fail(job_id, JobError(kind="InternalError", message="Unexpected error during generation."))
      except (InvalidTransitionError, JobNotFoundError):
        logger.warning("Could not mark standalone job %s as failed.", job_id)
      return None

  async def create_job(self, owner_id: str, request: GenerationRequest) -> JobRecord:
    record = await self._state_machine.create(request, owner_id)
    self._spawn(record.job_id)
    return record

  async def get_job(self, owner_id: str, job_id: str) -> JobRecord:
    record = await self._state_machine.get(job_id)
    if record.owner_id != owner_id:
      raise JobNotFoundError(f"Job {job_id} not found.")
    return record

  async def cancel_job(self, owner_id: str, job_id: str) -> JobRecord:
    """Cancel a pending or running job; a terminal job is returned unchanged."""

    record = await self.get_job(owner_id, job_id)
    if record.is_terminal:
      return record
    try:
      return await self._state_machine.cancel(job_id)
    except InvalidTransitionError:
      # Finished between the read and the cancel.
      return await self._state_machine.get(job_id)

  async def create_batch(self, owner_id: str, requests: Sequence[GenerationRequest], name: str | None = None) -> BatchView:
    return await self._queue_manager.create_batch(owner_id, requests, name=name)

  async def get_batch(self, owner_id: str, batch_id: str) -> BatchView:
    view = await self._queue_manager.get_batch(batch_id)
    if view.owner_id != owner_id:
      raise BatchNotFoundError(f"Batch {batch_id} not found.")
    return view

  async def list_batches(self, owner_id: str) -> list[BatchView]:
    return await self._queue_manager.list_batches(owner_id)

  def subscribe(self, *, batch_id: str | None = None, job_id: str | None = None) -> Subscription:
    """Open a dedicated event channel; callers must close it when done."""

    return self._events.subscribe(batch_id=batch_id, job_id=job_id)

  def on_progress(self, callback: Listener) -> Callable[[], None]:
    return self._events.add_listener(BatchProgress, callback)

  def on_completed(self, callback: Listener) -> Callable[[], None]:
    return self._events.add_listener(BatchCompleted, callback)

  async def wait_idle(self) -> None:
    """Wait for queued batch items and in-flight standalone jobs to finish."""

    await self._queue_manager.join()
    while self._tasks:
      await asyncio.gather(*list(self._tasks), return_exceptions=True)


class UnconfiguredTextGenerator:
  """Fails every call; used when no provider credentials are configured."""

  async def generate(self, prompt: str, max_length: int) -> str:
    raise GenerationProviderError("No text-generation provider is configured.")


def build_generation_service(settings: Settings, *, jobs_repo: JobsRepository | None = None, batches_repo: BatchesRepository | None = None, text_generator: TextGenerator | None = None, search_provider: SearchProvider | None = None, quota_tracker: QuotaTracker | None = None, evaluator: Evaluator | None = None) -> GenerationService:
  """Wire the orchestration components from settings; explicit arguments win."""

  if jobs_repo is None or batches_repo is None:
    default_jobs, default_batches = build_repositories(settings)
    jobs_repo = jobs_repo or default_jobs
    batches_repo = batches_repo or default_batches

  if text_generator is None:
    if settings.openrouter_api_key:
      text_generator = OpenRouterTextGenerator(settings.generation_model, api_key=settings.openrouter_api_key, base_url=settings.generation_base_url)
    else:
      logger.warning("OPENROUTER_API_KEY is not set; generation jobs will fail.")
      text_generator = UnconfiguredTextGenerator()

  if search_provider is None and settings.tavily_api_key:
    search_provider = TavilySearchProvider(settings.tavily_api_key)

  events = EventBus()
  state_machine = JobStateMachine(jobs_repo, events)
  link_service = ExternalLinkService(search_provider, LinkCache(ttl_seconds=settings.link_cache_ttl_seconds), top_n=settings.link_top_n)
  runner = ArticleJobRunner(
    state_machine=state_machine,
    text_generator=text_generator,
    link_service=link_service,
    quota_tracker=quota_tracker or QuotaTracker(default_limit=settings.search_monthly_limit),
    evaluator=evaluator or QualityEvaluator(),
    settings=settings,
  )
  queue_manager = BatchQueueManager(state_machine, batches_repo, runner, events, max_items=settings.batch_max_items, concurrency=settings.batch_concurrency)
  return GenerationService(state_machine=state_machine, queue_manager=queue_manager, runner=runner, events=events)
