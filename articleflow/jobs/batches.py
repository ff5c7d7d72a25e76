"""Batch model, derived batch status, and the bounded worker pool that runs batch items."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

from articleflow.jobs.events import BatchCompleted, BatchProgress, EventBus
from articleflow.jobs.models import GenerationRequest, JobError, JobRecord, is_terminal
from articleflow.jobs.state_machine import InvalidTransitionError, JobNotFoundError, JobStateMachine
from articleflow.storage.batches_repo import BatchesRepository, BatchRecord
from articleflow.utils.ids import generate_batch_id
from articleflow.utils.timestamps import now_iso

logger = logging.getLogger(__name__)

BatchStatus = Literal["pending", "running", "completed", "failed", "cancelled"]

DEFAULT_MAX_ITEMS = 50
DEFAULT_CONCURRENCY = 3


class EmptyBatchError(ValueError):
  """Raised when a batch is submitted without items."""

  kind = "EmptyBatch"


class BatchTooLargeError(ValueError):
  """Raised when a batch exceeds the configured item cap."""

  kind = "BatchTooLarge"


class BatchNotFoundError(LookupError):
  """Raised when a batch id is unknown (or not visible to the caller)."""


class JobRunner(Protocol):
  async def run(self, job_id: str) -> JobRecord: ...


def derive_batch_status(statuses: Iterable[str]) -> BatchStatus:
  """Aggregate item statuses into a batch status.

  Pending until an item starts; items cancelled before starting do not count.
  Running while any item is non-terminal. All completed is completed, a
  terminal mix with any failure is failed, and a terminal mix of completed and
  cancelled items is cancelled.
  """

  counts = Counter(statuses)
  total = sum(counts.values())
  if total == 0:
    return "pending"
  if counts["pending"] and not (counts["running"] or counts["completed"] or counts["failed"]):
    return "pending"
  if counts["pending"] or counts["running"]:
    return "running"
  if counts["completed"] == total:
    return "completed"
  if counts["failed"]:
    return "failed"
  return "cancelled"


@dataclass(frozen=True)
class BatchView:
  """Read model: a batch record joined with its current items."""

  batch_id: str
  owner_id: str
  name: str | None
  created_at: str
  items: tuple[JobRecord, ...]

  @property
  def status(self) -> BatchStatus:
    return derive_batch_status(item.status for item in self.items)

  @property
  def total_items(self) -> int:
    return len(self.items)

  @property
  def completed_count(self) -> int:
    return sum(1 for item in self.items if item.status == "completed")

  @property
  def failed_count(self) -> int:
    return sum(1 for item in self.items if item.status == "failed")

  @property
  def cancelled_count(self) -> int:
    return sum(1 for item in self.items if item.status == "cancelled")

  @property
  def progress(self) -> float:
    """Share of items that reached a terminal status, as a percentage."""

    if not self.items:
      return 0.0
    finished = sum(1 for item in self.items if is_terminal(item.status))
    return round(finished / len(self.items) * 100, 2)


class BatchQueueManager:
  """Own the batch worker pool; items run through the shared job runner with bounded concurrency."""

  def __init__(self, state_machine: JobStateMachine, batches_repo: BatchesRepository, runner: JobRunner, events: EventBus, *, max_items: int = DEFAULT_MAX_ITEMS, concurrency: int = DEFAULT_CONCURRENCY) -> None:
    if concurrency < 1:
      raise ValueError("concurrency must be at least 1")
    self._state_machine = state_machine
    self._batches_repo = batches_repo
    self._runner = runner
    self._events = events
    self._max_items = max_items
    self._concurrency = concurrency
    self._queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()
    self._workers: list[asyncio.Task[None]] = []
    self._completed_batches: set[str] = set()
    # Queue entries not yet processed, per batch; a batch is forgotten once it drains.
    self._outstanding: Counter[str] = Counter()

  @property
  def running(self) -> bool:
    return bool(self._workers)

  @property
  def tracked_batches(self) -> int:
    """Batches with queued items or a pending completion marker."""

    return len(self._outstanding) + len(self._completed_batches)

  async def start(self) -> None:
    if self._workers:
      return
    self._workers = [asyncio.create_task(self._worker(index), name=f"batch-worker-{index}") for index in range(self._concurrency)]
    logger.info("Batch queue started with %d workers.", self._concurrency)

  async def shutdown(self) -> None:
    workers, self._workers = self._workers, []
    for task in workers:
      task.cancel()
    await asyncio.gather(*workers, return_exceptions=True)
    if workers:
      logger.info("Batch queue stopped; %d items left queued.", self._queue.qsize())

  async def join(self) -> None:
    """Wait until every enqueued item has been processed."""

    await self._queue.join()

  async def create_batch(self, owner_id: str, requests: Sequence[GenerationRequest], name: str | None = None) -> BatchView:
    if not requests:
      raise EmptyBatchError("A batch needs at least one item.")
    if len(requests) > self._max_items:
      raise BatchTooLargeError(f"A batch may contain at most {self._max_items} items, got {len(requests)}.")

    batch_id = generate_batch_id()
    jobs = [await self._state_machine.create(request, owner_id, batch_id=batch_id) for request in requests]
    record = BatchRecord(batch_id=batch_id, owner_id=owner_id, created_at=now_iso(), job_ids=tuple(job.job_id for job in jobs), name=name)
    await self._batches_repo.create_batch(record)

    for job in jobs:
      self._enqueue(batch_id, job.job_id)
    logger.info("Batch %s queued with %d items for owner=%s", batch_id, len(jobs), owner_id)
    return BatchView(batch_id=batch_id, owner_id=owner_id, name=name, created_at=record.created_at, items=tuple(jobs))

  async def _view(self, record: BatchRecord) -> BatchView:
    items = await self._state_machine.jobs_repo.get_jobs(record.job_ids)
    return BatchView(batch_id=record.batch_id, owner_id=record.owner_id, name=record.name, created_at=record.created_at, items=tuple(items))

  async def get_batch(self, batch_id: str) -> BatchView:
    record = await self._batches_repo.get_batch(batch_id)
    if record is None:
      raise BatchNotFoundError(f"Batch {batch_id} not found.")
    return await self._view(record)

  async def list_batches(self, owner_id: str) -> list[BatchView]:
    records = await self._batches_repo.list_batches(owner_id)
    return [await self._view(record) for record in records]

  async def resume_pending(self) -> int:
    """Re-enqueue pending batch items found in the store after a restart."""

    pending = await self._state_machine.jobs_repo.find_by_status("pending")
    resumed = 0
    for job in pending:
      if job.batch_id is None:
        continue
      self._enqueue(job.batch_id, job.job_id)
      resumed += 1
    if resumed:
      logger.info("Resumed %d pending batch items.", resumed)
    return resumed

  async def _worker(self, index: int) -> None:
    while True:
      batch_id, job_id = await self._queue.get()
      try:
        await self._process(batch_id, job_id)
      except Exception:  # noqa: BLE001
        logger.error("Batch worker %d failed handling job %s in batch %s", index, job_id, batch_id, exc_info=True)
      finally:
        self._release(batch_id)
        self._queue.task_done()

  def _enqueue(self, batch_id: str, job_id: str) -> None:
    self._outstanding[batch_id] += 1
    self._queue.put_nowait((batch_id, job_id))

  def _release(self, batch_id: str) -> None:
    self._outstanding[batch_id] -= 1
    if self._outstanding[batch_id] <= 0:
      del self._outstanding[batch_id]
      self._completed_batches.discard(batch_id)

  async def _process(self, batch_id: str, job_id: str) -> None:
    try:
      record = await self._state_machine.get(job_id)
    except JobNotFoundError:
      logger.warning("Skipping unknown job %s in batch %s", job_id, batch_id)
      return

    if record.status != "pending":
      # Cancelled before it started, or already handled.
      logger.debug("Skipping job %s in batch %s with status %s", job_id, batch_id, record.status)
    else:
      try:
        await self._runner.run(job_id)
      except Exception as exc:  # noqa: BLE001
        # One item's failure never touches its siblings.
        logger.error("Batch item %s in batch %s failed unexpectedly", job_id, batch_id, exc_info=True)
        await self._fail_internal(job_id, exc)

    await self._publish_progress(batch_id)

  async def _fail_internal(self, job_id: str, exc: Exception) -> None:
    error = JobError(kind="InternalError", message=f"Unexpected error: {type(exc).__name__}")
    try:
      record = await self._state_machine.get(job_id)
      if record.status == "pending":
        await self._state_machine.transition_to_running(job_id)
      if not is_terminal(record.status):
        await self._state_machine.fail(job_id, error)
    except (InvalidTransitionError, JobNotFoundError):
      logger.warning("Could not mark job %s as failed after an internal error.", job_id)

  async def _publish_progress(self, batch_id: str) -> None:
    try:
      view = await self.get_batch(batch_id)
    except BatchNotFoundError:
      logger.warning("Batch %s disappeared before progress could be published.", batch_id)
      return

    await self._events.publish(BatchProgress(batch_id=batch_id, percent=view.progress, completed=view.completed_count, failed=view.failed_count, total=view.total_items))

    status = view.status
    if status in ("completed", "failed", "cancelled") and batch_id not in self._completed_batches:
      self._completed_batches.add(batch_id)
      logger.info("Batch %s finished status=%s completed=%d failed=%d cancelled=%d", batch_id, status, view.completed_count, view.failed_count, view.cancelled_count)
      await self._events.publish(BatchCompleted(batch_id=batch_id, status=status))
