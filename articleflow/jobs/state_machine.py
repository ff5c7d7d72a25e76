"""Guarded lifecycle transitions for article jobs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from articleflow.jobs.events import EventBus, JobUpdated
from articleflow.jobs.models import GenerationRequest, JobError, JobRecord, JobResult, JobStatus, is_terminal
from articleflow.storage.jobs_repo import JobsRepository
from articleflow.utils.ids import generate_job_id
from articleflow.utils.timestamps import now_iso

logger = logging.getLogger(__name__)

MAX_TRACKED_LOGS = 100

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
  "pending": frozenset({"running", "cancelled"}),
  "running": frozenset({"completed", "failed", "cancelled"}),
  "completed": frozenset(),
  "failed": frozenset(),
  "cancelled": frozenset(),
}


class JobNotFoundError(LookupError):
  """Raised when a job id is unknown (or not visible to the caller)."""


class InvalidTransitionError(RuntimeError):
  """Raised when a transition is not allowed from the job's current status."""

  def __init__(self, job_id: str, current: str, requested: str) -> None:
    super().__init__(f"Job {job_id} cannot move from {current} to {requested}.")
    self.job_id = job_id
    self.current = current
    self.requested = requested


class NonMonotonicProgressError(ValueError):
  """Raised when a progress update would move a job backwards."""


def can_transition(current: str, target: str) -> bool:
  return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def _append_log(logs: list[str], message: str | None) -> list[str] | None:
  if not message:
    return None
  return (logs + [message])[-MAX_TRACKED_LOGS:]


class JobStateMachine:
  """Serialize every read-check-write on a job behind a per-job lock."""

  def __init__(self, jobs_repo: JobsRepository, events: EventBus | None = None, clock: Callable[[], str] = now_iso) -> None:
    self._jobs_repo = jobs_repo
    self._events = events
    self._clock = clock
    self._locks: dict[str, asyncio.Lock] = {}

  @property
  def jobs_repo(self) -> JobsRepository:
    return self._jobs_repo

  def _lock_for(self, job_id: str) -> asyncio.Lock:
    lock = self._locks.get(job_id)
    if lock is None:
      lock = asyncio.Lock()
      self._locks[job_id] = lock
    return lock

  async def _load(self, job_id: str) -> JobRecord:
    record = await self._jobs_repo.get_job(job_id)
    if record is None:
      raise JobNotFoundError(f"Job {job_id} not found.")
    return record

  async def _publish(self, record: JobRecord) -> None:
    if self._events is not None:
      await self._events.publish(JobUpdated(job=record))

  async def create(self, request: GenerationRequest, owner_id: str, batch_id: str | None = None) -> JobRecord:
    timestamp = self._clock()
    record = JobRecord(job_id=generate_job_id(), owner_id=owner_id, request=request, status="pending", created_at=timestamp, updated_at=timestamp, batch_id=batch_id, logs=["Job queued."])
    await self._jobs_repo.create_job(record)
    logger.info("Created job %s for owner=%s batch=%s", record.job_id, owner_id, batch_id)
    await self._publish(record)
    return record

  async def get(self, job_id: str) -> JobRecord:
    return await self._load(job_id)

  async def _transition(self, job_id: str, target: JobStatus, *, message: str | None = None, **fields: Any) -> JobRecord:
    async with self._lock_for(job_id):
      record = await self._load(job_id)
      if not can_transition(record.status, target):
        raise InvalidTransitionError(job_id, record.status, target)

      timestamp = self._clock()
      if is_terminal(target):
        fields.setdefault("completed_at", timestamp)
      updated = await self._jobs_repo.update_job(job_id, status=target, logs=_append_log(record.logs, message), updated_at=timestamp, **fields)
      if updated is None:
        raise JobNotFoundError(f"Job {job_id} not found.")

    if is_terminal(target):
      self._locks.pop(job_id, None)
    logger.info("Job %s moved %s -> %s", job_id, record.status, target)
    await self._publish(updated)
    return updated

  async def transition_to_running(self, job_id: str) -> JobRecord:
    return await self._transition(job_id, "running", message="Job started.", stage="drafting", started_at=self._clock())

  async def update_progress(self, job_id: str, progress: int, *, stage: str | None = None, attempt: int | None = None, message: str | None = None) -> JobRecord:
    """Record progress on a running job; progress never decreases."""

    if not 0 <= progress <= 100:
      raise ValueError(f"Progress must be within 0..100, got {progress}.")

    async with self._lock_for(job_id):
      record = await self._load(job_id)
      if record.status != "running":
        raise InvalidTransitionError(job_id, record.status, "running")
      if progress < record.progress:
        raise NonMonotonicProgressError(f"Job {job_id} progress cannot drop from {record.progress} to {progress}.")

      updated = await self._jobs_repo.update_job(job_id, progress=progress, stage=stage, attempt=attempt, logs=_append_log(record.logs, message), updated_at=self._clock())
      if updated is None:
        raise JobNotFoundError(f"Job {job_id} not found.")

    await self._publish(updated)
    return updated

  async def complete(self, job_id: str, result: JobResult) -> JobRecord:
    return await self._transition(job_id, "completed", message="Job completed.", result=result, progress=100, stage="finalized")

  async def fail(self, job_id: str, error: JobError) -> JobRecord:
    return await self._transition(job_id, "failed", message=f"Job failed: {error.kind}.", error=error)

  async def cancel(self, job_id: str) -> JobRecord:
    return await self._transition(job_id, "cancelled", message="Job cancelled.")
