"""In-process repositories used when no database is configured."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

from articleflow.jobs.models import JobError, JobRecord, JobResult, JobStatus
from articleflow.storage.batches_repo import BatchesRepository, BatchRecord
from articleflow.storage.jobs_repo import JobsRepository


class InMemoryJobsRepository(JobsRepository):
  """Keep job records in a dict; state is lost when the process exits."""

  def __init__(self) -> None:
    self._jobs: dict[str, JobRecord] = {}

  async def create_job(self, record: JobRecord) -> None:
    if record.job_id in self._jobs:
      raise ValueError(f"Job {record.job_id} already exists.")
    self._jobs[record.job_id] = replace(record, logs=list(record.logs))

  async def get_job(self, job_id: str) -> JobRecord | None:
    record = self._jobs.get(job_id)
    if record is None:
      return None
    # Hand out copies so callers cannot mutate stored state outside update_job.
    return replace(record, logs=list(record.logs))

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    progress: int | None = None,
    stage: str | None = None,
    attempt: int | None = None,
    result: JobResult | None = None,
    error: JobError | None = None,
    logs: list[str] | None = None,
    started_at: str | None = None,
    completed_at: str | None = None,
    updated_at: str | None = None,
  ) -> JobRecord | None:
    record = self._jobs.get(job_id)
    if record is None:
      return None

    changes = {
      "status": status,
      "progress": progress,
      "stage": stage,
      "attempt": attempt,
      "result": result,
      "error": error,
      "logs": list(logs) if logs is not None else None,
      "started_at": started_at,
      "completed_at": completed_at,
      "updated_at": updated_at,
    }
    updated = replace(record, **{key: value for key, value in changes.items() if value is not None})
    self._jobs[job_id] = updated
    return replace(updated, logs=list(updated.logs))

  async def get_jobs(self, job_ids: Sequence[str]) -> list[JobRecord]:
    records: list[JobRecord] = []
    for job_id in job_ids:
      record = await self.get_job(job_id)
      if record is not None:
        records.append(record)
    return records

  async def find_by_status(self, status: JobStatus, *, limit: int | None = None) -> list[JobRecord]:
    matches = sorted((record for record in self._jobs.values() if record.status == status), key=lambda record: record.created_at)
    if limit is not None:
      matches = matches[:limit]
    return [replace(record, logs=list(record.logs)) for record in matches]


class InMemoryBatchesRepository(BatchesRepository):
  """Keep batch records in a dict."""

  def __init__(self) -> None:
    self._batches: dict[str, BatchRecord] = {}

  async def create_batch(self, record: BatchRecord) -> None:
    if record.batch_id in self._batches:
      raise ValueError(f"Batch {record.batch_id} already exists.")
    self._batches[record.batch_id] = record

  async def get_batch(self, batch_id: str) -> BatchRecord | None:
    return self._batches.get(batch_id)

  async def list_batches(self, owner_id: str) -> list[BatchRecord]:
    owned = [record for record in self._batches.values() if record.owner_id == owner_id]
    return sorted(owned, key=lambda record: record.created_at, reverse=True)
