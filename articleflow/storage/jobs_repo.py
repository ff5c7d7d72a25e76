"""Storage interfaces for article jobs and batches."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from articleflow.jobs.models import JobError, JobRecord, JobResult, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

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
    """Apply partial updates to a job. `logs` replaces the stored window."""

  async def get_jobs(self, job_ids: Sequence[str]) -> list[JobRecord]:
    """Fetch jobs in the given order, skipping unknown ids."""

  async def find_by_status(self, status: JobStatus, *, limit: int | None = None) -> list[JobRecord]:
    """Return jobs with a status, oldest first."""
