"""Postgres-backed repositories for jobs and batches using SQLAlchemy."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select

from articleflow.core.database import get_session_factory
from articleflow.jobs.models import GenerationRequest, JobError, JobRecord, JobResult, JobStatus
from articleflow.schema.jobs import Batch, Job
from articleflow.storage.batches_repo import BatchesRepository, BatchRecord
from articleflow.storage.jobs_repo import JobsRepository
from articleflow.utils.timestamps import now_iso


def _model_to_record(row: Job) -> JobRecord:
  return JobRecord(
    job_id=row.job_id,
    owner_id=row.owner_id,
    request=GenerationRequest.from_dict(row.request_json),
    status=row.status,  # type: ignore[arg-type]
    progress=int(row.progress or 0),
    stage=row.stage,
    attempt=int(row.attempt or 0),
    result=JobResult.from_dict(row.result_json) if row.result_json else None,
    error=JobError.from_dict(row.error_json) if row.error_json else None,
    batch_id=row.batch_id,
    logs=list(row.logs or []),
    created_at=row.created_at,
    updated_at=row.updated_at,
    started_at=row.started_at,
    completed_at=row.completed_at,
  )


class PostgresJobsRepository(JobsRepository):
  """Persist jobs to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      job = Job(
        job_id=record.job_id,
        owner_id=record.owner_id,
        batch_id=record.batch_id,
        request_json=record.request.to_dict(),
        status=record.status,
        progress=record.progress,
        stage=record.stage,
        attempt=record.attempt,
        result_json=record.result.to_dict() if record.result else None,
        error_json=record.error.to_dict() if record.error else None,
        logs=list(record.logs),
        created_at=record.created_at,
        updated_at=record.updated_at,
        started_at=record.started_at,
        completed_at=record.completed_at,
      )
      session.add(job)
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Job, job_id)
      if row is None:
        return None
      return _model_to_record(row)

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
    async with self._session_factory() as session:
      row = await session.get(Job, job_id, with_for_update=True)
      if row is None:
        return None
      if status is not None:
        row.status = status
      if progress is not None:
        row.progress = progress
      if stage is not None:
        row.stage = stage
      if attempt is not None:
        row.attempt = attempt
      if result is not None:
        row.result_json = result.to_dict()
      if error is not None:
        row.error_json = error.to_dict()
      if logs is not None:
        row.logs = list(logs)
      if started_at is not None:
        row.started_at = started_at
      if completed_at is not None:
        row.completed_at = completed_at
      row.updated_at = updated_at or now_iso()
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return _model_to_record(row)

  async def get_jobs(self, job_ids: Sequence[str]) -> list[JobRecord]:
    if not job_ids:
      return []
    async with self._session_factory() as session:
      stmt = select(Job).where(Job.job_id.in_(list(job_ids)))
      rows = {row.job_id: row for row in (await session.execute(stmt)).scalars().all()}
      return [_model_to_record(rows[job_id]) for job_id in job_ids if job_id in rows]

  async def find_by_status(self, status: JobStatus, *, limit: int | None = None) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(Job).where(Job.status == status).order_by(Job.created_at.asc())
      if limit is not None:
        stmt = stmt.limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [_model_to_record(row) for row in rows]


class PostgresBatchesRepository(BatchesRepository):
  """Persist batches to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  @staticmethod
  def _to_record(row: Batch) -> BatchRecord:
    return BatchRecord(batch_id=row.batch_id, owner_id=row.owner_id, created_at=row.created_at, job_ids=tuple(row.job_ids or []), name=row.name)

  async def create_batch(self, record: BatchRecord) -> None:
    async with self._session_factory() as session:
      session.add(Batch(batch_id=record.batch_id, owner_id=record.owner_id, name=record.name, job_ids=list(record.job_ids), created_at=record.created_at))
      await session.commit()

  async def get_batch(self, batch_id: str) -> BatchRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Batch, batch_id)
      if row is None:
        return None
      return self._to_record(row)

  async def list_batches(self, owner_id: str) -> list[BatchRecord]:
    async with self._session_factory() as session:
      stmt = select(Batch).where(Batch.owner_id == owner_id).order_by(Batch.created_at.desc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._to_record(row) for row in rows]
