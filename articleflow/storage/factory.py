"""Repository wiring based on runtime configuration."""

from __future__ import annotations

import logging

from articleflow.config import Settings
from articleflow.storage.batches_repo import BatchesRepository
from articleflow.storage.jobs_repo import JobsRepository
from articleflow.storage.memory_repo import InMemoryBatchesRepository, InMemoryJobsRepository

logger = logging.getLogger(__name__)


def build_repositories(settings: Settings) -> tuple[JobsRepository, BatchesRepository]:
  """Return Postgres repositories when a DSN is configured, otherwise in-memory ones."""

  if settings.pg_dsn:
    from articleflow.storage.postgres_repo import PostgresBatchesRepository, PostgresJobsRepository

    logger.info("Using Postgres job and batch repositories.")
    return PostgresJobsRepository(), PostgresBatchesRepository()

  logger.warning("No database configured; jobs and batches will not survive a restart.")
  return InMemoryJobsRepository(), InMemoryBatchesRepository()
