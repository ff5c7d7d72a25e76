"""Prefixed identifiers for jobs and batches."""

from __future__ import annotations

import uuid

JOB_PREFIX = "job"
BATCH_PREFIX = "batch"


def _prefixed(prefix: str) -> str:
  # The prefix makes ids self-describing in logs and support tickets.
  return f"{prefix}_{uuid.uuid4().hex}"


def generate_job_id() -> str:
  return _prefixed(JOB_PREFIX)


def generate_batch_id() -> str:
  return _prefixed(BATCH_PREFIX)
