"""Storage interface for batches."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class BatchRecord:
  """Persisted batch: an ordered, fixed list of job ids under one owner."""

  batch_id: str
  owner_id: str
  created_at: str
  job_ids: tuple[str, ...]
  name: str | None = None


class BatchesRepository(Protocol):
  """Repository contract for batch persistence."""

  async def create_batch(self, record: BatchRecord) -> None:
    """Persist a batch record."""

  async def get_batch(self, batch_id: str) -> BatchRecord | None:
    """Fetch a batch by identifier."""

  async def list_batches(self, owner_id: str) -> list[BatchRecord]:
    """Return an owner's batches, most recent first."""
