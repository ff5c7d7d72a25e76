"""Job progress tracking with stage labels and cooperative cancellation."""

from __future__ import annotations

from articleflow.jobs.models import JobRecord
from articleflow.jobs.state_machine import InvalidTransitionError, JobStateMachine

# Progress checkpoints reached at the end of each attempt-loop stage.
STAGE_PROGRESS: dict[str, int] = {
  "drafting": 0,
  "research": 10,
  "content_generation": 40,
  "quality_review": 70,
  "improvement": 85,
  "finalized": 100,
}


class JobCancelledError(Exception):
  """Exception raised when a job is cancelled by the user."""


class JobProgressTracker:
  """Advance one running job through its stages and surface cancellation."""

  def __init__(self, *, job_id: str, state_machine: JobStateMachine) -> None:
    self._job_id = job_id
    self._state_machine = state_machine
    self._attempt = 0
    self._progress = STAGE_PROGRESS["drafting"]

  @property
  def attempt(self) -> int:
    return self._attempt

  async def record_attempt(self) -> int:
    """Count a provider call and persist the new attempt number before the call is made."""

    self._attempt += 1
    await self._persist(self._progress)
    return self._attempt

  async def check_cancelled(self) -> JobRecord:
    """Re-read the job and raise when it was cancelled in the meantime."""

    record = await self._state_machine.get(self._job_id)
    if record.status == "cancelled":
      raise JobCancelledError(f"Job {self._job_id} was cancelled.")
    return record

  async def advance(self, stage: str, message: str | None = None) -> JobRecord:
    """Persist the checkpoint for a stage; a cancelled job raises JobCancelledError."""

    record = await self._persist(STAGE_PROGRESS[stage], stage=stage, message=message)
    self._progress = record.progress
    return record

  async def _persist(self, progress: int, *, stage: str | None = None, message: str | None = None) -> JobRecord:
    try:
      return await self._state_machine.update_progress(self._job_id, progress, stage=stage, attempt=self._attempt, message=message)
    except InvalidTransitionError as exc:
      if exc.current == "cancelled":
        raise JobCancelledError(f"Job {self._job_id} was cancelled.") from exc
      raise
