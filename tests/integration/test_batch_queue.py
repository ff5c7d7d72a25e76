"""Batch submission, bounded concurrency, and aggregate status."""

from __future__ import annotations

from dataclasses import replace

import pytest

from articleflow.jobs.batches import BatchNotFoundError, BatchTooLargeError, EmptyBatchError
from articleflow.jobs.events import BatchCompleted, BatchProgress, JobUpdated
from articleflow.jobs.models import GenerationRequest
from articleflow.services.generation import GenerationService, build_generation_service
from articleflow.storage.memory_repo import InMemoryBatchesRepository, InMemoryJobsRepository
from tests.fakes import KeywordTextGenerator, StubEvaluator

OWNER = "owner-1"


async def _service(settings, generator, *, start: bool = True) -> GenerationService:
  service = build_generation_service(settings, jobs_repo=InMemoryJobsRepository(), batches_repo=InMemoryBatchesRepository(), text_generator=generator, evaluator=StubEvaluator())
  if start:
    await service.start(recover=False)
  return service


def _requests(count: int) -> list[GenerationRequest]:
  return [GenerationRequest(keyword=f"topic {index}") for index in range(1, count + 1)]


@pytest.mark.anyio
async def test_one_failing_item_fails_the_batch_without_touching_siblings(settings) -> None:
  generator = KeywordTextGenerator(failing={"topic 3"}, delay=0.01)
  service = await _service(settings, generator)
  completions: list[BatchCompleted] = []
  observed: list[tuple[str, int]] = []
  service.on_completed(completions.append)

  try:
    view = await service.create_batch(OWNER, _requests(5), name="spring")
    subscription = service.subscribe(batch_id=view.batch_id)

    async def _record_progress(event: BatchProgress) -> None:
      # The batch may only report failed once nothing is left to run.
      current = await service.get_batch(OWNER, event.batch_id)
      observed.append((current.status, sum(1 for item in current.items if not item.is_terminal)))

    service.on_progress(_record_progress)
    await service.wait_idle()
    final = await service.get_batch(OWNER, view.batch_id)
  finally:
    await service.shutdown()

  assert final.completed_count == 4
  assert final.failed_count == 1
  assert final.status == "failed"
  assert final.progress == 100.0
  failed_item = next(item for item in final.items if item.status == "failed")
  assert failed_item.request.keyword == "topic 3"
  assert failed_item.error.kind == "GenerationProviderError"

  assert [event.status for event in completions] == ["failed"]
  assert all(status != "failed" or remaining == 0 for status, remaining in observed)

  events = []
  while (event := subscription.get_nowait()) is not None:
    events.append(event)
  assert sum(1 for event in events if isinstance(event, BatchCompleted)) == 1
  assert isinstance(events[-1], BatchCompleted)
  assert all(event.batch_id == view.batch_id for event in events)
  assert any(isinstance(event, JobUpdated) for event in events)
  subscription.close()


@pytest.mark.anyio
async def test_all_items_complete(settings) -> None:
  service = await _service(settings, KeywordTextGenerator())
  try:
    view = await service.create_batch(OWNER, _requests(3))
    assert view.status == "pending"
    await service.wait_idle()
    final = await service.get_batch(OWNER, view.batch_id)
  finally:
    await service.shutdown()

  assert final.status == "completed"
  assert final.completed_count == 3
  assert all(item.result is not None for item in final.items)


@pytest.mark.anyio
async def test_concurrency_is_bounded(settings) -> None:
  generator = KeywordTextGenerator(delay=0.02)
  service = await _service(replace(settings, batch_concurrency=2), generator)
  try:
    await service.create_batch(OWNER, _requests(6))
    await service.wait_idle()
  finally:
    await service.shutdown()

  assert generator.calls == 6
  assert generator.max_in_flight == 2


@pytest.mark.anyio
async def test_empty_and_oversized_batches_are_rejected(settings) -> None:
  service = await _service(replace(settings, batch_max_items=3), KeywordTextGenerator())
  try:
    with pytest.raises(EmptyBatchError):
      await service.create_batch(OWNER, [])
    with pytest.raises(BatchTooLargeError):
      await service.create_batch(OWNER, _requests(4))
    assert await service.list_batches(OWNER) == []
  finally:
    await service.shutdown()


@pytest.mark.anyio
async def test_cancelled_pending_item_is_skipped(settings) -> None:
  generator = KeywordTextGenerator()
  service = await _service(settings, generator, start=False)
  try:
    view = await service.create_batch(OWNER, _requests(3))
    await service.cancel_job(OWNER, view.items[1].job_id)
    await service.start(recover=False)
    await service.wait_idle()
    final = await service.get_batch(OWNER, view.batch_id)
  finally:
    await service.shutdown()

  assert generator.calls == 2
  assert [item.status for item in final.items] == ["completed", "cancelled", "completed"]
  # Completed and cancelled items with no failure end as cancelled.
  assert final.status == "cancelled"


@pytest.mark.anyio
async def test_batches_are_scoped_to_owner_and_listed_newest_first(settings) -> None:
  service = await _service(settings, KeywordTextGenerator())
  try:
    first = await service.create_batch(OWNER, _requests(1), name="first")
    second = await service.create_batch(OWNER, _requests(1), name="second")
    await service.create_batch("owner-2", _requests(1), name="other")
    await service.wait_idle()

    listed = await service.list_batches(OWNER)
    with pytest.raises(BatchNotFoundError):
      await service.get_batch("owner-2", first.batch_id)
  finally:
    await service.shutdown()

  assert [view.batch_id for view in listed] == [second.batch_id, first.batch_id]


@pytest.mark.anyio
async def test_pending_batch_items_resume_after_restart(settings) -> None:
  jobs_repo = InMemoryJobsRepository()
  batches_repo = InMemoryBatchesRepository()
  crashed = build_generation_service(settings, jobs_repo=jobs_repo, batches_repo=batches_repo, text_generator=KeywordTextGenerator(), evaluator=StubEvaluator())
  # Never started, so the queued items are still pending in the store.
  view = await crashed.create_batch(OWNER, _requests(2))

  generator = KeywordTextGenerator()
  restarted = build_generation_service(settings, jobs_repo=jobs_repo, batches_repo=batches_repo, text_generator=generator, evaluator=StubEvaluator())
  await restarted.start()
  try:
    await restarted.wait_idle()
    final = await restarted.get_batch(OWNER, view.batch_id)
  finally:
    await restarted.shutdown()

  assert final.status == "completed"
  assert generator.calls == 2


@pytest.mark.anyio
async def test_finished_batch_is_announced_once_and_then_forgotten(settings) -> None:
  service = await _service(replace(settings, batch_concurrency=1), KeywordTextGenerator(), start=False)
  completions: list[BatchCompleted] = []
  service.on_completed(completions.append)
  try:
    view = await service.create_batch(OWNER, _requests(3))
    # The last queued item is cancelled before anything starts.
    await service.cancel_job(OWNER, view.items[2].job_id)
    assert (await service.get_batch(OWNER, view.batch_id)).status == "pending"

    await service.start(recover=False)
    await service.wait_idle()
    final = await service.get_batch(OWNER, view.batch_id)
    tracked = service._queue_manager.tracked_batches
  finally:
    await service.shutdown()

  assert final.status == "cancelled"
  assert [event.status for event in completions] == ["cancelled"]
  assert tracked == 0
