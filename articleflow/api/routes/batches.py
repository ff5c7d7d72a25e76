import json
import logging
from collections.abc import AsyncIterator
from dataclasses import asdict

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse

from articleflow.api.deps import get_generation_service, get_owner_id
from articleflow.api.models import BatchCreateRequest, BatchListResponse, BatchStatusResponse, JobStatusResponse
from articleflow.jobs.events import BatchCompleted, BatchProgress, Event, JobUpdated, Subscription
from articleflow.services.generation import GenerationService

router = APIRouter()
logger = logging.getLogger("articleflow.api.routes.batches")

HEARTBEAT_SECONDS = 15.0


@router.post("", response_model=BatchStatusResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_batch(  # noqa: B008
  payload: BatchCreateRequest,
  owner_id: str = Depends(get_owner_id),  # noqa: B008
  service: GenerationService = Depends(get_generation_service),  # noqa: B008
) -> BatchStatusResponse:
  """Queue a batch of articles."""
  view = await service.create_batch(owner_id, [item.to_domain() for item in payload.items], name=payload.name)
  return BatchStatusResponse.from_view(view)


@router.get("", response_model=BatchListResponse)
async def list_batches(  # noqa: B008
  owner_id: str = Depends(get_owner_id),  # noqa: B008
  service: GenerationService = Depends(get_generation_service),  # noqa: B008
) -> BatchListResponse:
  """List the caller's batches, most recent first."""
  views = await service.list_batches(owner_id)
  return BatchListResponse(batches=[BatchStatusResponse.from_view(view) for view in views])


@router.get("/{batch_id}", response_model=BatchStatusResponse)
async def get_batch(  # noqa: B008
  batch_id: str,
  owner_id: str = Depends(get_owner_id),  # noqa: B008
  service: GenerationService = Depends(get_generation_service),  # noqa: B008
) -> BatchStatusResponse:
  """Fetch a batch with its items."""
  return BatchStatusResponse.from_view(await service.get_batch(owner_id, batch_id))


def _sse(event: str, data: dict) -> str:
  return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def _encode(event: Event) -> str:
  if isinstance(event, JobUpdated):
    return _sse("job", JobStatusResponse.from_record(event.job).model_dump(mode="json"))
  if isinstance(event, BatchProgress):
    return _sse("progress", asdict(event))
  return _sse("completed", asdict(event))


async def _stream(subscription: Subscription, snapshot: BatchStatusResponse) -> AsyncIterator[str]:
  try:
    # Send current state first so reconnecting clients never miss a finished batch.
    yield _sse("snapshot", snapshot.model_dump(mode="json"))
    if snapshot.status in ("completed", "failed", "cancelled"):
      return
    while True:
      try:
        event = await subscription.get(timeout=HEARTBEAT_SECONDS)
      except TimeoutError:
        yield ": keep-alive\n\n"
        continue
      yield _encode(event)
      if isinstance(event, BatchCompleted):
        return
  finally:
    subscription.close()


@router.get("/{batch_id}/events")
async def stream_batch_events(  # noqa: B008
  batch_id: str,
  owner_id: str = Depends(get_owner_id),  # noqa: B008
  service: GenerationService = Depends(get_generation_service),  # noqa: B008
) -> StreamingResponse:
  """Stream batch progress as server-sent events until the batch finishes."""
  # Subscribe before reading the snapshot so no event falls between the two.
  subscription = service.subscribe(batch_id=batch_id)
  try:
    view = await service.get_batch(owner_id, batch_id)
  except Exception:
    subscription.close()
    raise
  logger.info("Streaming events for batch %s owner=%s", batch_id, owner_id)
  return StreamingResponse(_stream(subscription, BatchStatusResponse.from_view(view)), media_type="text/event-stream", headers={"Cache-Control": "no-cache"})
